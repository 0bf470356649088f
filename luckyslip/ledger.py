"""
Append-only ledger of applied events and substitutions
"""
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Set, Union

import pandas as pd

from luckyslip.models import EVENT_STAT_COLUMNS, GameEvent, Substitution
from luckyslip.settlement import apply_delta

LedgerEntry = Union[GameEvent, Substitution]

EVENT_FRAME_COLUMNS = ["event_id", "player_id", "event_type", "stat", "minute",
                       "timestamp", "owner_id", "amount"]


class EventLedger:
    """
    Ordered record of everything applied to a game session

    Entries are only ever appended, or removed from the end by undo. Each
    entry's identity is remembered so a re-delivered feed event is refused.
    """

    def __init__(self, entries: Iterable[LedgerEntry] = ()):
        self._entries: List[LedgerEntry] = []
        self._keys: Set[tuple] = set()
        for entry in entries:
            self.append(entry)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[LedgerEntry]:
        return iter(list(self._entries))

    @property
    def entries(self) -> List[LedgerEntry]:
        return list(self._entries)

    @property
    def events(self) -> List[GameEvent]:
        return [e for e in self._entries if isinstance(e, GameEvent)]

    @property
    def substitutions(self) -> List[Substitution]:
        return [e for e in self._entries if isinstance(e, Substitution)]

    def last(self) -> Optional[LedgerEntry]:
        return self._entries[-1] if self._entries else None

    def contains_key(self, key: tuple) -> bool:
        return key in self._keys

    def append(self, entry: LedgerEntry) -> bool:
        """
        Append an entry unless its identity was already recorded

        Returns:
            True if appended, False for a duplicate
        """
        key = entry.dedupe_key
        if key in self._keys:
            return False
        self._entries.append(entry)
        self._keys.add(key)
        return True

    def pop_last(self) -> Optional[LedgerEntry]:
        """
        Remove and return the most recent entry

        Provider-identified entries stay remembered, so polling the feed
        again after an undo does not bring them back.
        """
        if not self._entries:
            return None
        entry = self._entries.pop()
        if entry.external_id is None:
            self._keys.discard(entry.dedupe_key)
        return entry

    def replay_balances(self, participant_ids: Sequence[str]) -> Dict[str, float]:
        """
        Rebuild participant balances from the stored settlements

        Args:
            participant_ids: Participants to report, all starting at zero

        Returns:
            Mapping of participant id to balance
        """
        balances = {pid: 0.0 for pid in participant_ids}
        for event in self.events:
            for pid, delta in event.settlement:
                balances[pid] = apply_delta(balances.get(pid, 0.0), delta)
        return balances

    def to_frame(self) -> pd.DataFrame:
        """Events as a DataFrame, one row per event in ledger order"""
        rows = []
        for event in self.events:
            deltas = event.deltas
            rows.append({
                "event_id": event.id,
                "player_id": event.player_id,
                "event_type": event.display_name,
                "stat": EVENT_STAT_COLUMNS[event.event_type],
                "minute": event.minute,
                "timestamp": event.timestamp,
                "owner_id": event.owner_id,
                "amount": deltas.get(event.owner_id, 0.0) if event.owner_id else 0.0,
            })
        return pd.DataFrame(rows, columns=EVENT_FRAME_COLUMNS)
