"""
Reversal of the most recent ledger entry
"""
import logging
from typing import Callable, List, Optional

from luckyslip.exceptions import RosterInvariantError
from luckyslip.ledger import EventLedger, LedgerEntry
from luckyslip.models import GameEvent, Participant, Player, Substitution
from luckyslip.settlement import Settlement, apply_delta

logger = logging.getLogger(__name__)


class UndoController:
    """
    Undoes the last ledger entry by applying its inverse

    Works only from what the entry itself stores, so there is no snapshot
    stack to keep in sync. The collections passed in are the session's own
    lists and are edited in place.
    """

    def __init__(self, ledger: EventLedger, participants: List[Participant],
                 available_players: List[Player], substitutions: List[Substitution],
                 find_player: Callable[[str], Optional[Player]]):
        self.ledger = ledger
        self.participants = participants
        self.available_players = available_players
        self.substitutions = substitutions
        self.find_player = find_player

    def can_undo(self) -> bool:
        return len(self.ledger) > 0

    def undo(self) -> Optional[LedgerEntry]:
        """
        Reverse the most recent entry

        Returns:
            The entry removed from the ledger, or None if it was empty
        """
        entry = self.ledger.last()
        if entry is None:
            logger.info("Nothing to undo")
            return None

        if isinstance(entry, GameEvent):
            self._reverse_event(entry)
        elif isinstance(entry, Substitution):
            self._reverse_substitution(entry)
        else:
            raise TypeError(f"Unknown ledger entry: {entry!r}")

        self.ledger.pop_last()
        return entry

    def _participant(self, participant_id: str) -> Participant:
        for participant in self.participants:
            if participant.id == participant_id:
                return participant
        raise RosterInvariantError(f"Ledger refers to unknown participant {participant_id}")

    def _unregister(self, player_id: str) -> None:
        """Drop a player that an undone entry added to the pool"""
        self.available_players[:] = [p for p in self.available_players if p.id != player_id]

    def _reverse_event(self, event: GameEvent) -> None:
        inverse = Settlement(event.owner_id, deltas=event.settlement).invert()
        for participant_id, delta in inverse.deltas:
            participant = self._participant(participant_id)
            participant.balance = apply_delta(participant.balance, delta)

        player = self.find_player(event.player_id)
        if player is not None:
            player.unrecord(event.event_type)
        if event.registered_player:
            self._unregister(event.player_id)
        logger.info("Undid %s for player %s", event.display_name, event.player_id)

    def _reverse_substitution(self, substitution: Substitution) -> None:
        owner = self._participant(substitution.owner_id)

        player_on = next(
            (p for p in owner.active_players if p.id == substitution.player_on_id), None
        )
        if player_on is None:
            raise RosterInvariantError(
                f"Substitute {substitution.player_on_id} missing from {owner.name}"
            )
        owner.active_players.remove(player_on)

        # The outgoing player was appended last when the substitution ran
        for index in range(len(owner.substituted_players) - 1, -1, -1):
            if owner.substituted_players[index].id == substitution.player_off_id:
                player_off = owner.substituted_players.pop(index)
                break
        else:
            raise RosterInvariantError(
                f"Substituted player {substitution.player_off_id} missing from {owner.name}"
            )
        owner.active_players.insert(substitution.off_index, player_off)

        if substitution.on_substituted_index is not None:
            owner.substituted_players.insert(substitution.on_substituted_index, player_on)

        if substitution.created_player_on:
            self._unregister(player_on.id)

        if self.substitutions and self.substitutions[-1].id == substitution.id:
            self.substitutions.pop()
        logger.info("Undid substitution %s -> %s for %s", player_off.name,
                    player_on.name, owner.name)
