"""
Game session: the single entry point for setting up and playing a game
"""
import functools
import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from luckyslip.config import SessionConfig
from luckyslip.exceptions import SessionClosedError, SetupLockedError
from luckyslip.ledger import EventLedger, LedgerEntry
from luckyslip.models import (
    EVENT_STAT_COLUMNS,
    Bet,
    EventType,
    GameEvent,
    Participant,
    Player,
    Substitution,
    Team,
    new_id,
    utc_now,
)
from luckyslip.ownership import OwnershipIndex
from luckyslip.settlement import (
    SettlementCalculator,
    apply_delta,
    find_bet,
    is_effectively_zero,
    plan_payments,
    total_amount,
)
from luckyslip.undo import UndoController

logger = logging.getLogger(__name__)

PlayerRef = Union[Player, str]


class GamePhase(Enum):
    """Lifecycle of a game session"""

    SETUP = "setup"
    ASSIGNING = "assigning"
    ACTIVE = "active"
    SUMMARY = "summary"


SETUP_PHASES = (GamePhase.SETUP, GamePhase.ASSIGNING)


def _serialized(method):
    """Run a session method while holding the session lock"""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)
    return wrapper


class GameSession:
    """
    Authoritative state of one game

    Owns the participants, players, bets, substitution log and event ledger,
    and is the only place they are changed. Every mutator runs under one
    re-entrant lock, so manual input and a live-feed poller may call in from
    different threads.

    Args:
        name: Display name of the game (default: None)
        config: Session settings (default: SessionConfig())
        is_live_mode: Whether events come from a live feed (default: False)
    """

    def __init__(self, name: Optional[str] = None, config: Optional[SessionConfig] = None,
                 is_live_mode: bool = False):
        self.id = new_id()
        self.name = name
        self.config = config or SessionConfig()
        self.is_live_mode = is_live_mode
        self.phase = GamePhase.SETUP
        self.created_at = utc_now()

        self._lock = threading.RLock()
        self._teams: List[Team] = []
        self._available_players: List[Player] = []
        self._selected_players: List[Player] = []
        self._participants: List[Participant] = []
        self._bets: List[Bet] = []
        self._substitutions: List[Substitution] = []
        self._ledger = EventLedger()

        self._calculator = SettlementCalculator(
            policy=self.config.settlement_policy,
            custom_events_zero_sum=self.config.custom_events_zero_sum,
        )
        self._undo = UndoController(
            self._ledger, self._participants, self._available_players,
            self._substitutions, self._find_player,
        )
        self._rng = np.random.default_rng(self.config.random_state)

    @contextmanager
    def locked(self):
        """Hold the session lock across several reads, e.g. to take a consistent snapshot"""
        with self._lock:
            yield self

    # Read-only accessors. The lists are copies; do not mutate the items.

    @property
    def teams(self) -> List[Team]:
        return list(self._teams)

    @property
    def participants(self) -> List[Participant]:
        return list(self._participants)

    @property
    def available_players(self) -> List[Player]:
        return list(self._available_players)

    @property
    def selected_players(self) -> List[Player]:
        return list(self._selected_players)

    @property
    def bets(self) -> List[Bet]:
        return list(self._bets)

    @property
    def standard_bets(self) -> List[Bet]:
        return [b for b in self._bets if not b.event_type.is_custom]

    @property
    def custom_events(self) -> List[Bet]:
        return [b for b in self._bets if b.event_type.is_custom]

    @property
    def events(self) -> List[GameEvent]:
        return self._ledger.events

    @property
    def substitutions(self) -> List[Substitution]:
        return list(self._substitutions)

    @property
    def ledger_entries(self) -> List[LedgerEntry]:
        return self._ledger.entries

    @property
    def can_undo_last_event(self) -> bool:
        return self._undo.can_undo()

    @property
    def is_setup(self) -> bool:
        return self.phase in SETUP_PHASES

    # Phase guards

    def _require_open(self, action: str) -> None:
        if self.phase is GamePhase.SUMMARY:
            raise SessionClosedError(f"Cannot {action}: the game has finished")

    def _require_setup(self, action: str) -> None:
        self._require_open(action)
        if self.phase is GamePhase.ACTIVE:
            raise SetupLockedError(f"Cannot {action} once the game has started")

    def _enter_active(self) -> None:
        if self.phase in SETUP_PHASES:
            self.phase = GamePhase.ACTIVE
            logger.info("Game %s is now active", self.name or self.id)

    # Lookups

    def _find_player(self, player_id: str) -> Optional[Player]:
        for player in self._available_players:
            if player.id == player_id or (
                player.external_id is not None and player.external_id == player_id
            ):
                return player
        for participant in self._participants:
            for player in participant.players:
                if player.id == player_id:
                    return player
        return None

    def _resolve_player(self, player: PlayerRef, register: bool = False) -> Optional[Player]:
        """
        Turn a player or player id into the session's own Player object

        Args:
            player: Player instance, id or provider id
            register: Add an unknown Player instance to the pool
        """
        if isinstance(player, Player):
            known = self._find_player(player.id)
            if known is not None:
                return known
            if register:
                self._register_player(player)
            return player
        return self._find_player(player)

    def _register_player(self, player: Player) -> None:
        self._available_players.append(player)
        if player.team is not None and player.team not in self._teams:
            self._teams.append(player.team)

    @_serialized
    def get_player(self, player_id: str) -> Optional[Player]:
        """Find a player by id or by provider id"""
        return self._find_player(player_id)

    @_serialized
    def get_participant(self, participant_id: str) -> Optional[Participant]:
        for participant in self._participants:
            if participant.id == participant_id:
                return participant
        return None

    @_serialized
    def owner_of(self, player: PlayerRef) -> Optional[Participant]:
        """Participant settled for a player's events right now"""
        resolved = self._resolve_player(player)
        if resolved is None:
            return None
        return OwnershipIndex(self._participants).owner_of(resolved.id)

    # Setup

    @_serialized
    def add_team(self, team: Team) -> Team:
        self._require_setup("add teams")
        if team not in self._teams:
            self._teams.append(team)
        return team

    @_serialized
    def add_players(self, players: Iterable[Player]) -> List[Player]:
        """
        Add players to the candidate pool

        Args:
            players: Players to add; ones already in the pool are skipped

        Returns:
            The players actually added
        """
        self._require_setup("add players")
        added = []
        for player in players:
            if self._find_player(player.id) is None:
                self._register_player(player)
                added.append(player)
        return added

    @_serialized
    def select_players(self, players: Iterable[PlayerRef]) -> List[Player]:
        """Choose the subset of the pool that random assignment draws from"""
        self._require_setup("select players")
        selected = []
        for ref in players:
            player = self._resolve_player(ref, register=True)
            if player is None:
                logger.warning("Ignoring unknown player %s in selection", ref)
                continue
            if player not in selected:
                selected.append(player)
        self._selected_players[:] = selected
        return list(selected)

    @_serialized
    def add_participant(self, name: str) -> Participant:
        self._require_setup("add participants")
        if not name or not name.strip():
            raise ValueError("Participant name cannot be empty")
        participant = Participant(name=name.strip())
        self._participants.append(participant)
        return participant

    @_serialized
    def add_bet(self, event_type: EventType, amount: float) -> Bet:
        """
        Stake an amount on a standard event type

        A bet already set for the same event type is replaced, keeping at
        most one bet per type.
        """
        self._require_setup("change bets")
        if event_type.is_custom:
            raise ValueError("Use add_custom_event for custom bets")
        bet = Bet(event_type=event_type, amount=amount)
        self._replace_bet(bet)
        logger.info("Added bet: %s = %s", event_type.value, amount)
        return bet

    @_serialized
    def add_custom_event(self, name: str, amount: float) -> Bet:
        """Add a named custom bet, replacing one with the same name"""
        self._require_setup("change bets")
        bet = Bet(event_type=EventType.CUSTOM, amount=amount, name=name)
        self._replace_bet(bet)
        logger.info("Added custom event: %s = %s", name, amount)
        return bet

    def _replace_bet(self, bet: Bet) -> None:
        existing = find_bet(self._bets, bet.event_type, bet.name)
        if existing is not None:
            self._bets[self._bets.index(existing)] = bet
        else:
            self._bets.append(bet)

    @_serialized
    def remove_custom_event(self, name: str) -> bool:
        self._require_setup("change bets")
        bet = find_bet(self._bets, EventType.CUSTOM, name)
        if bet is None:
            return False
        self._bets.remove(bet)
        return True

    @_serialized
    def assign_player(self, player: PlayerRef, participant: Union[Participant, str]) -> Player:
        """
        Put a player on a participant's roster by hand

        A player fielded by someone else is moved, never duplicated.
        """
        self._require_setup("assign players")
        resolved = self._resolve_player(player, register=True)
        if resolved is None:
            raise ValueError(f"Unknown player: {player}")
        participant_id = participant.id if isinstance(participant, Participant) else participant
        target = self.get_participant(participant_id)
        if target is None:
            raise ValueError(f"Unknown participant: {participant_id}")

        for other in self._participants:
            other.active_players[:] = [p for p in other.active_players if p.id != resolved.id]
        target.active_players.append(resolved)
        self.phase = GamePhase.ASSIGNING
        OwnershipIndex(self._participants).check_invariants()
        return resolved

    @_serialized
    def assign_players_randomly(self) -> Dict[str, List[Player]]:
        """
        Deal the selected players (or the whole pool) out to participants

        Players are shuffled with the session's seeded generator and dealt
        so counts differ by at most one; earlier participants get the extras.

        Returns:
            Mapping of participant id to the players dealt to them
        """
        self._require_setup("assign players")
        pool = self._selected_players or self._available_players
        if not self._participants or not pool:
            logger.warning("Cannot assign players: %d participants, %d players",
                           len(self._participants), len(pool))
            return {}

        order = self._rng.permutation(len(pool))
        shuffled = [pool[int(i)] for i in order]
        per_participant, extra = divmod(len(shuffled), len(self._participants))

        assignment = {}
        start = 0
        for index, participant in enumerate(self._participants):
            count = per_participant + (1 if index < extra else 0)
            participant.active_players[:] = shuffled[start:start + count]
            participant.substituted_players[:] = []
            assignment[participant.id] = list(participant.active_players)
            start += count
            logger.info("%s gets %s", participant.name,
                        ", ".join(p.name for p in participant.active_players))

        self.phase = GamePhase.ASSIGNING
        OwnershipIndex(self._participants).check_invariants()
        return assignment

    @_serialized
    def start(self) -> None:
        """Leave setup; from now on only events, substitutions and undo apply"""
        self._require_open("start the game")
        self._enter_active()

    @_serialized
    def finish(self) -> None:
        """Close the session; it stays readable but cannot change"""
        self.phase = GamePhase.SUMMARY
        logger.info("Game %s finished, total balance %.2f", self.name or self.id,
                    self.total_balance())

    # Play

    @_serialized
    def record_event(self, player: PlayerRef, event_type: EventType, minute: Optional[int] = None,
                     timestamp: Optional[datetime] = None,
                     external_id: Optional[str] = None) -> Optional[GameEvent]:
        """
        Record a standard match event and settle it

        Args:
            player: Player the event happened to, or their id
            event_type: Standard event type
            minute: Match minute (default: None)
            timestamp: When it happened (default: now)
            external_id: Provider event id, used to reject re-deliveries

        Returns:
            The recorded event, or None if nothing changed
        """
        self._require_open("record events")
        if event_type.is_custom:
            raise ValueError("Use record_custom_event for custom events")
        return self._apply_event(player, event_type, None, minute, timestamp, external_id)

    @_serialized
    def record_custom_event(self, player: PlayerRef, event_name: str, minute: Optional[int] = None,
                            timestamp: Optional[datetime] = None,
                            external_id: Optional[str] = None) -> Optional[GameEvent]:
        """
        Record a named custom event

        Nothing happens when no custom bet carries that exact name.
        """
        self._require_open("record events")
        if find_bet(self._bets, EventType.CUSTOM, event_name) is None:
            logger.warning("No custom event named %r", event_name)
            return None
        return self._apply_event(player, EventType.CUSTOM, event_name, minute, timestamp,
                                 external_id)

    def _apply_event(self, player_ref: PlayerRef, event_type: EventType,
                     custom_name: Optional[str], minute: Optional[int],
                     timestamp: Optional[datetime],
                     external_id: Optional[str]) -> Optional[GameEvent]:
        if external_id is not None and self._ledger.contains_key(("external", external_id)):
            logger.info("Skipping duplicate feed event %s", external_id)
            return None

        player = self._resolve_player(player_ref)
        if player is None:
            logger.warning("Ignoring %s for unknown player %s", event_type.value, player_ref)
            return None

        owner = OwnershipIndex(self._participants).owner_of(player.id)
        owner_id = owner.id if owner is not None else None
        bet = find_bet(self._bets, event_type, custom_name)
        settlement = self._calculator.settle(
            event_type, bet, owner_id, [p.id for p in self._participants]
        )
        registered = self._find_player(player.id) is None

        event = GameEvent(
            player_id=player.id,
            event_type=event_type,
            timestamp=timestamp or utc_now(),
            minute=minute,
            custom_name=custom_name,
            external_id=external_id,
            owner_id=owner_id,
            settlement=settlement.deltas,
            registered_player=registered,
        )
        if not self._ledger.append(event):
            logger.info("Skipping duplicate %s for %s", event.display_name, player.name)
            return None

        if registered:
            self._register_player(player)
        self._enter_active()
        for participant_id, delta in settlement.deltas:
            participant = self.get_participant(participant_id)
            participant.balance = apply_delta(participant.balance, delta)
        player.record(event_type)

        if owner is None:
            logger.info("Recorded %s for unassigned player %s", event.display_name, player.name)
        elif bet is None:
            logger.info("Recorded %s for %s, no bet placed", event.display_name, player.name)
        else:
            logger.info("Recorded %s for %s (%s %+.2f)", event.display_name, player.name,
                        owner.name, settlement.amount)
        return event

    @_serialized
    def substitute_player(self, player_off: PlayerRef, player_on: PlayerRef,
                          minute: Optional[int] = None, timestamp: Optional[datetime] = None,
                          external_id: Optional[str] = None) -> Optional[Substitution]:
        """
        Swap a fielded player for a substitute on the same participant's roster

        The outgoing player moves to the owner's substituted list and keeps
        settling to that owner. An incoming player not yet in the pool is
        added to it.

        Returns:
            The substitution, or None if player_off is not active anywhere
        """
        self._require_open("substitute players")
        if external_id is not None and self._ledger.contains_key(("external", external_id)):
            logger.info("Skipping duplicate feed substitution %s", external_id)
            return None

        off = self._resolve_player(player_off)
        on = self._resolve_player(player_on)
        if off is None or on is None:
            logger.warning("Cannot substitute unknown player (%s -> %s)", player_off, player_on)
            return None
        if off.id == on.id:
            logger.warning("Cannot substitute %s for themselves", off.name)
            return None

        index = OwnershipIndex(self._participants)
        owner = index.active_owner_of(off.id)
        if owner is None:
            logger.warning("Player %s is not active", off.name)
            return None
        if index.active_owner_of(on.id) is not None:
            logger.warning("Player %s is already active", on.name)
            return None

        off_index = next(i for i, p in enumerate(owner.active_players) if p.id == off.id)
        on_substituted_index = next(
            (i for i, p in enumerate(owner.substituted_players) if p.id == on.id), None
        )
        created = self._find_player(on.id) is None

        substitution = Substitution(
            player_off_id=off.id,
            player_on_id=on.id,
            owner_id=owner.id,
            team=off.team,
            minute=minute,
            timestamp=timestamp or utc_now(),
            external_id=external_id,
            off_index=off_index,
            on_substituted_index=on_substituted_index,
            created_player_on=created,
        )
        if not self._ledger.append(substitution):
            return None

        if created:
            self._register_player(on)
        owner.active_players.pop(off_index)
        if on_substituted_index is not None:
            owner.substituted_players.pop(on_substituted_index)
        owner.substituted_players.append(off)
        owner.active_players.append(on)
        self._substitutions.append(substitution)
        self._enter_active()

        OwnershipIndex(self._participants).check_invariants()
        logger.info("Substitution for %s: %s -> %s%s", owner.name, off.name, on.name,
                    f" ({minute}')" if minute is not None else "")
        return substitution

    @_serialized
    def undo_last_event(self) -> Optional[LedgerEntry]:
        """
        Reverse the most recent event or substitution

        Returns:
            The entry that was undone, or None if the ledger was empty
        """
        self._require_open("undo")
        entry = self._undo.undo()
        if isinstance(entry, Substitution):
            OwnershipIndex(self._participants).check_invariants()
        return entry

    # Derived views

    @_serialized
    def total_balance(self) -> float:
        return total_amount(p.balance for p in self._participants)

    @_serialized
    def is_balanced(self) -> bool:
        """Whether balances sum to zero within the configured tolerance"""
        return is_effectively_zero(self.total_balance(), self.config.tolerance)

    @_serialized
    def recalculate_balances(self) -> Dict[str, float]:
        """
        Rebuild every balance by replaying the ledger

        Returns:
            Mapping of participant id to the replayed balance
        """
        balances = self._ledger.replay_balances([p.id for p in self._participants])
        for participant in self._participants:
            participant.balance = balances.get(participant.id, 0.0)
        return balances

    @_serialized
    def get_player_statistics(self) -> pd.DataFrame:
        """
        Per-player event counts derived from the ledger

        Returns:
            DataFrame indexed by player id with name, team and owner columns
            followed by one count column per event type
        """
        events = self._ledger.to_frame()
        player_ids = [p.id for p in self._available_players]
        known = set(player_ids)
        extra = [pid for pid in events["player_id"].unique() if pid not in known]
        index = pd.Index(player_ids + extra, name="player_id")

        if events.empty:
            counts = pd.DataFrame(index=index)
        else:
            counts = events.groupby(["player_id", "stat"]).size().unstack(fill_value=0)
        stats = counts.reindex(
            index=index, columns=list(EVENT_STAT_COLUMNS.values()), fill_value=0
        ).astype(int)

        owners = OwnershipIndex(self._participants).owners_by_player()
        players = {pid: self._find_player(pid) for pid in index}
        stats.insert(0, "name", [players[pid].name if players[pid] else None for pid in index])
        stats.insert(1, "team", [
            players[pid].team.short_name if players[pid] and players[pid].team else None
            for pid in index
        ])
        stats.insert(2, "owner", [owners[pid].name if pid in owners else None for pid in index])
        return stats

    @_serialized
    def get_balance_table(self) -> pd.DataFrame:
        """Participants ranked by balance, highest first"""
        table = pd.DataFrame(
            [{
                "participant_id": p.id,
                "name": p.name,
                "balance": round(p.balance, 2),
                "active_players": len(p.active_players),
                "substituted_players": len(p.substituted_players),
            } for p in self._participants],
            columns=["participant_id", "name", "balance", "active_players",
                     "substituted_players"],
        )
        return table.sort_values("balance", ascending=False, kind="stable").set_index(
            "participant_id"
        )

    @_serialized
    def get_participant_statistics(self) -> pd.DataFrame:
        """
        Per-participant summary for the end of the game

        Events are counted over every player the participant has held,
        substituted players included. The most valuable player is the one
        with the most events; ties go to the player listed first.

        Returns:
            DataFrame indexed by participant id, ranked by balance per player
        """
        counts = self._ledger.to_frame()["player_id"].value_counts()
        rows = []
        for participant in self._participants:
            players = participant.players
            player_counts = [int(counts.get(p.id, 0)) for p in players]
            mvp = None
            if any(player_counts):
                mvp = players[int(np.argmax(player_counts))].name
            rows.append({
                "participant_id": participant.id,
                "name": participant.name,
                "balance": round(participant.balance, 2),
                "players": len(players),
                "events": sum(player_counts),
                "most_valuable_player": mvp,
                "balance_per_player": (
                    round(participant.balance / len(players), 2) if players else 0.0
                ),
            })
        table = pd.DataFrame(rows, columns=["participant_id", "name", "balance", "players",
                                            "events", "most_valuable_player",
                                            "balance_per_player"])
        return table.sort_values("balance_per_player", ascending=False,
                                 kind="stable").set_index("participant_id")

    @_serialized
    def get_payments(self) -> pd.DataFrame:
        """
        Transfers that settle the final balances

        Returns:
            DataFrame with payer_id, payer, payee_id, payee and amount columns,
            one row per transfer
        """
        names = {p.id: p.name for p in self._participants}
        plan = plan_payments([(p.id, p.balance) for p in self._participants],
                             self.config.tolerance)
        return pd.DataFrame(
            [{
                "payer_id": payer,
                "payer": names[payer],
                "payee_id": payee,
                "payee": names[payee],
                "amount": amount,
            } for payer, payee, amount in plan],
            columns=["payer_id", "payer", "payee_id", "payee", "amount"],
        )

    # Restore

    @classmethod
    def restore(cls, *, name: Optional[str], config: SessionConfig, is_live_mode: bool,
                phase: GamePhase, teams: Sequence[Team], players: Sequence[Player],
                selected_players: Sequence[Player], participants: Sequence[Participant],
                bets: Sequence[Bet], entries: Sequence[LedgerEntry],
                session_id: Optional[str] = None) -> "GameSession":
        """
        Rebuild a session from materialized state

        Balances and rosters are taken as given; the ledger and substitution
        log are loaded in order without being re-applied.
        """
        session = cls(name=name, config=config, is_live_mode=is_live_mode)
        if session_id is not None:
            session.id = session_id
        session._teams.extend(teams)
        session._available_players.extend(players)
        session._selected_players.extend(selected_players)
        session._participants.extend(participants)
        session._bets.extend(bets)
        for entry in entries:
            session._ledger.append(entry)
            if isinstance(entry, Substitution):
                session._substitutions.append(entry)
        session.phase = phase
        OwnershipIndex(session._participants).check_invariants()
        return session

    def __repr__(self):
        return (f"GameSession(name={self.name!r}, phase={self.phase.value}, "
                f"participants={len(self._participants)}, entries={len(self._ledger)})")
