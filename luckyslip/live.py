"""
Live match-data integration: provider event shapes and the polling loop
that feeds them into a game session
"""
import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from tenacity import RetryCallState, Retrying, retry_if_exception_type, wait_incrementing

from luckyslip.exceptions import LiveFeedError, SessionClosedError
from luckyslip.ledger import LedgerEntry
from luckyslip.models import EventType, Player
from luckyslip.session import GamePhase, GameSession

logger = logging.getLogger(__name__)

# Polling intervals in seconds
IN_PLAY_POLL_INTERVAL = 30
HALF_TIME_POLL_INTERVAL = 300
SCHEDULED_POLL_INTERVAL = 600
UNKNOWN_POLL_INTERVAL = 180

# Backoff after failed polls: 30s, 60s, 90s and so on, capped at 5 minutes
FEED_RETRY_WAIT = wait_incrementing(start=30, increment=30, max=300)


class RawEventType(Enum):
    """Event kinds as the provider reports them"""

    REGULAR = "REGULAR"
    PENALTY = "PENALTY"
    YELLOW = "YELLOW"
    RED = "RED"
    OWN = "OWN"
    ASSIST = "ASSIST"
    SUBSTITUTION = "SUBSTITUTION"


def map_raw_event_type(raw_type: RawEventType) -> Optional[EventType]:
    """
    Translate a provider event kind into the engine's event type

    Returns:
        Matching event type, or None for substitutions
    """
    if raw_type in (RawEventType.REGULAR, RawEventType.PENALTY):
        return EventType.GOAL
    if raw_type is RawEventType.YELLOW:
        return EventType.YELLOW_CARD
    if raw_type is RawEventType.RED:
        return EventType.RED_CARD
    if raw_type is RawEventType.OWN:
        return EventType.OWN_GOAL
    if raw_type is RawEventType.ASSIST:
        return EventType.ASSIST
    if raw_type is RawEventType.SUBSTITUTION:
        return None
    raise ValueError(f"Unhandled provider event type: {raw_type!r}")


class MatchStatus(Enum):
    """Match status as reported by the provider"""

    SCHEDULED = "SCHEDULED"
    IN_PLAY = "IN_PLAY"
    PAUSED = "PAUSED"
    FINISHED = "FINISHED"
    POSTPONED = "POSTPONED"
    CANCELLED = "CANCELLED"
    SUSPENDED = "SUSPENDED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_provider(cls, value: str) -> "MatchStatus":
        value = (value or "").upper()
        aliases = {"TIMED": cls.SCHEDULED, "LIVE": cls.IN_PLAY}
        if value in aliases:
            return aliases[value]
        try:
            return cls(value)
        except ValueError:
            logger.warning("Unknown match status: %s", value)
            return cls.UNKNOWN


def poll_interval(status: MatchStatus) -> Optional[int]:
    """
    Seconds to wait before polling a match again

    Returns:
        Interval in seconds, or None once the match will not change
    """
    if status is MatchStatus.IN_PLAY:
        return IN_PLAY_POLL_INTERVAL
    if status is MatchStatus.PAUSED:
        return HALF_TIME_POLL_INTERVAL
    if status in (MatchStatus.SCHEDULED, MatchStatus.POSTPONED, MatchStatus.SUSPENDED):
        return SCHEDULED_POLL_INTERVAL
    if status in (MatchStatus.FINISHED, MatchStatus.CANCELLED):
        return None
    return UNKNOWN_POLL_INTERVAL


@dataclass(frozen=True)
class RawEvent:
    """A single event from the provider's match feed"""

    external_id: str
    type: RawEventType
    player_id: str
    minute: Optional[int] = None
    player_on_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RawEvent":
        """
        Parse a provider payload

        Raises:
            LiveFeedError: required fields are missing or malformed
        """
        try:
            raw_type = RawEventType(str(data["type"]).upper())
            minute = data.get("minute")
            return cls(
                external_id=str(data["externalId"] if "externalId" in data else data["id"]),
                type=raw_type,
                player_id=str(data["playerId"]),
                minute=int(minute) if minute is not None else None,
                player_on_id=(str(data["playerOnId"])
                              if data.get("playerOnId") is not None else None),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise LiveFeedError(f"Malformed match event: {data!r}") from exc


@dataclass(frozen=True)
class MatchInfo:
    """Summary of one match as the provider reports it"""

    match_id: str
    status: MatchStatus
    home_team: Optional[str] = None
    away_team: Optional[str] = None
    minute: Optional[int] = None


class MatchFeed(ABC):
    """
    Live match-data provider

    Implementations own transport, rate limiting and caching; those are
    passed into the implementation, never looked up globally.
    """

    @abstractmethod
    def fetch_live_matches(self) -> List[MatchInfo]:
        """Matches currently in play or at half time"""

    @abstractmethod
    def fetch_upcoming_matches(self) -> List[MatchInfo]:
        """Matches that have not kicked off yet"""

    @abstractmethod
    def fetch_match_details(self, match_id: str) -> MatchInfo:
        """Current status of a match"""

    @abstractmethod
    def fetch_match_events(self, match_id: str) -> List[RawEvent]:
        """All events of a match so far; may repeat earlier deliveries"""


class StaticMatchFeed(MatchFeed):
    """
    In-memory feed for replays, demos and tests

    Args:
        matches: Initial match list (default: none)
    """

    def __init__(self, matches: Iterable[MatchInfo] = ()):
        self._matches: Dict[str, MatchInfo] = {m.match_id: m for m in matches}
        self._events: Dict[str, List[RawEvent]] = {}

    def add_match(self, match: MatchInfo) -> None:
        self._matches[match.match_id] = match

    def set_status(self, match_id: str, status: MatchStatus) -> None:
        match = self.fetch_match_details(match_id)
        self._matches[match_id] = MatchInfo(match.match_id, status, match.home_team,
                                            match.away_team, match.minute)

    def push(self, match_id: str, event: RawEvent) -> None:
        self._events.setdefault(match_id, []).append(event)

    def fetch_live_matches(self) -> List[MatchInfo]:
        return [m for m in self._matches.values()
                if m.status in (MatchStatus.IN_PLAY, MatchStatus.PAUSED)]

    def fetch_upcoming_matches(self) -> List[MatchInfo]:
        return [m for m in self._matches.values() if m.status is MatchStatus.SCHEDULED]

    def fetch_match_details(self, match_id: str) -> MatchInfo:
        if match_id not in self._matches:
            raise LiveFeedError(f"Unknown match: {match_id}")
        return self._matches[match_id]

    def fetch_match_events(self, match_id: str) -> List[RawEvent]:
        self.fetch_match_details(match_id)
        return list(self._events.get(match_id, []))


@dataclass
class SyncStats:
    polls: int = 0
    applied: int = 0
    failures: int = 0
    last_error: Optional[str] = None
    history: List[int] = field(default_factory=list)


class LiveEventSync:
    """
    Feeds provider events for one match into a game session

    Provider deliveries overlap between polls; the session rejects events it
    has already applied, so every poll can simply replay the full list.

    Args:
        session: Session to update
        feed: Provider to poll
        match_id: Match to follow
        sleep: Waits between polls (default: time.sleep)
    """

    def __init__(self, session: GameSession, feed: MatchFeed, match_id: str,
                 sleep: Callable[[float], Any] = time.sleep):
        self.session = session
        self.feed = feed
        self.match_id = match_id
        self.sleep = sleep
        self.stats = SyncStats()

    def apply(self, raw: RawEvent) -> Optional[LedgerEntry]:
        """
        Apply one provider event to the session

        Returns:
            The new ledger entry, or None if it changed nothing
        """
        if raw.type is RawEventType.SUBSTITUTION:
            return self._apply_substitution(raw)

        player = self.session.get_player(raw.player_id)
        if player is None:
            logger.warning("Feed event %s refers to unknown player %s", raw.external_id,
                           raw.player_id)
            return None
        return self.session.record_event(player, map_raw_event_type(raw.type),
                                         minute=raw.minute, external_id=raw.external_id)

    def _apply_substitution(self, raw: RawEvent) -> Optional[LedgerEntry]:
        player_off = self.session.get_player(raw.player_id)
        if player_off is None or raw.player_on_id is None:
            logger.warning("Cannot apply feed substitution %s", raw.external_id)
            return None
        player_on = self.session.get_player(raw.player_on_id)
        if player_on is None:
            player_on = Player(name=f"Player {raw.player_on_id}", team=player_off.team,
                               external_id=raw.player_on_id)
        return self.session.substitute_player(player_off, player_on, minute=raw.minute,
                                              external_id=raw.external_id)

    def sync_once(self) -> List[LedgerEntry]:
        """
        Fetch the match's events and apply the new ones

        Nothing is applied once the session has finished.

        Raises:
            LiveFeedError: the provider failed; the session is untouched

        Returns:
            Ledger entries created by this poll
        """
        if self.session.phase is GamePhase.SUMMARY:
            logger.info("Game has finished, ignoring match %s", self.match_id)
            return []

        events = self.feed.fetch_match_events(self.match_id)
        applied = []
        for raw in events:
            try:
                entry = self.apply(raw)
            except SessionClosedError:
                logger.info("Game finished during sync of match %s", self.match_id)
                break
            if entry is not None:
                applied.append(entry)
        self.stats.applied += len(applied)
        if applied:
            logger.info("Applied %d new events for match %s", len(applied), self.match_id)
        return applied

    def _poll(self) -> MatchStatus:
        self.stats.polls += 1
        try:
            status = self.feed.fetch_match_details(self.match_id).status
            self.stats.history.append(len(self.sync_once()))
        except LiveFeedError as exc:
            self.stats.failures += 1
            self.stats.last_error = str(exc)
            raise
        return status

    def _game_finished(self) -> bool:
        if self.session.phase is GamePhase.SUMMARY:
            logger.info("Game has finished, stopping sync of match %s", self.match_id)
            return True
        return False

    def _log_retry(self, retry_state: RetryCallState) -> None:
        logger.warning("Polling match %s failed (attempt %d): %s; retrying in %ds",
                       self.match_id, retry_state.attempt_number,
                       retry_state.outcome.exception(), retry_state.next_action.sleep)

    def run(self, stop_event: Optional[threading.Event] = None,
            max_polls: Optional[int] = None) -> SyncStats:
        """
        Poll until the match is over, the game has finished, stop_event is
        set or max_polls is hit

        Provider failures are logged and retried with FEED_RETRY_WAIT.
        """
        def done(retry_state: Optional[RetryCallState] = None) -> bool:
            if stop_event is not None and stop_event.is_set():
                return True
            return max_polls is not None and self.stats.polls >= max_polls

        retrying = Retrying(
            retry=retry_if_exception_type(LiveFeedError),
            wait=FEED_RETRY_WAIT,
            stop=done,
            sleep=self.sleep,
            before_sleep=self._log_retry,
            retry_error_callback=lambda retry_state: None,
        )

        while not done() and not self._game_finished():
            status = retrying(self._poll)
            if status is None:
                logger.warning("Giving up on match %s: %s", self.match_id,
                               self.stats.last_error)
                break
            if self._game_finished():
                break

            interval = poll_interval(status)
            if interval is None:
                logger.info("Match %s is %s, stopping", self.match_id, status.value)
                break
            self.sleep(interval)
        return self.stats
