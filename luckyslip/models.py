"""
Data models for the Lucky Slip game engine
"""
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Tuple


def new_id() -> str:
    """Generate a new opaque identifier"""
    return uuid.uuid4().hex


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Position(Enum):
    """Playing position of a footballer"""

    GOALKEEPER = "Goalkeeper"
    DEFENDER = "Defender"
    MIDFIELDER = "Midfielder"
    FORWARD = "Forward"


class EventType(Enum):
    """Kinds of match events a bet can be placed on"""

    GOAL = "Goal"
    ASSIST = "Assist"
    YELLOW_CARD = "Yellow Card"
    RED_CARD = "Red Card"
    OWN_GOAL = "Own Goal"
    PENALTY = "Penalty Scored"
    PENALTY_MISSED = "Penalty Missed"
    CLEAN_SHEET = "Clean Sheet"
    CUSTOM = "Custom Event"

    @property
    def is_custom(self) -> bool:
        return self is EventType.CUSTOM


STANDARD_EVENT_TYPES = frozenset(t for t in EventType if not t.is_custom)

# Column names used for per-player statistics, one per event type
EVENT_STAT_COLUMNS = {
    EventType.GOAL: "goals",
    EventType.ASSIST: "assists",
    EventType.YELLOW_CARD: "yellow_cards",
    EventType.RED_CARD: "red_cards",
    EventType.OWN_GOAL: "own_goals",
    EventType.PENALTY: "penalties_scored",
    EventType.PENALTY_MISSED: "penalties_missed",
    EventType.CLEAN_SHEET: "clean_sheets",
    EventType.CUSTOM: "custom_events",
}


def counter_field(event_type: EventType) -> Optional[str]:
    """
    Name of the cached Player counter an event type bumps

    Args:
        event_type: Type of the recorded event

    Returns:
        Attribute name on Player, or None when the type has no counter
    """
    if event_type is EventType.GOAL:
        return "goals"
    if event_type is EventType.ASSIST:
        return "assists"
    if event_type is EventType.YELLOW_CARD:
        return "yellow_cards"
    if event_type is EventType.RED_CARD:
        return "red_cards"
    if event_type in (EventType.OWN_GOAL, EventType.PENALTY, EventType.PENALTY_MISSED,
                      EventType.CLEAN_SHEET, EventType.CUSTOM):
        return None
    raise ValueError(f"Unhandled event type: {event_type!r}")


@dataclass(frozen=True)
class Team:
    """A real football team"""

    name: str
    short_name: str
    primary_color: str = "#000000"
    id: str = field(default_factory=new_id)


@dataclass(eq=False)
class Player:
    """
    A real footballer that participants can own

    The goal/assist/card counters are a cache kept in step with the event
    ledger; the ledger is the source of truth.
    """

    name: str
    team: Optional[Team] = None
    position: Position = Position.MIDFIELDER
    id: str = field(default_factory=new_id)
    external_id: Optional[str] = None

    goals: int = 0
    assists: int = 0
    yellow_cards: int = 0
    red_cards: int = 0

    def __post_init__(self):
        """Validate player data"""
        for name in ("goals", "assists", "yellow_cards", "red_cards"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")

    def __eq__(self, other):
        if not isinstance(other, Player):
            return NotImplemented
        return self.id == other.id

    def __hash__(self):
        return hash(self.id)

    def record(self, event_type: EventType) -> None:
        """Bump the cached counter for an event type"""
        name = counter_field(event_type)
        if name is not None:
            setattr(self, name, getattr(self, name) + 1)

    def unrecord(self, event_type: EventType) -> None:
        """Reverse record(), never going below zero"""
        name = counter_field(event_type)
        if name is not None:
            setattr(self, name, max(0, getattr(self, name) - 1))


@dataclass(frozen=True)
class Bet:
    """A stake: the amount settled each time an event type occurs"""

    event_type: EventType
    amount: float
    name: Optional[str] = None
    id: str = field(default_factory=new_id)

    def __post_init__(self):
        """Validate bet data"""
        if not math.isfinite(self.amount):
            raise ValueError(f"Bet amount must be finite, got {self.amount}")
        if self.event_type.is_custom and not self.name:
            raise ValueError("Custom bets need a name")
        if not self.event_type.is_custom and self.name is not None:
            raise ValueError("Only custom bets can be named")

    @property
    def display_name(self) -> str:
        return self.name if self.event_type.is_custom else self.event_type.value


@dataclass(eq=False)
class Participant:
    """A person playing the game, holding a roster of players and a balance"""

    name: str
    id: str = field(default_factory=new_id)
    balance: float = 0.0
    active_players: List[Player] = field(default_factory=list)
    substituted_players: List[Player] = field(default_factory=list)

    def has_active(self, player_id: str) -> bool:
        return any(p.id == player_id for p in self.active_players)

    def has_substituted(self, player_id: str) -> bool:
        return any(p.id == player_id for p in self.substituted_players)

    def owns(self, player_id: str) -> bool:
        return self.has_active(player_id) or self.has_substituted(player_id)

    @property
    def players(self) -> List[Player]:
        """Every player this participant has held, active first"""
        return self.active_players + self.substituted_players

    def __str__(self):
        return f"{self.name}: {self.balance:+.2f}"


@dataclass(frozen=True)
class GameEvent:
    """
    A recorded match event together with the settlement it produced

    owner_id and deltas are resolved when the event is applied and never
    change afterwards, so undo and replay work from the entry alone.
    registered_player marks events that added their player to the pool.
    """

    player_id: str
    event_type: EventType
    timestamp: datetime = field(default_factory=utc_now)
    minute: Optional[int] = None
    custom_name: Optional[str] = None
    external_id: Optional[str] = None
    owner_id: Optional[str] = None
    settlement: Tuple[Tuple[str, float], ...] = ()
    registered_player: bool = False
    id: str = field(default_factory=new_id)

    def __post_init__(self):
        """Validate event data"""
        if self.event_type.is_custom and not self.custom_name:
            raise ValueError("Custom events need a name")

    @property
    def deltas(self) -> Dict[str, float]:
        return dict(self.settlement)

    @property
    def dedupe_key(self) -> tuple:
        """Identity used to reject re-delivered events"""
        if self.external_id is not None:
            return ("external", self.external_id)
        return ("event", self.player_id, self.event_type.value, self.custom_name,
                self.timestamp.isoformat())

    @property
    def display_name(self) -> str:
        return self.custom_name if self.event_type.is_custom else self.event_type.value


@dataclass(frozen=True)
class Substitution:
    """
    A roster change for one participant: player_off leaves, player_on joins

    The index fields record where the players sat in the owner's lists so
    undo can put them back exactly.
    """

    player_off_id: str
    player_on_id: str
    owner_id: str
    team: Optional[Team] = None
    minute: Optional[int] = None
    timestamp: datetime = field(default_factory=utc_now)
    external_id: Optional[str] = None
    off_index: int = 0
    on_substituted_index: Optional[int] = None
    created_player_on: bool = False
    id: str = field(default_factory=new_id)

    @property
    def dedupe_key(self) -> tuple:
        if self.external_id is not None:
            return ("external", self.external_id)
        return ("substitution", self.id)
