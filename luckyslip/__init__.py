"""
Lucky Slip - peer-to-peer betting game engine for real football matches
"""

__version__ = "0.1.0"
__author__ = "Andy Cheng"

from luckyslip.config import SessionConfig, SettlementPolicy
from luckyslip.exceptions import GameSessionError, SessionClosedError, SetupLockedError
from luckyslip.models import Bet, EventType, GameEvent, Participant, Player, Position, Substitution, Team
from luckyslip.session import GamePhase, GameSession

__all__ = [
    "GameSession",
    "GamePhase",
    "SessionConfig",
    "SettlementPolicy",
    "Team",
    "Player",
    "Position",
    "Participant",
    "Bet",
    "EventType",
    "GameEvent",
    "Substitution",
    "GameSessionError",
    "SetupLockedError",
    "SessionClosedError",
]
