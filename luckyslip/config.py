"""
Configuration for game sessions
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

# Constants
BALANCE_TOLERANCE = 0.01
BALANCE_PRECISION = 9


class SettlementPolicy(Enum):
    """How a stake is shared between the owner and the other participants"""

    # Owner gains the stake, everyone else shares its cost evenly
    SPLIT = "split"
    # Every other participant pays the full stake to the owner
    PER_OPPONENT = "per_opponent"


@dataclass(frozen=True)
class SessionConfig:
    """
    Settings for a single game session

    Args:
        settlement_policy: How standard stakes are split (default: SPLIT)
        custom_events_zero_sum: Settle custom events against the other
            participants instead of crediting the owner alone (default: False)
        random_state: Seed for random player assignment (default: None)
        tolerance: Equality tolerance for balances (default: 0.01)
    """

    settlement_policy: SettlementPolicy = SettlementPolicy.SPLIT
    custom_events_zero_sum: bool = False
    random_state: Optional[int] = None
    tolerance: float = BALANCE_TOLERANCE

    def __post_init__(self):
        """Validate configuration"""
        if not isinstance(self.settlement_policy, SettlementPolicy):
            raise ValueError(f"Unknown settlement policy: {self.settlement_policy!r}")
        if self.tolerance <= 0:
            raise ValueError("Tolerance must be positive")
