"""
Settlement of recorded events against the configured bets
"""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from luckyslip.config import BALANCE_PRECISION, BALANCE_TOLERANCE, SettlementPolicy
from luckyslip.models import STANDARD_EVENT_TYPES, Bet, EventType

logger = logging.getLogger(__name__)


def is_effectively_zero(value: float, tolerance: float = BALANCE_TOLERANCE) -> bool:
    return bool(np.isclose(value, 0.0, rtol=0.0, atol=tolerance))


def amounts_equal(a: float, b: float, tolerance: float = BALANCE_TOLERANCE) -> bool:
    return bool(np.isclose(a, b, rtol=0.0, atol=tolerance))


def total_amount(values: Iterable[float]) -> float:
    return float(np.sum(np.fromiter(values, dtype=float)))


def apply_delta(balance: float, delta: float) -> float:
    """
    Add a delta to a balance

    The result is rounded far below cent precision so that applying a delta
    and then its negation returns the original balance bit for bit.
    """
    return round(balance + delta, BALANCE_PRECISION)


def bet_matches(bet: Bet, event_type: EventType, custom_name: Optional[str] = None) -> bool:
    if event_type is EventType.CUSTOM:
        return bet.event_type is EventType.CUSTOM and bet.name == custom_name
    if event_type in STANDARD_EVENT_TYPES:
        return bet.event_type is event_type
    raise ValueError(f"Unhandled event type: {event_type!r}")


def find_bet(bets: Iterable[Bet], event_type: EventType,
             custom_name: Optional[str] = None) -> Optional[Bet]:
    """
    Find the bet that settles an event

    Args:
        bets: Bets configured for the session
        event_type: Type of the event
        custom_name: Exact bet name, for custom events

    Returns:
        Matching bet, or None when nothing is staked on this event
    """
    for bet in bets:
        if bet_matches(bet, event_type, custom_name):
            return bet
    return None


@dataclass(frozen=True)
class Settlement:
    """Signed balance changes produced by one event"""

    owner_id: Optional[str]
    amount: float = 0.0
    deltas: Tuple[Tuple[str, float], ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.deltas

    @property
    def total(self) -> float:
        return total_amount(delta for _, delta in self.deltas)

    def as_dict(self) -> Dict[str, float]:
        return dict(self.deltas)

    def invert(self) -> "Settlement":
        """The settlement that exactly cancels this one"""
        return Settlement(
            owner_id=self.owner_id,
            amount=-self.amount,
            deltas=tuple((pid, -delta) for pid, delta in self.deltas),
        )


class SettlementCalculator:
    """
    Pure mapping from an event and its bet to balance deltas

    Args:
        policy: How a standard stake is shared (default: SPLIT)
        custom_events_zero_sum: Settle custom events like standard ones
            instead of crediting only the owner (default: False)
    """

    def __init__(self, policy: SettlementPolicy = SettlementPolicy.SPLIT,
                 custom_events_zero_sum: bool = False):
        self.policy = policy
        self.custom_events_zero_sum = custom_events_zero_sum

    def settle(self, event_type: EventType, bet: Optional[Bet], owner_id: Optional[str],
               participant_ids: Sequence[str]) -> Settlement:
        """
        Compute the settlement for one event

        Args:
            event_type: Type of the recorded event
            bet: Bet matching the event, or None
            owner_id: Participant owning the player, or None
            participant_ids: Every participant in the session

        Returns:
            Settlement with one delta per affected participant
        """
        if bet is None or owner_id is None:
            return Settlement(owner_id=owner_id)
        if not bet_matches(bet, event_type, bet.name):
            raise ValueError(f"Bet {bet.display_name} cannot settle {event_type.value}")

        amount = float(bet.amount)
        opponents = [pid for pid in participant_ids if pid != owner_id]

        if not opponents or (event_type.is_custom and not self.custom_events_zero_sum):
            # One-sided: nobody on the other side of the stake
            deltas = ((owner_id, amount),)
        elif self.policy is SettlementPolicy.SPLIT:
            share = -amount / len(opponents)
            deltas = ((owner_id, amount),) + tuple((pid, share) for pid in opponents)
        elif self.policy is SettlementPolicy.PER_OPPONENT:
            deltas = ((owner_id, amount * len(opponents)),) + tuple(
                (pid, -amount) for pid in opponents
            )
        else:
            raise ValueError(f"Unhandled settlement policy: {self.policy!r}")

        logger.debug("Settled %s for %s: %s", bet.display_name, owner_id, deltas)
        return Settlement(owner_id=owner_id, amount=amount, deltas=deltas)


def plan_payments(balances: Sequence[Tuple[str, float]],
                  tolerance: float = BALANCE_TOLERANCE) -> List[Tuple[str, str, float]]:
    """
    Work out who pays whom to clear final balances

    Largest debts are matched with largest credits first, so the plan uses
    few transfers. Balances within tolerance of zero are left alone.

    Args:
        balances: (participant_id, balance) pairs
        tolerance: Amounts at or below this are ignored

    Returns:
        (payer_id, payee_id, amount) transfers in the order they were matched
    """
    debtors = sorted(([pid, -balance] for pid, balance in balances if balance < -tolerance),
                     key=lambda item: item[1], reverse=True)
    creditors = sorted(([pid, balance] for pid, balance in balances if balance > tolerance),
                       key=lambda item: item[1], reverse=True)

    payments = []
    while debtors and creditors:
        debtor, creditor = debtors[0], creditors[0]
        amount = min(debtor[1], creditor[1])
        payments.append((debtor[0], creditor[0], round(amount, 2)))
        debtor[1] -= amount
        creditor[1] -= amount
        if debtor[1] <= tolerance:
            debtors.pop(0)
        if creditor[1] <= tolerance:
            creditors.pop(0)
    return payments
