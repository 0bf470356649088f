"""
Unit tests for settlement and ownership
"""
import unittest

from luckyslip.config import SettlementPolicy
from luckyslip.exceptions import RosterInvariantError
from luckyslip.models import Bet, EventType, Participant, Player
from luckyslip.ownership import OwnershipIndex
from luckyslip.settlement import (
    Settlement,
    SettlementCalculator,
    amounts_equal,
    apply_delta,
    find_bet,
    is_effectively_zero,
    plan_payments,
)


class TestFindBet(unittest.TestCase):
    """Test bet lookup"""

    def setUp(self):
        self.goal = Bet(EventType.GOAL, 5.0)
        self.hat_trick = Bet(EventType.CUSTOM, 15.0, name="Hat Trick Celebration")
        self.dive = Bet(EventType.CUSTOM, -4.0, name="Dive")
        self.bets = [self.goal, self.hat_trick, self.dive]

    def test_standard_lookup(self):
        self.assertIs(find_bet(self.bets, EventType.GOAL), self.goal)
        self.assertIsNone(find_bet(self.bets, EventType.RED_CARD))

    def test_custom_lookup_by_exact_name(self):
        self.assertIs(find_bet(self.bets, EventType.CUSTOM, "Dive"), self.dive)
        self.assertIsNone(find_bet(self.bets, EventType.CUSTOM, "dive"))
        self.assertIsNone(find_bet(self.bets, EventType.CUSTOM, None))


class TestSettlementCalculator(unittest.TestCase):
    """Test SettlementCalculator"""

    def test_split_two_participants(self):
        """Test owner gains the stake and the other participant pays it"""
        settlement = SettlementCalculator().settle(
            EventType.GOAL, Bet(EventType.GOAL, 5.0), "a", ["a", "b"]
        )
        self.assertEqual(settlement.as_dict(), {"a": 5.0, "b": -5.0})
        self.assertEqual(settlement.amount, 5.0)
        self.assertTrue(is_effectively_zero(settlement.total))

    def test_split_three_participants(self):
        """Test the stake cost is shared by every other participant"""
        settlement = SettlementCalculator().settle(
            EventType.GOAL, Bet(EventType.GOAL, 6.0), "a", ["a", "b", "c"]
        )
        self.assertEqual(settlement.as_dict(), {"a": 6.0, "b": -3.0, "c": -3.0})

    def test_per_opponent(self):
        """Test every other participant pays the full stake"""
        calculator = SettlementCalculator(policy=SettlementPolicy.PER_OPPONENT)
        settlement = calculator.settle(
            EventType.GOAL, Bet(EventType.GOAL, 5.0), "a", ["a", "b", "c"]
        )
        self.assertEqual(settlement.as_dict(), {"a": 10.0, "b": -5.0, "c": -5.0})

    def test_negative_bet(self):
        """Test a negative stake makes the owner pay"""
        settlement = SettlementCalculator().settle(
            EventType.RED_CARD, Bet(EventType.RED_CARD, -10.0), "a", ["a", "b"]
        )
        self.assertEqual(settlement.as_dict(), {"a": -10.0, "b": 10.0})

    def test_single_participant_is_one_sided(self):
        settlement = SettlementCalculator().settle(
            EventType.GOAL, Bet(EventType.GOAL, 5.0), "a", ["a"]
        )
        self.assertEqual(settlement.as_dict(), {"a": 5.0})

    def test_no_bet_or_owner(self):
        """Test missing bets and owners settle nothing"""
        calculator = SettlementCalculator()
        self.assertTrue(calculator.settle(EventType.GOAL, None, "a", ["a", "b"]).is_empty)
        self.assertTrue(
            calculator.settle(EventType.GOAL, Bet(EventType.GOAL, 5.0), None, ["a", "b"]).is_empty
        )

    def test_custom_events_are_one_sided_by_default(self):
        bet = Bet(EventType.CUSTOM, 15.0, name="Hat Trick Celebration")
        settlement = SettlementCalculator().settle(EventType.CUSTOM, bet, "a", ["a", "b"])
        self.assertEqual(settlement.as_dict(), {"a": 15.0})

    def test_custom_events_zero_sum(self):
        bet = Bet(EventType.CUSTOM, 15.0, name="Hat Trick Celebration")
        calculator = SettlementCalculator(custom_events_zero_sum=True)
        settlement = calculator.settle(EventType.CUSTOM, bet, "a", ["a", "b", "c"])
        self.assertEqual(settlement.as_dict(), {"a": 15.0, "b": -7.5, "c": -7.5})

    def test_mismatched_bet(self):
        with self.assertRaises(ValueError):
            SettlementCalculator().settle(
                EventType.GOAL, Bet(EventType.ASSIST, 1.0), "a", ["a", "b"]
            )

    def test_identical_inputs_identical_output(self):
        calculator = SettlementCalculator()
        bet = Bet(EventType.GOAL, 10.0)
        first = calculator.settle(EventType.GOAL, bet, "a", ["a", "b", "c"])
        second = calculator.settle(EventType.GOAL, bet, "a", ["a", "b", "c"])
        self.assertEqual(first, second)

    def test_invert(self):
        settlement = Settlement("a", 5.0, (("a", 5.0), ("b", -5.0)))
        inverse = settlement.invert()
        self.assertEqual(inverse.as_dict(), {"a": -5.0, "b": 5.0})
        self.assertEqual(inverse.amount, -5.0)


class TestAmounts(unittest.TestCase):
    """Test amount helpers"""

    def test_tolerance(self):
        self.assertTrue(is_effectively_zero(0.004))
        self.assertFalse(is_effectively_zero(0.02))
        self.assertTrue(amounts_equal(10.0, 10.005))

    def test_apply_delta_is_reversible(self):
        balance = apply_delta(0.1, 0.2)
        self.assertEqual(apply_delta(balance, -0.2), 0.1)


class TestPlanPayments(unittest.TestCase):
    """Test plan_payments"""

    def test_largest_debts_settle_first(self):
        """Test the greedy plan clears every balance"""
        balances = [("a", 12.5), ("b", -10.0), ("c", -5.0), ("d", 2.5)]
        payments = plan_payments(balances)
        self.assertEqual(payments, [("b", "a", 10.0), ("c", "a", 2.5), ("c", "d", 2.5)])

        settled = dict(balances)
        for payer, payee, amount in payments:
            settled[payer] += amount
            settled[payee] -= amount
        self.assertTrue(all(is_effectively_zero(v) for v in settled.values()))

    def test_dust_is_ignored(self):
        self.assertEqual(plan_payments([("a", 0.004), ("b", -0.004)]), [])
        self.assertEqual(plan_payments([]), [])


class TestOwnershipIndex(unittest.TestCase):
    """Test OwnershipIndex"""

    def setUp(self):
        self.x = Player("X")
        self.y = Player("Y")
        self.z = Player("Z")
        self.alice = Participant("Alice", active_players=[self.y], substituted_players=[self.x])
        self.bob = Participant("Bob", active_players=[self.z])
        self.index = OwnershipIndex([self.alice, self.bob])

    def test_owner_of_active_player(self):
        self.assertIs(self.index.owner_of(self.y.id), self.alice)
        self.assertIs(self.index.owner_of(self.z.id), self.bob)

    def test_owner_of_substituted_player(self):
        """Test a substituted player still belongs to their old owner"""
        self.assertIs(self.index.owner_of(self.x.id), self.alice)
        self.assertIsNone(self.index.active_owner_of(self.x.id))

    def test_unassigned_player(self):
        self.assertIsNone(self.index.owner_of(Player("Nobody").id))

    def test_owners_by_player(self):
        owners = self.index.owners_by_player()
        self.assertEqual({pid: p.name for pid, p in owners.items()},
                         {self.x.id: "Alice", self.y.id: "Alice", self.z.id: "Bob"})

    def test_invariants_hold(self):
        self.index.check_invariants()

    def test_duplicate_active_player(self):
        self.bob.active_players.append(self.y)
        with self.assertRaises(RosterInvariantError):
            self.index.check_invariants()

    def test_active_and_substituted(self):
        self.alice.active_players.append(self.x)
        with self.assertRaises(RosterInvariantError):
            self.index.check_invariants()


if __name__ == "__main__":
    unittest.main()
