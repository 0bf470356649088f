"""
Command-line interface for the Lucky Slip game engine
"""
import argparse
import logging
import sys
from typing import List

from luckyslip.config import SessionConfig, SettlementPolicy
from luckyslip.live import LiveEventSync, MatchInfo, MatchStatus, RawEvent, RawEventType, StaticMatchFeed
from luckyslip.models import EventType, Player, Position, Team
from luckyslip.persistence import load_session, save_session
from luckyslip.session import GameSession

logger = logging.getLogger(__name__)

DEMO_MATCH_ID = "demo-1"


def create_sample_players() -> List[Player]:
    """Create a small two-team squad list for demonstration"""
    liverpool = Team("Liverpool", "LIV", "#C8102E")
    arsenal = Team("Arsenal", "ARS", "#EF0107")
    squads = [
        (liverpool, [("Alisson", Position.GOALKEEPER), ("Van Dijk", Position.DEFENDER),
                     ("Szoboszlai", Position.MIDFIELDER), ("Salah", Position.FORWARD),
                     ("Gakpo", Position.FORWARD)]),
        (arsenal, [("Raya", Position.GOALKEEPER), ("Saliba", Position.DEFENDER),
                   ("Rice", Position.MIDFIELDER), ("Odegaard", Position.MIDFIELDER),
                   ("Saka", Position.FORWARD)]),
    ]
    players = []
    for team, squad in squads:
        for number, (name, position) in enumerate(squad, start=1):
            players.append(Player(name=name, team=team, position=position,
                                  external_id=f"{team.short_name}-{number}"))
    return players


def create_sample_session(seed: int, policy: SettlementPolicy) -> GameSession:
    """Create a session with participants, bets and assigned players"""
    session = GameSession(
        name="Demo game",
        config=SessionConfig(settlement_policy=policy, random_state=seed),
    )
    session.add_players(create_sample_players())
    for name in ("Alice", "Bob", "Carol"):
        session.add_participant(name)
    session.add_bet(EventType.GOAL, 5.0)
    session.add_bet(EventType.ASSIST, 2.0)
    session.add_bet(EventType.YELLOW_CARD, -2.0)
    session.add_bet(EventType.RED_CARD, -10.0)
    session.add_custom_event("Hat Trick Celebration", 15.0)
    session.assign_players_randomly()
    return session


def create_sample_feed() -> StaticMatchFeed:
    """A finished match with one duplicate delivery and a substitution"""
    feed = StaticMatchFeed([MatchInfo(DEMO_MATCH_ID, MatchStatus.FINISHED, "Liverpool", "Arsenal")])
    for event in [
        RawEvent("e1", RawEventType.REGULAR, "LIV-4", 12),
        RawEvent("e2", RawEventType.ASSIST, "LIV-3", 12),
        RawEvent("e3", RawEventType.YELLOW, "ARS-3", 30),
        RawEvent("e1", RawEventType.REGULAR, "LIV-4", 12),
        RawEvent("s1", RawEventType.SUBSTITUTION, "LIV-4", 60, player_on_id="LIV-9"),
        RawEvent("e4", RawEventType.PENALTY, "ARS-5", 71),
        RawEvent("e5", RawEventType.REGULAR, "LIV-4", 90),
    ]:
        feed.push(DEMO_MATCH_ID, event)
    return feed


def print_summary(session: GameSession) -> None:
    print("\n" + "=" * 60)
    print(f"{session.name or 'Game'} ({session.phase.value})")
    print("=" * 60)
    print(session.get_balance_table().to_string())
    print("-" * 60)
    stats = session.get_player_statistics()
    print(stats[["name", "team", "owner", "goals", "assists", "yellow_cards",
                 "red_cards"]].to_string())
    print("-" * 60)
    payments = session.get_payments()
    if payments.empty:
        print("No payments needed")
    for row in payments.itertuples():
        print(f"{row.payer} pays {row.payee} {row.amount:.2f}")
    print("-" * 60)
    print(f"Events: {len(session.events)}  Substitutions: {len(session.substitutions)}  "
          f"Total balance: {session.total_balance():+.2f}")
    print("=" * 60 + "\n")


def demo_command(args):
    """Handle demo command"""
    session = create_sample_session(args.seed, SettlementPolicy(args.policy))
    session.is_live_mode = True

    sync = LiveEventSync(session, create_sample_feed(), DEMO_MATCH_ID, sleep=lambda _: None)
    sync.run(max_polls=1)

    scorer = session.get_player("LIV-4")
    if scorer is not None:
        session.record_custom_event(scorer, "Hat Trick Celebration", minute=90)

    session.finish()
    print_summary(session)

    if args.save:
        save_session(session, args.save)
        print(f"Saved game to {args.save}\n")
    return 0


def summary_command(args):
    """Handle summary command"""
    try:
        session = load_session(args.path)
    except (OSError, ValueError) as exc:
        logger.error("Could not load %s: %s", args.path, exc)
        return 1

    if args.recalculate:
        session.recalculate_balances()
    print_summary(session)
    return 0


def main(argv=None):
    """Main CLI entry point"""
    parser = argparse.ArgumentParser(
        description="Peer-to-peer football betting game engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Play a scripted demo match and save it
  luckyslip demo --seed 7 --save game.json

  # Show balances and statistics of a saved game
  luckyslip summary game.json --recalculate
        """
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    demo_parser = subparsers.add_parser("demo", help="Play a scripted demo match")
    demo_parser.add_argument("--seed", type=int, default=42,
                             help="Seed for player assignment (default: 42)")
    demo_parser.add_argument("--policy", choices=[p.value for p in SettlementPolicy],
                             default=SettlementPolicy.SPLIT.value,
                             help="How stakes are shared (default: split)")
    demo_parser.add_argument("--save", metavar="PATH", help="Save the finished game as JSON")
    demo_parser.set_defaults(func=demo_command)

    summary_parser = subparsers.add_parser("summary", help="Summarize a saved game")
    summary_parser.add_argument("path", help="Saved game JSON file")
    summary_parser.add_argument("--recalculate", action="store_true",
                                help="Rebuild balances from the event ledger")
    summary_parser.set_defaults(func=summary_command)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
