"""
Example of driving a game from a live match feed
"""
from luckyslip import EventType, GameSession, SessionConfig
from luckyslip.cli import DEMO_MATCH_ID, create_sample_feed, create_sample_players
from luckyslip.live import LiveEventSync, MatchStatus


def main():
    """Run live sync example"""
    print("Lucky Slip - Live Sync Example\n")

    session = GameSession(name="Live game", config=SessionConfig(random_state=1),
                          is_live_mode=True)
    session.add_players(create_sample_players())
    for name in ("Alice", "Bob", "Carol", "Dave"):
        session.add_participant(name)
    session.add_bet(EventType.GOAL, 4.0)
    session.add_bet(EventType.YELLOW_CARD, -1.0)
    session.assign_players_randomly()

    feed = create_sample_feed()
    feed.set_status(DEMO_MATCH_ID, MatchStatus.IN_PLAY)

    # Poll twice: the second poll sees the same events and changes nothing
    sync = LiveEventSync(session, feed, DEMO_MATCH_ID, sleep=lambda seconds: None)
    print(f"First poll applied {len(sync.sync_once())} entries")
    print(f"Second poll applied {len(sync.sync_once())} entries")

    feed.set_status(DEMO_MATCH_ID, MatchStatus.FINISHED)
    sync.run()

    print("\n" + "=" * 60)
    print(session.get_balance_table().to_string())
    print("=" * 60)
    print(f"Balanced: {session.is_balanced()}")


if __name__ == "__main__":
    main()
