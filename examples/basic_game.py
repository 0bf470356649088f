"""
Basic example of playing a game by hand
"""
from luckyslip import EventType, GameSession, Player, Position, SessionConfig, Team


def main():
    """Run basic game example"""
    print("Lucky Slip - Basic Example\n")

    session = GameSession(name="Sunday league", config=SessionConfig(random_state=7))

    # Squads
    home = Team("Manchester United", "MUN", "#DA291C")
    away = Team("Chelsea", "CHE", "#034694")
    palmer = Player("Palmer", away, Position.MIDFIELDER)
    session.add_players([
        Player("Fernandes", home, Position.MIDFIELDER),
        Player("Hojlund", home, Position.FORWARD),
        palmer,
        Player("Jackson", away, Position.FORWARD),
    ])

    # Participants and stakes
    for name in ("Alice", "Bob"):
        session.add_participant(name)
    session.add_bet(EventType.GOAL, 5.0)
    session.add_bet(EventType.YELLOW_CARD, -2.0)
    session.add_custom_event("Hat Trick Celebration", 15.0)

    session.assign_players_randomly()
    for participant in session.participants:
        names = ", ".join(p.name for p in participant.active_players)
        print(f"{participant.name}: {names}")

    # Play
    session.record_event(palmer, EventType.GOAL, minute=23)
    session.substitute_player(palmer, Player("Nkunku", away, Position.FORWARD), minute=60)
    session.record_event(palmer, EventType.YELLOW_CARD, minute=61)
    session.undo_last_event()

    session.finish()
    print("\n" + "=" * 60)
    print(session.get_balance_table().to_string())
    print("=" * 60)
    print(f"Total balance: {session.total_balance():+.2f}")


if __name__ == "__main__":
    main()
