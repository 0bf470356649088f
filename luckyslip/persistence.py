"""
Snapshot of a game session as plain data, for save managers
"""
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from luckyslip.config import SessionConfig, SettlementPolicy
from luckyslip.ledger import LedgerEntry
from luckyslip.models import (
    Bet,
    EventType,
    GameEvent,
    Participant,
    Player,
    Position,
    Substitution,
    Team,
    utc_now,
)
from luckyslip.session import GamePhase, GameSession

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


def _team_to_dict(team: Team) -> Dict[str, Any]:
    return {"id": team.id, "name": team.name, "short_name": team.short_name,
            "primary_color": team.primary_color}


def _team_from_dict(data: Dict[str, Any]) -> Team:
    return Team(id=data["id"], name=data["name"], short_name=data["short_name"],
                primary_color=data.get("primary_color", "#000000"))


def _player_to_dict(player: Player) -> Dict[str, Any]:
    return {
        "id": player.id,
        "name": player.name,
        "team_id": player.team.id if player.team else None,
        "position": player.position.value,
        "external_id": player.external_id,
        "goals": player.goals,
        "assists": player.assists,
        "yellow_cards": player.yellow_cards,
        "red_cards": player.red_cards,
    }


def _player_from_dict(data: Dict[str, Any], teams: Dict[str, Team]) -> Player:
    return Player(
        id=data["id"],
        name=data["name"],
        team=teams.get(data.get("team_id")),
        position=Position(data.get("position", Position.MIDFIELDER.value)),
        external_id=data.get("external_id"),
        goals=data.get("goals", 0),
        assists=data.get("assists", 0),
        yellow_cards=data.get("yellow_cards", 0),
        red_cards=data.get("red_cards", 0),
    )


def _bet_to_dict(bet: Bet) -> Dict[str, Any]:
    return {"id": bet.id, "event_type": bet.event_type.value, "amount": bet.amount,
            "name": bet.name}


def _bet_from_dict(data: Dict[str, Any]) -> Bet:
    return Bet(id=data["id"], event_type=EventType(data["event_type"]),
               amount=float(data["amount"]), name=data.get("name"))


def _entry_to_dict(entry: LedgerEntry) -> Dict[str, Any]:
    if isinstance(entry, GameEvent):
        return {
            "kind": "event",
            "id": entry.id,
            "player_id": entry.player_id,
            "event_type": entry.event_type.value,
            "timestamp": entry.timestamp.isoformat(),
            "minute": entry.minute,
            "custom_name": entry.custom_name,
            "external_id": entry.external_id,
            "owner_id": entry.owner_id,
            "settlement": [[pid, delta] for pid, delta in entry.settlement],
            "registered_player": entry.registered_player,
        }
    return {
        "kind": "substitution",
        "id": entry.id,
        "player_off_id": entry.player_off_id,
        "player_on_id": entry.player_on_id,
        "owner_id": entry.owner_id,
        "team_id": entry.team.id if entry.team else None,
        "minute": entry.minute,
        "timestamp": entry.timestamp.isoformat(),
        "external_id": entry.external_id,
        "off_index": entry.off_index,
        "on_substituted_index": entry.on_substituted_index,
        "created_player_on": entry.created_player_on,
    }


def _entry_from_dict(data: Dict[str, Any], teams: Dict[str, Team]) -> LedgerEntry:
    kind = data.get("kind")
    if kind == "event":
        return GameEvent(
            id=data["id"],
            player_id=data["player_id"],
            event_type=EventType(data["event_type"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            minute=data.get("minute"),
            custom_name=data.get("custom_name"),
            external_id=data.get("external_id"),
            owner_id=data.get("owner_id"),
            settlement=tuple((pid, float(delta)) for pid, delta in data.get("settlement", [])),
            registered_player=data.get("registered_player", False),
        )
    if kind == "substitution":
        return Substitution(
            id=data["id"],
            player_off_id=data["player_off_id"],
            player_on_id=data["player_on_id"],
            owner_id=data["owner_id"],
            team=teams.get(data.get("team_id")),
            minute=data.get("minute"),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            external_id=data.get("external_id"),
            off_index=data.get("off_index", 0),
            on_substituted_index=data.get("on_substituted_index"),
            created_player_on=data.get("created_player_on", False),
        )
    raise ValueError(f"Unknown ledger entry kind: {kind!r}")


def session_to_dict(session: GameSession, name: Optional[str] = None) -> Dict[str, Any]:
    """
    Capture everything needed to rebuild a session

    Args:
        session: Session to capture
        name: Save name (default: the session's name)

    Returns:
        JSON-serializable dictionary
    """
    with session.locked():
        players = session.available_players
        seen = {p.id for p in players}
        for participant in session.participants:
            for player in participant.players:
                if player.id not in seen:
                    players.append(player)
                    seen.add(player.id)

        return {
            "version": SNAPSHOT_VERSION,
            "id": session.id,
            "name": name or session.name,
            "saved_at": utc_now().isoformat(),
            "phase": session.phase.value,
            "is_live_mode": session.is_live_mode,
            "config": {
                "settlement_policy": session.config.settlement_policy.value,
                "custom_events_zero_sum": session.config.custom_events_zero_sum,
                "random_state": session.config.random_state,
                "tolerance": session.config.tolerance,
            },
            "teams": [_team_to_dict(t) for t in session.teams],
            "players": [_player_to_dict(p) for p in players],
            "pool_player_ids": [p.id for p in session.available_players],
            "selected_player_ids": [p.id for p in session.selected_players],
            "participants": [
                {
                    "id": p.id,
                    "name": p.name,
                    "balance": p.balance,
                    "active_player_ids": [pl.id for pl in p.active_players],
                    "substituted_player_ids": [pl.id for pl in p.substituted_players],
                }
                for p in session.participants
            ],
            "bets": [_bet_to_dict(b) for b in session.bets],
            "ledger": [_entry_to_dict(e) for e in session.ledger_entries],
        }


def session_from_dict(data: Dict[str, Any]) -> GameSession:
    """
    Rebuild a session from session_to_dict() output

    Raises:
        ValueError: the snapshot is from an unsupported version or malformed
    """
    version = data.get("version")
    if version != SNAPSHOT_VERSION:
        raise ValueError(f"Unsupported snapshot version: {version!r}")

    teams = {t["id"]: _team_from_dict(t) for t in data.get("teams", [])}
    players = {p["id"]: _player_from_dict(p, teams) for p in data.get("players", [])}

    def lookup(ids: List[str]) -> List[Player]:
        try:
            return [players[pid] for pid in ids]
        except KeyError as exc:
            raise ValueError(f"Snapshot refers to unknown player {exc.args[0]}") from exc

    participants = [
        Participant(
            id=p["id"],
            name=p["name"],
            balance=float(p.get("balance", 0.0)),
            active_players=lookup(p.get("active_player_ids", [])),
            substituted_players=lookup(p.get("substituted_player_ids", [])),
        )
        for p in data.get("participants", [])
    ]

    config_data = data.get("config", {})
    config = SessionConfig(
        settlement_policy=SettlementPolicy(
            config_data.get("settlement_policy", SettlementPolicy.SPLIT.value)
        ),
        custom_events_zero_sum=config_data.get("custom_events_zero_sum", False),
        random_state=config_data.get("random_state"),
        tolerance=config_data.get("tolerance", SessionConfig().tolerance),
    )

    session = GameSession.restore(
        name=data.get("name"),
        config=config,
        is_live_mode=data.get("is_live_mode", False),
        phase=GamePhase(data.get("phase", GamePhase.SETUP.value)),
        teams=list(teams.values()),
        players=lookup(data.get("pool_player_ids", list(players))),
        selected_players=lookup(data.get("selected_player_ids", [])),
        participants=participants,
        bets=[_bet_from_dict(b) for b in data.get("bets", [])],
        entries=[_entry_from_dict(e, teams) for e in data.get("ledger", [])],
        session_id=data.get("id"),
    )
    logger.info("Restored game %s with %d ledger entries", session.name,
                len(session.ledger_entries))
    return session


def save_session(session: GameSession, path: str, name: Optional[str] = None) -> None:
    with open(path, "w") as fh:
        json.dump(session_to_dict(session, name), fh, indent=2)


def load_session(path: str) -> GameSession:
    with open(path) as fh:
        return session_from_dict(json.load(fh))
