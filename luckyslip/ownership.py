"""
Player ownership lookups across participant rosters
"""
from typing import Dict, Optional, Sequence

from luckyslip.exceptions import RosterInvariantError
from luckyslip.models import Participant


class OwnershipIndex:
    """
    Answers which participant is settled for a player's events

    The index holds no state of its own; it reads the rosters it is given
    every time it is asked.
    """

    def __init__(self, participants: Sequence[Participant]):
        self.participants = participants

    def owner_of(self, player_id: str) -> Optional[Participant]:
        """
        Find the participant entitled to a player's events

        Active rosters are searched first, then substituted players, so a
        player taken off keeps settling to the participant who held them.

        Args:
            player_id: Player to look up

        Returns:
            Owning participant, or None if the player was never assigned
        """
        owner = self.active_owner_of(player_id)
        if owner is not None:
            return owner
        for participant in self.participants:
            if participant.has_substituted(player_id):
                return participant
        return None

    def active_owner_of(self, player_id: str) -> Optional[Participant]:
        """Find the participant currently fielding a player"""
        for participant in self.participants:
            if participant.has_active(player_id):
                return participant
        return None

    def owners_by_player(self) -> Dict[str, Participant]:
        """Map every assigned player id to its owner"""
        owners = {}
        for participant in self.participants:
            for player in participant.substituted_players:
                owners.setdefault(player.id, participant)
        for participant in self.participants:
            for player in participant.active_players:
                owners[player.id] = participant
        return owners

    def check_invariants(self) -> None:
        """
        Verify roster exclusivity

        Raises:
            RosterInvariantError: a player is active for two participants, or
                both active and substituted for the same participant
        """
        active_seen: Dict[str, str] = {}
        for participant in self.participants:
            for player in participant.active_players:
                if player.id in active_seen:
                    raise RosterInvariantError(
                        f"Player {player.name} is active for both "
                        f"{active_seen[player.id]} and {participant.name}"
                    )
                active_seen[player.id] = participant.name
                if participant.has_substituted(player.id):
                    raise RosterInvariantError(
                        f"Player {player.name} is both active and substituted "
                        f"for {participant.name}"
                    )
