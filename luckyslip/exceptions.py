"""
Exceptions raised by the game engine and its live-data collaborators
"""


class GameSessionError(Exception):
    """Base class for game session misuse"""


class SetupLockedError(GameSessionError):
    """A setup-only operation was attempted after the game went live"""


class SessionClosedError(GameSessionError):
    """The session has finished and is read-only"""


class RosterInvariantError(GameSessionError):
    """A player ended up owned twice; always a bug in the engine"""


class LiveFeedError(Exception):
    """The live match-data provider failed to answer or sent garbage"""
