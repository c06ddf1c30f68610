"""
Exception taxonomy for the simulation core.

Commands raise these before mutating any state, so a rejected command
leaves the session exactly as it was. SchedulingDefect is the exception:
it signals a programming error and is never caught by the engine.
"""


class GameError(Exception):
    """Base exception for game-related errors."""

    pass


class ValidationError(GameError):
    """Raised when command or trade parameters are invalid."""

    pass


class InsufficientFundsError(ValidationError):
    """Raised when available balance cannot cover the required margin."""

    pass


class InvalidStateError(ValidationError):
    """Raised when a command is not allowed in the current session state."""

    pass


class PositionNotFoundError(GameError):
    """Raised when a position id is unknown to the ledger."""

    pass


class PositionAlreadyClosedError(GameError):
    """Raised when closing or modifying a position that is no longer open."""

    pass


class CollaboratorUnavailableError(GameError):
    """Raised when an external collaborator cannot be reached after retries."""

    pass


class MarketDataError(GameError):
    """Raised by market-data sources that cannot supply a price."""

    pass


class SchedulingDefect(RuntimeError):
    """Raised when a timer callback re-enters settlement. Always a bug."""

    pass
