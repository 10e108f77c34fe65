"""
Errors raised by the round engine.

Every caller-facing rejection derives from CrashGameError and carries a
stable ``code`` so the transport layer can map it without string matching.
"""


class CrashGameError(Exception):
    """Base class for rejected bet/cashout requests."""

    code = "crash_game_error"
    message = "Request rejected"

    def __init__(self, message: str = None, **context):
        self.context = context
        super().__init__(message or self.message)


class InsufficientFunds(CrashGameError):
    code = "insufficient_funds"
    message = "Not enough balance!"


class BettingClosed(CrashGameError):
    code = "betting_closed"
    message = "Betting is closed!"


class DuplicateBet(CrashGameError):
    code = "duplicate_bet"
    message = "Bet already placed this round"


class NoActiveBet(CrashGameError):
    code = "no_active_bet"
    message = "No active bet or already cashed out!"


class RoundNotRunning(CrashGameError):
    code = "round_not_running"
    message = "Round is not running"


class InvalidAmount(CrashGameError):
    code = "invalid_amount"
    message = "Amount must be a positive number"


class InvariantViolation(RuntimeError):
    """Internal state is inconsistent. Never caught by the engine."""
    pass
