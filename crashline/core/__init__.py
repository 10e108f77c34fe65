"""Round engine and its components."""

from .bet_book import BetBook
from .clock import RoundClock, TimerHandle
from .crash_point import CrashPointSelector
from .engine import RoundEngine
from .exceptions import (
    BettingClosed,
    CrashGameError,
    DuplicateBet,
    InsufficientFunds,
    InvalidAmount,
    InvariantViolation,
    NoActiveBet,
    RoundNotRunning,
)
from .ledger import Ledger
from .models import Bet, BetStatus, LedgerSnapshot, Phase, RoundEvent, RoundSnapshot

__all__ = [
    "BetBook",
    "RoundClock",
    "TimerHandle",
    "CrashPointSelector",
    "RoundEngine",
    "Ledger",
    "Bet",
    "BetStatus",
    "LedgerSnapshot",
    "Phase",
    "RoundEvent",
    "RoundSnapshot",
    "CrashGameError",
    "InsufficientFunds",
    "BettingClosed",
    "DuplicateBet",
    "NoActiveBet",
    "RoundNotRunning",
    "InvalidAmount",
    "InvariantViolation",
]
