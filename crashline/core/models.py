"""
Shared value types for the round engine: phases, bets, events and
snapshots, plus the fixed-point helpers for money and multipliers.
"""

import math
import time
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_DOWN
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from crashline.core.exceptions import InvalidAmount, InvariantViolation

CENT = Decimal("0.01")
BASE_MULTIPLIER = Decimal("1.00")


def to_money(value) -> Decimal:
    """
    Convert an incoming amount to cents.

    Floats go through str() so 0.1 stays 0.1 instead of its binary expansion.
    Raises InvalidAmount for anything that is not a finite number, or is
    too large to hold in cents.
    """
    if isinstance(value, bool):
        raise InvalidAmount(amount=value)
    if isinstance(value, float) and not math.isfinite(value):
        raise InvalidAmount(amount=value)
    try:
        amount = Decimal(str(value))
        if not amount.is_finite():
            raise InvalidAmount(amount=value)
        # Too many digits for the context precision also lands here.
        return amount.quantize(CENT, rounding=ROUND_DOWN)
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidAmount(amount=value)


def to_multiplier(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_DOWN)


class Phase(str, Enum):
    IDLE = "idle"
    BETTING = "betting"
    RUNNING = "running"
    CRASHED = "crashed"


class BetStatus(str, Enum):
    ACTIVE = "active"
    WON = "won"
    LOST = "lost"


@dataclass
class Bet:
    """A single player's stake in the current round."""

    player_id: str
    stake: Decimal
    status: BetStatus = BetStatus.ACTIVE
    payout_multiplier: Optional[Decimal] = None
    winnings: Optional[Decimal] = None
    placed_at: float = field(default_factory=time.time)

    @property
    def cashed_out(self) -> bool:
        return self.status == BetStatus.WON

    @property
    def is_terminal(self) -> bool:
        return self.status != BetStatus.ACTIVE

    def win(self, multiplier: Decimal) -> Decimal:
        """Settle as a cashout at ``multiplier``; returns the winnings."""
        if self.is_terminal:
            raise InvariantViolation(
                f"Bet for {self.player_id} is already {self.status.value}"
            )
        self.status = BetStatus.WON
        self.payout_multiplier = multiplier
        self.winnings = (self.stake * multiplier).quantize(CENT, rounding=ROUND_DOWN)
        return self.winnings

    def lose(self):
        if self.is_terminal:
            raise InvariantViolation(
                f"Bet for {self.player_id} is already {self.status.value}"
            )
        self.status = BetStatus.LOST

    def to_dict(self) -> Dict[str, Any]:
        return {
            "player_id": self.player_id,
            "stake": float(self.stake),
            "status": self.status.value,
            "cashed_out": self.cashed_out,
            "multiplier": float(self.payout_multiplier) if self.payout_multiplier else None,
            "winnings": float(self.winnings) if self.winnings is not None else None,
        }


@dataclass(frozen=True)
class LedgerSnapshot:
    balances: Mapping[str, Decimal]
    house_balance: Decimal

    @property
    def total(self) -> Decimal:
        return sum(self.balances.values(), Decimal("0")) + self.house_balance

    def to_dict(self) -> Dict[str, Any]:
        return {
            "balances": {player: float(amount) for player, amount in self.balances.items()},
            "house_balance": float(self.house_balance),
        }


@dataclass(frozen=True)
class RoundEvent:
    """
    One broadcastable state change.

    ``seq`` increases by one for every event the engine emits, so a journal
    of events is enough to replay the money movements of a session.
    """

    seq: int
    type: str
    round_id: int
    data: Mapping[str, Any]
    at: float = field(default_factory=time.time)

    def to_message(self) -> Dict[str, Any]:
        return {"type": self.type, "seq": self.seq, "round_id": self.round_id, **self.data}


@dataclass(frozen=True)
class RoundSnapshot:
    phase: Phase
    round_id: int
    countdown: int
    multiplier: Decimal
    crash_point: Optional[Decimal]
    bet_count: int
    recent_crashes: Tuple[Decimal, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase.value,
            "round_id": self.round_id,
            "countdown": self.countdown,
            "multiplier": float(self.multiplier),
            "crash_point": float(self.crash_point) if self.crash_point is not None else None,
            "bet_count": self.bet_count,
            "recent_crashes": [float(point) for point in self.recent_crashes],
        }
