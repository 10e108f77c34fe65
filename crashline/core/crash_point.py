"""
Crash point selection.

A weighted heuristic over the house balance and the round's bets. The
randomness comes from `secrets`, but the policy is deliberately biased
(house protection, spectacle on empty rounds) and is NOT a provably fair
scheme: nothing is committed to players before the reveal.

Modes, in priority order:
- House protection: house below its floor -> 1.10x half the time, else
  1.30x-2.50x.
- Empty round: no bets -> 8x-15x.
- Engagement weighted: the more bets already cashed out, the higher the
  ceiling. The selector runs before any cashout is possible, so in
  practice only the lowest bucket (1.5x or 2.0x ceiling) is ever used.
"""

from decimal import Decimal
from typing import Optional

from crashline.core.logger import get_logger
from crashline.core.rng import TrueRNG, rng as default_rng

logger = get_logger("crash_point")


class CrashPointSelector:
    # House protection
    INSTANT_CRASH = Decimal("1.10")
    INSTANT_CRASH_CHANCE = 0.5
    RECOVERY_RANGE = (Decimal("1.30"), Decimal("2.50"))

    # Nobody is betting
    EMPTY_ROUND_RANGE = (Decimal("8.00"), Decimal("15.00"))

    # Engagement buckets: (cashout fraction above, chance of low ceiling, low, high)
    ENGAGEMENT_FLOOR = Decimal("1.20")
    ENGAGEMENT_BUCKETS = (
        (0.7, 0.5, Decimal("4.5"), Decimal("5.5")),
        (0.4, 0.5, Decimal("2.5"), Decimal("3.5")),
    )
    DEFAULT_BUCKET = (0.6, Decimal("1.5"), Decimal("2.0"))

    def __init__(self, house_floor: Decimal, rng: Optional[TrueRNG] = None):
        self.house_floor = Decimal(house_floor)
        self.rng = rng or default_rng

    def select(
        self,
        house_balance: Decimal,
        bet_count: int,
        cashed_out_count: int = 0,
    ) -> Decimal:
        """Pick the crash multiplier for the round. Never fails."""
        if house_balance < self.house_floor:
            logger.warning(
                f"House is recovering losses (balance {house_balance} < floor {self.house_floor})"
            )
            if self.rng.chance(self.INSTANT_CRASH_CHANCE):
                return self.INSTANT_CRASH
            return self.rng.uniform(*self.RECOVERY_RANGE)

        if bet_count == 0:
            logger.info("No players bet, setting high crash")
            return self.rng.uniform(*self.EMPTY_ROUND_RANGE)

        ceiling = self.ceiling_for(cashed_out_count / bet_count)
        return self.rng.uniform(self.ENGAGEMENT_FLOOR, ceiling)

    def ceiling_for(self, cashout_fraction: float) -> Decimal:
        for threshold, low_chance, low, high in self.ENGAGEMENT_BUCKETS:
            if cashout_fraction > threshold:
                return low if self.rng.chance(low_chance) else high
        low_chance, low, high = self.DEFAULT_BUCKET
        return low if self.rng.chance(low_chance) else high
