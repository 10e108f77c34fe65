import secrets
from decimal import Decimal, ROUND_DOWN


class TrueRNG:
    """
    A wrapper around Python's `secrets` module used for crash point draws.

    The draws are still a weighted heuristic, not a provably fair
    commitment: the source of randomness is strong, the policy is not.
    """

    PRECISION = 10**12

    def random_float(self) -> float:
        """Returns a random float in the range [0.0, 1.0)."""
        return secrets.randbelow(self.PRECISION) / self.PRECISION

    def chance(self, probability: float) -> bool:
        """True with the given probability."""
        return self.random_float() < probability

    def uniform(self, low: Decimal, high: Decimal) -> Decimal:
        """
        Uniform draw in [low, high) truncated to 2 decimal places.

        Truncation (not rounding) keeps the result inside the half-open range.
        """
        low, high = Decimal(low), Decimal(high)
        span = high - low
        value = low + span * Decimal(repr(self.random_float()))
        return value.quantize(Decimal("0.01"), rounding=ROUND_DOWN)


rng = TrueRNG()
