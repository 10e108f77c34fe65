import unittest
from decimal import Decimal
from unittest.mock import MagicMock

from crashline.core.crash_point import CrashPointSelector
from crashline.core.rng import TrueRNG

TRIALS = 2000


def scripted_rng(*floats):
    """A TrueRNG whose random_float returns ``floats`` in order."""
    rng = TrueRNG()
    rng.random_float = MagicMock(side_effect=list(floats))
    return rng


class TestCrashPointRanges(unittest.TestCase):
    """Statistical checks against the real secrets-backed RNG."""

    def setUp(self):
        self.selector = CrashPointSelector(house_floor=Decimal("80000"))

    def test_empty_round_draws_high(self):
        for _ in range(TRIALS):
            point = self.selector.select(Decimal("100000"), bet_count=0)
            self.assertGreaterEqual(point, Decimal("8"))
            self.assertLess(point, Decimal("15"))

    def test_house_protection_draws_low(self):
        instant = 0
        for _ in range(TRIALS):
            point = self.selector.select(Decimal("70000"), bet_count=3)
            if point == Decimal("1.10"):
                instant += 1
            else:
                self.assertGreaterEqual(point, Decimal("1.30"))
                self.assertLess(point, Decimal("2.50"))
        # Roughly half of the rounds crash instantly.
        self.assertGreater(instant, TRIALS * 0.4)
        self.assertLess(instant, TRIALS * 0.6)

    def test_house_protection_wins_over_empty_round(self):
        for _ in range(200):
            point = self.selector.select(Decimal("70000"), bet_count=0)
            self.assertLess(point, Decimal("2.50"))

    def test_engagement_draws_below_lowest_ceiling(self):
        for _ in range(TRIALS):
            point = self.selector.select(Decimal("100000"), bet_count=2, cashed_out_count=0)
            self.assertGreaterEqual(point, Decimal("1.20"))
            self.assertLess(point, Decimal("2.0"))

    def test_two_decimal_places(self):
        for _ in range(200):
            point = self.selector.select(Decimal("100000"), bet_count=0)
            self.assertEqual(point, point.quantize(Decimal("0.01")))


class TestCrashPointPolicy(unittest.TestCase):

    def test_instant_crash_branch(self):
        selector = CrashPointSelector(Decimal("80000"), rng=scripted_rng(0.2))
        self.assertEqual(selector.select(Decimal("79999.99"), 1), Decimal("1.10"))

    def test_recovery_branch_stays_below_upper_bound(self):
        selector = CrashPointSelector(Decimal("80000"), rng=scripted_rng(0.9, 0.999999999999))
        self.assertEqual(selector.select(Decimal("0"), 1), Decimal("2.49"))

    def test_floor_is_exclusive(self):
        selector = CrashPointSelector(Decimal("80000"), rng=scripted_rng(0.0))
        # Exactly at the floor is not protection mode: empty round draws from 8x.
        self.assertEqual(selector.select(Decimal("80000"), 0), Decimal("8.00"))

    def test_default_bucket_low_ceiling(self):
        selector = CrashPointSelector(Decimal("80000"), rng=scripted_rng(0.5, 0.5))
        # ceiling 1.5 (0.5 < 0.6), then 1.2 + 0.3 * 0.5
        self.assertEqual(selector.select(Decimal("100000"), 4), Decimal("1.35"))

    def test_default_bucket_high_ceiling(self):
        selector = CrashPointSelector(Decimal("80000"), rng=scripted_rng(0.7, 0.5))
        self.assertEqual(selector.select(Decimal("100000"), 4), Decimal("1.60"))

    def test_heavy_cashout_bucket(self):
        selector = CrashPointSelector(Decimal("80000"), rng=scripted_rng(0.9, 0.0))
        self.assertEqual(selector.select(Decimal("100000"), 10, cashed_out_count=8), Decimal("1.20"))

    def test_bucket_ceilings(self):
        selector = CrashPointSelector(Decimal("80000"), rng=scripted_rng(0.9, 0.1, 0.9, 0.1))
        self.assertEqual(selector.ceiling_for(0.8), Decimal("5.5"))
        self.assertEqual(selector.ceiling_for(0.8), Decimal("4.5"))
        self.assertEqual(selector.ceiling_for(0.5), Decimal("3.5"))
        self.assertEqual(selector.ceiling_for(0.5), Decimal("2.5"))


if __name__ == "__main__":
    unittest.main()
