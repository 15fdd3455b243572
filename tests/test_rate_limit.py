"""
RateLimitDelay test suite.

Drives the token bucket with a manual clock: sleeping advances time
instantly, so waits are observable without real delays.
"""

import unittest

from claimledger import DelayIntegrityError, RateLimitDelay


class ManualClock:

    def __init__(self, start=0.0):
        self.now = start
        self.slept = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.slept.append(seconds)
        self.now += seconds


class TestTokenBucket(unittest.TestCase):

    def setUp(self):
        self.clock = ManualClock()
        self.delay = RateLimitDelay(rate=2.0, capacity=3, clock=self.clock, sleep=self.clock.sleep)

    def test_burst_passes_without_waiting(self):
        for _ in range(3):
            self.delay.tick()
        self.assertEqual(self.clock.slept, [])
        self.assertEqual(self.delay.stats()["ticks"], 3)

    def test_empty_bucket_waits_for_refill(self):
        for _ in range(3):
            self.delay.tick()
        self.delay.tick()
        self.assertEqual(self.clock.slept, [0.5])
        self.assertEqual(self.clock.now, 0.5)
        self.assertEqual(self.delay.stats()["waits"], 1)

    def test_long_run_rate_is_held(self):
        for _ in range(3 + 10):
            self.delay.tick()
        # 10 ticks past the burst at 2 per second
        self.assertEqual(self.clock.now, 5.0)

    def test_refill_is_capped_at_capacity(self):
        self.clock.now = 100.0
        for _ in range(3):
            self.delay.tick()
        self.delay.tick()
        self.assertEqual(self.clock.slept, [0.5])

    def test_check_reports_retry_after(self):
        for _ in range(3):
            self.assertTrue(self.delay.check().allowed)
        result = self.delay.check()
        self.assertFalse(result.allowed)
        self.assertEqual(result.retry_after, 0.5)

    def test_invalid_parameters(self):
        with self.assertRaises(ValueError):
            RateLimitDelay(rate=0, capacity=1)
        with self.assertRaises(ValueError):
            RateLimitDelay(rate=1, capacity=0)


class TestDelayIntegrity(unittest.TestCase):

    def test_clock_running_backwards_aborts(self):
        clock = ManualClock(start=10.0)
        delay = RateLimitDelay(rate=1.0, capacity=2, clock=clock, sleep=clock.sleep)
        delay.tick()
        clock.now = 5.0
        with self.assertRaises(DelayIntegrityError):
            delay.tick()

    def test_corrupted_bucket_aborts(self):
        clock = ManualClock()
        delay = RateLimitDelay(rate=1.0, capacity=2, clock=clock, sleep=clock.sleep)
        # refill caps at capacity, so bypass it to corrupt the bucket
        delay._refill = lambda: None
        delay._tokens = 50.0
        with self.assertRaises(DelayIntegrityError):
            delay.tick()


if __name__ == "__main__":
    unittest.main(verbosity=2)
