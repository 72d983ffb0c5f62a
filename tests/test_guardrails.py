import threading
import time
import unittest
from unittest.mock import patch

from api.movies.guardrails import RateLimitConfig, SlidingWindowRateLimiter, TTLCache


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TTLCacheTests(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.cache = TTLCache(default_ttl=60, clock=self.clock)

    def test_hit_before_deadline_miss_after(self):
        self.cache.set("m:1", "data", 0.1)
        self.clock.advance(0.05)
        self.assertEqual(self.cache.get("m:1"), ("data", True))
        self.clock.advance(0.1)
        self.assertEqual(self.cache.get("m:1"), (None, False))

    def test_ttl_cache_expires(self):
        cache = TTLCache(default_ttl=0.2)
        key = ("a",)
        cache.set(key, {"ok": True})
        self.assertEqual(cache.get(key), ({"ok": True}, True))
        time.sleep(0.3)
        self.assertEqual(cache.get(key), (None, False))

    def test_missing_key(self):
        self.assertEqual(self.cache.get("nope"), (None, False))

    def test_stored_none_is_still_found(self):
        self.cache.set("k", None)
        self.assertEqual(self.cache.get("k"), (None, True))

    def test_default_ttl_applies(self):
        self.cache.set("k", 1)
        self.clock.advance(59)
        self.assertEqual(self.cache.get("k"), (1, True))
        self.clock.advance(1)
        self.assertEqual(self.cache.get("k"), (None, False))

    def test_last_write_wins(self):
        self.cache.set("k", "v1", 10)
        self.cache.set("k", "v2", 10)
        self.assertEqual(self.cache.get("k"), ("v2", True))

    def test_overwrite_resets_deadline(self):
        self.cache.set("k", "v1", 1)
        self.clock.advance(0.9)
        self.cache.set("k", "v2", 1)
        self.clock.advance(0.9)
        self.assertEqual(self.cache.get("k"), ("v2", True))

    def test_get_does_not_extend_lifetime(self):
        self.cache.set("k", "v", 1)
        for _ in range(9):
            self.clock.advance(0.1)
            self.assertTrue(self.cache.get("k")[1])
        self.clock.advance(0.2)
        self.assertFalse(self.cache.get("k")[1])

    def test_zero_and_negative_ttl_read_as_absent(self):
        self.cache.set("zero", "v", 0)
        self.cache.set("negative", "v", -5)
        self.assertEqual(self.cache.get("zero"), (None, False))
        self.assertEqual(self.cache.get("negative"), (None, False))
        self.assertEqual(len(self.cache), 2)

    def test_delete(self):
        self.cache.set("k", "v")
        self.cache.delete("k")
        self.assertEqual(self.cache.get("k"), (None, False))
        # deleting an unknown key is a no-op
        self.cache.delete("k")
        self.cache.delete("never-set")

    def test_clear(self):
        for i in range(5):
            self.cache.set(f"movie:{i}", i)
        self.cache.clear()
        for i in range(5):
            self.assertEqual(self.cache.get(f"movie:{i}"), (None, False))
        self.assertEqual(len(self.cache), 0)

    def test_set_skipped_when_cleared_since_generation_read(self):
        generation = self.cache.generation
        self.cache.clear()
        self.assertEqual(self.cache.generation, generation + 1)
        self.assertFalse(self.cache.set("page", "stale", generation=generation))
        self.assertEqual(self.cache.get("page"), (None, False))

        self.assertTrue(self.cache.set("page", "fresh", generation=self.cache.generation))
        self.assertEqual(self.cache.get("page"), ("fresh", True))
        # without a generation the write is unconditional
        self.assertTrue(self.cache.set("page", "other"))

    def test_expired_entries_stay_until_purged(self):
        self.cache.set("old", 1, 1)
        self.cache.set("fresh", 2, 100)
        self.clock.advance(2)
        self.cache.get("old")
        self.assertEqual(len(self.cache), 2)
        self.assertEqual(self.cache.purge_expired(), 1)
        self.assertEqual(len(self.cache), 1)
        self.assertEqual(self.cache.get("fresh"), (2, True))


class RateLimiterTests(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()

    def limiter(self, max_requests: int, window_seconds: float) -> SlidingWindowRateLimiter:
        return SlidingWindowRateLimiter(RateLimitConfig(max_requests, window_seconds), clock=self.clock)

    def test_rate_limiter_blocks_after_limit(self):
        limiter = SlidingWindowRateLimiter(RateLimitConfig(max_requests=2, window_seconds=60))
        self.assertTrue(limiter.allow("ip"))
        self.assertTrue(limiter.allow("ip"))
        self.assertFalse(limiter.allow("ip"))

    def test_window_slides(self):
        limiter = self.limiter(3, 1)
        self.assertEqual([limiter.allow("a") for _ in range(3)], [True, True, True])
        self.assertFalse(limiter.allow("a"))
        self.clock.advance(1.1)
        self.assertTrue(limiter.allow("a"))

    def test_timestamp_exactly_one_window_old_still_counts(self):
        limiter = self.limiter(1, 1)
        self.assertTrue(limiter.allow("a"))
        self.clock.advance(1.0)
        self.assertFalse(limiter.allow("a"))
        self.clock.advance(0.001)
        self.assertTrue(limiter.allow("a"))

    def test_rejected_attempts_are_not_recorded(self):
        limiter = self.limiter(2, 1)
        limiter.allow("a")
        self.clock.advance(0.5)
        limiter.allow("a")
        for _ in range(10):
            self.assertFalse(limiter.allow("a"))
        # only the first admitted request has aged out
        self.clock.advance(0.6)
        self.assertTrue(limiter.allow("a"))
        self.assertFalse(limiter.allow("a"))

    def test_spaced_requests_are_never_locked_out(self):
        limiter = self.limiter(2, 1)
        for _ in range(50):
            self.assertTrue(limiter.allow("a"))
            self.clock.advance(0.6)

    def test_clients_are_isolated(self):
        limiter = self.limiter(2, 60)
        self.assertTrue(limiter.allow("10.0.0.1"))
        self.assertTrue(limiter.allow("10.0.0.1"))
        self.assertFalse(limiter.allow("10.0.0.1"))
        self.assertTrue(limiter.allow("10.0.0.2"))
        self.assertTrue(limiter.allow("10.0.0.2"))

    def test_degenerate_config_rejects(self):
        self.assertFalse(self.limiter(5, 0).allow("a"))
        self.assertFalse(self.limiter(5, -1).allow("a"))
        self.assertFalse(self.limiter(0, 60).allow("a"))

    def test_sweep_forgets_idle_clients(self):
        limiter = self.limiter(5, 1)
        for i in range(100):
            limiter.allow(f"client-{i}")
        self.clock.advance(0.5)
        limiter.allow("busy")
        self.assertEqual(limiter.tracked_clients(), 101)

        self.clock.advance(0.7)
        self.assertEqual(limiter.sweep(), 100)
        self.assertEqual(limiter.tracked_clients(), 1)
        self.assertTrue(limiter.allow("busy"))

    def test_sweep_on_empty_limiter(self):
        self.assertEqual(self.limiter(5, 1).sweep(), 0)

    def test_concurrent_admission_respects_limit(self):
        limiter = SlidingWindowRateLimiter(RateLimitConfig(max_requests=100, window_seconds=60))
        results = []
        results_lock = threading.Lock()

        def worker():
            local = [limiter.allow("shared") for _ in range(25)]
            with results_lock:
                results.extend(local)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(len(results), 200)
        self.assertEqual(results.count(True), 100)

    def test_background_sweeper(self):
        limiter = self.limiter(5, 1)
        limiter.allow("a")
        limiter.allow("b")
        self.clock.advance(5)

        limiter.start_sweeper(0.01)
        try:
            # starting twice keeps the single running sweeper
            limiter.start_sweeper(0.01)
            self.assertTrue(limiter.sweeper_running)
            deadline = time.monotonic() + 2
            while limiter.tracked_clients() and time.monotonic() < deadline:
                time.sleep(0.01)
            self.assertEqual(limiter.tracked_clients(), 0)
        finally:
            limiter.stop_sweeper()
        self.assertFalse(limiter.sweeper_running)

    def test_non_positive_sweep_interval_falls_back_to_window(self):
        for window, interval in ((30, 0), (30, -1), (0, 0)):
            limiter = self.limiter(5, window)
            sweeps = []
            with patch.object(limiter, "sweep", side_effect=lambda: sweeps.append(1)):
                limiter.start_sweeper(interval)
                try:
                    time.sleep(0.2)
                    self.assertTrue(limiter.sweeper_running)
                finally:
                    limiter.stop_sweeper()
            self.assertEqual(sweeps, [])

    def test_sweeper_can_restart_after_stop(self):
        limiter = self.limiter(5, 1)
        limiter.stop_sweeper()
        limiter.start_sweeper(60)
        limiter.stop_sweeper()
        limiter.start_sweeper(60)
        self.assertTrue(limiter.sweeper_running)
        limiter.stop_sweeper()
        self.assertFalse(limiter.sweeper_running)


if __name__ == "__main__":
    unittest.main()
