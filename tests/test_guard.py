# -*- coding: utf-8 -*-
"""
Tests for the rate limiter and the IP blocklist
"""

import threading

import pytest

from guard import Blocklist, RateLimiter, TokenBucket


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestRateLimiter:
    def test_denies_after_capacity(self):
        limiter = RateLimiter(capacity=3, period=60, clock=FakeClock())

        assert [limiter.allow('1.1.1.1') for _ in range(4)] == [True, True, True, False]

    def test_keys_are_independent(self):
        limiter = RateLimiter(capacity=1, period=60, clock=FakeClock())

        assert limiter.allow('a') is True
        assert limiter.allow('a') is False
        assert limiter.allow('b') is True

    def test_refills_proportionally(self):
        clock = FakeClock()
        limiter = RateLimiter(capacity=10, period=60, clock=clock)
        for _ in range(10):
            limiter.allow('ip')
        assert limiter.allow('ip') is False

        # 6 秒补充 1 个令牌
        clock.now += 6
        assert limiter.allow('ip') is True
        assert limiter.allow('ip') is False

    def test_partial_refill_time_is_kept(self):
        clock = FakeClock()
        limiter = RateLimiter(capacity=10, period=60, clock=clock)
        for _ in range(10):
            limiter.allow('ip')

        clock.now += 4
        assert limiter.allow('ip') is False
        clock.now += 4
        assert limiter.allow('ip') is True

    def test_refill_is_capped(self):
        clock = FakeClock()
        limiter = RateLimiter(capacity=2, period=60, clock=clock)
        limiter.allow('ip')

        clock.now += 3600
        assert limiter.available_tokens('ip') == 2

    def test_unknown_key_has_full_bucket(self):
        assert RateLimiter(capacity=5, period=1).available_tokens('x') == 5

    def test_reset(self):
        limiter = RateLimiter(capacity=1, period=60, clock=FakeClock())
        limiter.allow('ip')
        limiter.reset('ip')
        assert limiter.allow('ip') is True

    def test_concurrent_consumers_never_exceed_capacity(self):
        limiter = RateLimiter(capacity=50, period=3600, clock=FakeClock())
        results = []
        lock = threading.Lock()

        def worker():
            for _ in range(20):
                allowed = limiter.allow('shared')
                with lock:
                    results.append(allowed)

        threads = [threading.Thread(target=worker) for _ in range(10)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results.count(True) == 50

    def test_idle_buckets_are_evicted(self):
        clock = FakeClock()
        limiter = RateLimiter(capacity=2, period=60, clock=clock, shards=1)
        limiter.allow('old')
        limiter.allow('recent')

        clock.now += 30
        limiter.allow('recent')
        clock.now += 40
        limiter.allow('new')

        assert len(limiter) == 2
        assert limiter.available_tokens('old') == 2
        assert limiter.allow('old') is True

    def test_evicted_bucket_is_not_consumed(self):
        bucket = TokenBucket(capacity=1, period=60, now=0.0)
        bucket.evicted = True
        assert bucket.consume(1.0) is None
        assert bucket.tokens == 1

    @pytest.mark.parametrize('capacity, period', [(0, 60), (10, 0)])
    def test_invalid_settings(self, capacity, period):
        with pytest.raises(ValueError):
            RateLimiter(capacity=capacity, period=period)


class TestBlocklist:
    def test_add_and_remove(self):
        blocklist = Blocklist(['10.0.0.1'])

        assert '10.0.0.1' in blocklist
        assert blocklist.add('10.0.0.2') is True
        assert blocklist.add('10.0.0.2') is False
        assert blocklist.snapshot() == ['10.0.0.1', '10.0.0.2']
        assert blocklist.remove('10.0.0.1') is True
        assert blocklist.remove('10.0.0.1') is False
        assert '10.0.0.1' not in blocklist
        assert len(blocklist) == 1

    def test_concurrent_updates_across_shards(self):
        blocklist = Blocklist(shards=4)
        ips = [f'10.0.{n // 256}.{n % 256}' for n in range(400)]

        def worker(chunk):
            for ip in chunk:
                blocklist.add(ip)

        threads = [threading.Thread(target=worker, args=(ips[i::8],)) for i in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(blocklist) == 400
        assert blocklist.snapshot() == sorted(ips)
