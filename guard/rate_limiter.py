# -*- coding: utf-8 -*-
"""
按客户端限流模块

功能：
- 每个客户端 IP 一个令牌桶
- 每个周期补充 capacity 个令牌（按时间比例向下取整）
- 按 key 分片，桶的创建使用分片锁，补充 / 消费使用每个桶自己的锁
- 清理空闲超过一个周期的桶
"""

import math
import time
import threading
import logging
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_SHARDS = 16


class TokenBucket:
    """
    单个令牌桶

    令牌为整数；补充数量为 floor(capacity * elapsed / period)，上限为 capacity
    """

    def __init__(self, capacity: int, period: float, now: float):
        self.capacity = capacity
        self.period = period
        self.tokens = capacity
        self.last_refill = now
        self.last_seen = now
        self.evicted = False
        self.lock = threading.Lock()

    def consume(self, now: float) -> Optional[bool]:
        """
        尝试消费一个令牌

        Returns:
            True / False 表示是否允许；桶已被清理时返回 None
        """
        with self.lock:
            if self.evicted:
                return None
            self.last_seen = max(self.last_seen, now)
            self._refill(now)
            if self.tokens > 0:
                self.tokens -= 1
                return True
            return False

    def _refill(self, now: float):
        elapsed = max(now - self.last_refill, 0.0)
        refill = math.floor(self.capacity * elapsed / self.period)
        if refill <= 0:
            return
        if self.tokens + refill >= self.capacity:
            self.tokens = self.capacity
            self.last_refill = now
        else:
            self.tokens += refill
            # 保留不足一个令牌的剩余时间
            self.last_refill += refill * self.period / self.capacity


class _Shard:
    __slots__ = ('buckets', 'lock', 'last_sweep')

    def __init__(self, now: float):
        self.buckets: Dict[str, TokenBucket] = {}
        self.lock = threading.Lock()
        self.last_sweep = now


class RateLimiter:
    """
    按 key（客户端 IP）限流

    默认 60 秒内最多 100 个请求。key 按哈希分片，每个分片一把锁，
    只在创建桶和清理空闲桶时持有；空闲超过一个周期的桶会被清理
    """

    def __init__(self, capacity: int = 100, period: float = 60,
                 clock: Callable[[], float] = time.monotonic, shards: int = DEFAULT_SHARDS):
        """
        初始化限流器

        Args:
            capacity: 每个周期允许的请求数（桶容量）
            period: 周期（秒）
            clock: 时间函数（测试时可替换）
            shards: 分片数量
        """
        if capacity <= 0 or period <= 0:
            raise ValueError("capacity 和 period 必须大于 0")
        if shards <= 0:
            raise ValueError("shards 必须大于 0")
        self.capacity = capacity
        self.period = period
        self._clock = clock
        now = clock()
        self._shards = [_Shard(now) for _ in range(shards)]

        logger.info(f"RateLimiter 初始化完成: {capacity} 请求 / {period} 秒")

    def __len__(self) -> int:
        return sum(len(shard.buckets) for shard in self._shards)

    def _shard(self, key: str) -> _Shard:
        return self._shards[hash(key) % len(self._shards)]

    def _get_bucket(self, key: str, now: float) -> TokenBucket:
        shard = self._shard(key)
        bucket = shard.buckets.get(key)
        if bucket is None:
            with shard.lock:
                bucket = shard.buckets.get(key)
                if bucket is None:
                    if now - shard.last_sweep >= self.period:
                        self._sweep(shard, now)
                    bucket = TokenBucket(self.capacity, self.period, now)
                    shard.buckets[key] = bucket
        return bucket

    def _sweep(self, shard: _Shard, now: float):
        # 调用方持有 shard.lock
        idle = []
        for key, bucket in shard.buckets.items():
            with bucket.lock:
                if now - bucket.last_seen >= self.period:
                    bucket.evicted = True
                    idle.append(key)
        for key in idle:
            del shard.buckets[key]
        shard.last_sweep = now
        if idle:
            logger.debug(f"清理 {len(idle)} 个空闲令牌桶")

    def allow(self, key: str) -> bool:
        """
        判断请求是否允许通过

        Returns:
            True 表示允许，False 表示超过限流
        """
        now = self._clock()
        while True:
            allowed = self._get_bucket(key, now).consume(now)
            # 桶在取出后被清理时重新获取
            if allowed is not None:
                return allowed

    def available_tokens(self, key: str) -> int:
        """剩余令牌数（不存在的 key 返回满桶）"""
        bucket = self._shard(key).buckets.get(key)
        if bucket is None:
            return self.capacity
        with bucket.lock:
            bucket._refill(self._clock())
            return bucket.tokens

    def reset(self, key: str = None):
        """重置某个 key 或全部 key 的令牌桶"""
        shards = self._shards if key is None else [self._shard(key)]
        for shard in shards:
            with shard.lock:
                keys = list(shard.buckets) if key is None else [key]
                for name in keys:
                    bucket = shard.buckets.pop(name, None)
                    if bucket is not None:
                        with bucket.lock:
                            bucket.evicted = True
