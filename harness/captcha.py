# -*- coding: utf-8 -*-
"""
CAPTCHA 模拟模块

功能：
- 签发一次性挑战 token
- 校验时消费 token，同一 token 只能通过一次
- token 超过有效期后失效
"""

import secrets
import threading
import time
import logging
from typing import Callable, Dict

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_TTL = 300
DEFAULT_SHARDS = 16


class _Shard:
    __slots__ = ('tokens', 'lock')

    def __init__(self):
        self.tokens: Dict[str, float] = {}
        self.lock = threading.Lock()


class CaptchaTokens:
    """一次性挑战 token 集合（按 token 分片加锁）"""

    def __init__(self, ttl: float = DEFAULT_TOKEN_TTL,
                 clock: Callable[[], float] = time.monotonic, shards: int = DEFAULT_SHARDS):
        if ttl <= 0 or shards <= 0:
            raise ValueError("ttl 和 shards 必须大于 0")
        self.ttl = ttl
        self._clock = clock
        self._shards = [_Shard() for _ in range(shards)]

    def _shard(self, token: str) -> _Shard:
        return self._shards[hash(token) % len(self._shards)]

    def __len__(self) -> int:
        total = 0
        for shard in self._shards:
            with shard.lock:
                total += len(shard.tokens)
        return total

    def issue(self) -> str:
        """签发新 token（16 位十六进制）"""
        token = secrets.token_hex(8)
        now = self._clock()
        shard = self._shard(token)
        with shard.lock:
            expired = [t for t, expires in shard.tokens.items() if expires <= now]
            for t in expired:
                del shard.tokens[t]
            shard.tokens[token] = now + self.ttl
        return token

    def verify(self, token: str) -> bool:
        """
        校验并消费 token

        Returns:
            token 存在且未过期时返回 True
        """
        if not isinstance(token, str) or not token:
            return False
        shard = self._shard(token)
        with shard.lock:
            expires = shard.tokens.pop(token, None)
        if expires is None:
            return False
        if expires <= self._clock():
            logger.debug("CAPTCHA token 已过期")
            return False
        return True
