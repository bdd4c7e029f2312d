# -*- coding: utf-8 -*-
"""
IP 黑名单模块

功能：
- 线程安全地维护被封禁的客户端 IP
- 支持运行时通过管理端点添加 / 移除
- 按 IP 分片加锁，不同分片的读写互不阻塞
"""

import threading
import logging
from typing import Iterable, List, Set

logger = logging.getLogger(__name__)

DEFAULT_SHARDS = 16


class _Shard:
    __slots__ = ('ips', 'lock')

    def __init__(self):
        self.ips: Set[str] = set()
        self.lock = threading.Lock()


class Blocklist:
    """线程安全的 IP 黑名单"""

    def __init__(self, ips: Iterable[str] = (), shards: int = DEFAULT_SHARDS):
        if shards <= 0:
            raise ValueError("shards 必须大于 0")
        self._shards = [_Shard() for _ in range(shards)]
        for ip in ips:
            self._shard(ip).ips.add(ip)

    def _shard(self, ip: str) -> _Shard:
        return self._shards[hash(ip) % len(self._shards)]

    def __contains__(self, ip: str) -> bool:
        shard = self._shard(ip)
        with shard.lock:
            return ip in shard.ips

    def __len__(self) -> int:
        total = 0
        for shard in self._shards:
            with shard.lock:
                total += len(shard.ips)
        return total

    def add(self, ip: str) -> bool:
        """
        添加 IP

        Returns:
            True 表示新加入，False 表示已存在
        """
        shard = self._shard(ip)
        with shard.lock:
            if ip in shard.ips:
                return False
            shard.ips.add(ip)
        logger.info(f"已封禁 IP: {ip}")
        return True

    def remove(self, ip: str) -> bool:
        """
        移除 IP

        Returns:
            True 表示已移除，False 表示原本不在黑名单中
        """
        shard = self._shard(ip)
        with shard.lock:
            if ip not in shard.ips:
                return False
            shard.ips.discard(ip)
        logger.info(f"已解封 IP: {ip}")
        return True

    def snapshot(self) -> List[str]:
        ips = []
        for shard in self._shards:
            with shard.lock:
                ips.extend(shard.ips)
        return sorted(ips)
