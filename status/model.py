# -*- coding: utf-8 -*-
"""
规范化状态模型

功能：
- 定义 Instance → Supergroup → Process 三层树形结构
- 所有对象都是不可变快照，每次请求重新构建
"""

from dataclasses import dataclass
from enum import Enum
from typing import Tuple

# 导出器自身在 Passenger 中注册的应用名称
SELF_GROUP_NAME = "Prometheus exporter"

# 名称缺失时使用的默认值
UNKNOWN_NAME = "unknown"


class LifeStatus(Enum):
    """进程存活状态"""
    ALIVE = "alive"
    NOT_ALIVE = "not_alive"

    @classmethod
    def parse(cls, value) -> "LifeStatus":
        """
        解析 Passenger 输出的 life_status

        只有 "ALIVE"（不区分大小写）被视为存活，其他任何值都是 NOT_ALIVE
        """
        if isinstance(value, str) and value.strip().lower() == "alive":
            return cls.ALIVE
        return cls.NOT_ALIVE


@dataclass(frozen=True)
class Process:
    """单个工作进程"""
    pid: str
    cpu: float = 0.0
    rss: int = 0
    vmsize: int = 0
    sessions: int = 0
    processed: int = 0
    busyness: int = 0
    concurrency: int = 0
    life_status: LifeStatus = LifeStatus.NOT_ALIVE
    enabled: bool = False
    uptime: int = 0
    spawn_start_time: int = 0
    last_used: int = 0
    requests: int = 0
    has_metrics: bool = False

    @property
    def alive(self) -> bool:
        return self.life_status is LifeStatus.ALIVE


@dataclass(frozen=True)
class Supergroup:
    """Instance 中挂载的一个应用"""
    name: str
    capacity_used: int = 0
    get_wait_list_size: int = 0
    processes: Tuple[Process, ...] = ()
    group_name: str = ""

    @property
    def process_count(self) -> int:
        return len(self.processes)


@dataclass(frozen=True)
class Instance:
    """一个 Passenger 实例"""
    name: str
    process_count: int = 0
    capacity_used: int = 0
    get_wait_list_size: int = 0
    supergroups: Tuple[Supergroup, ...] = ()
