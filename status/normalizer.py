# -*- coding: utf-8 -*-
"""
状态规范化模块

功能：
- 把不同版本 / 不同工具输出的 passenger-status 文档映射到统一模型
- 字段回退顺序以数据表形式维护，便于逐字段核对和测试
- 工具未提供实例级汇总值时，按 Supergroup 重新计算
- 导出器自身的 Supergroup 在规范化阶段剔除
"""

import logging
import math
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

from status.errors import UnknownShapeError
from status.model import (
    Instance, LifeStatus, Process, Supergroup,
    SELF_GROUP_NAME, UNKNOWN_NAME
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# 字段回退表（按优先级排列）
# ---------------------------------------------------------------------------

INSTANCE_NAME_KEYS = ('instance_id', 'instance_name', 'server_name', 'name')

INSTANCE_AGGREGATE_KEYS = ('process_count', 'capacity_used', 'get_wait_list_size')

# (路径, 集合元素的 XML tag)
SUPERGROUP_COLLECTION_PATHS = (
    (('supergroups',), 'supergroup'),
    (('applications',), 'application'),
    (('groups',), 'group'),
)

PROCESS_COLLECTION_PATHS = (
    (('group', 'processes'), 'process'),
    (('processes',), 'process'),
    (('group',), None),  # 只有 group 本身是数组时才使用
)

SUPERGROUP_NAME_KEYS = ('name',)
SUPERGROUP_CAPACITY_KEYS = ('capacity_used', 'capacity', 'processes_spawned')
SUPERGROUP_WAIT_LIST_KEYS = ('get_wait_list_size', 'queue_size', 'waiting')

PID_KEYS = ('pid', 'process_id')

# 微秒时间戳阈值（秒级时间戳在可预见的未来都小于该值）
MICROSECOND_TIMESTAMP_THRESHOLD = 10 ** 14

_DURATION_RE = re.compile(r'^\s*(?:\d+\s*[dhms]\s*)+$')
_DURATION_PART_RE = re.compile(r'(\d+)\s*([dhms])')
_DURATION_UNITS = {'d': 86400, 'h': 3600, 'm': 60, 's': 1}

_TRUE_STRINGS = ('enabled', 'true', '1', 'yes')


# ---------------------------------------------------------------------------
# 数值 / 布尔转换（永不抛异常）
# ---------------------------------------------------------------------------

def to_float(value: Any) -> float:
    """转换为非负浮点数，无法解析时返回 0.0"""
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        result = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text or '_' in text:
            return 0.0
        try:
            result = float(text)
        except ValueError:
            return 0.0
    else:
        return 0.0
    if not math.isfinite(result) or result < 0:
        return 0.0
    return result


def to_int(value: Any) -> int:
    """转换为非负整数，无法解析时返回 0"""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return max(value, 0)
    if isinstance(value, str):
        text = value.strip()
        if text and '_' not in text:
            try:
                return max(int(text), 0)
            except ValueError:
                pass
    return int(to_float(value))


def to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return False


def to_seconds(value: Any) -> int:
    """
    转换 uptime

    Passenger 输出形如 "2d 3h 4m 5s" 的字符串，也可能直接是秒数
    """
    if isinstance(value, str) and _DURATION_RE.match(value):
        return sum(
            int(amount) * _DURATION_UNITS[unit]
            for amount, unit in _DURATION_PART_RE.findall(value)
        )
    return to_int(value)


def to_timestamp(value: Any) -> int:
    """转换 unix 时间戳（秒），微秒级时间戳自动换算"""
    result = to_int(value)
    if result > MICROSECOND_TIMESTAMP_THRESHOLD:
        result //= 10 ** 6
    return result


# 进程字段表：(模型属性, 回退 key 列表, 转换函数)
PROCESS_FIELDS: Tuple[Tuple[str, Tuple[str, ...], Callable[[Any], Any]], ...] = (
    ('cpu', ('cpu',), to_float),
    ('rss', ('rss', 'real_memory', 'memory'), to_int),
    ('vmsize', ('vmsize',), to_int),
    ('sessions', ('sessions', 'session', 'active_sessions'), to_int),
    ('processed', ('processed', 'requests_processed', 'request_count'), to_int),
    ('busyness', ('busyness',), to_int),
    ('concurrency', ('concurrency',), to_int),
    ('life_status', ('life_status',), LifeStatus.parse),
    ('enabled', ('enabled',), to_bool),
    ('uptime', ('uptime',), to_seconds),
    ('spawn_start_time', ('spawn_start_time',), to_timestamp),
    ('last_used', ('last_used',), to_timestamp),
    ('requests', ('requests',), to_int),
    ('has_metrics', ('has_metrics',), to_bool),
)


# ---------------------------------------------------------------------------
# 查找辅助函数
# ---------------------------------------------------------------------------

def first_present(data: Dict[str, Any], keys) -> Optional[Any]:
    """
    按顺序返回第一个存在的值

    None 和空白字符串（例如 XML 空元素 <capacity_used/>）视为不存在
    """
    for key in keys:
        value = data.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def _dig(data: Any, path) -> Optional[Any]:
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
        if data is None:
            return None
    return data


def _as_mapping(value: Any) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise UnknownShapeError(f"期望对象，实际为 {type(value).__name__}")
    return value


def _as_items(value: Any, item_tag: Optional[str]) -> Optional[List[Tuple[Optional[str], Any]]]:
    """
    把集合值转换为 (key, item) 列表

    支持的形态：
    - 数组
    - XML 包装节点 {"supergroup": [...]} 或 {"supergroup": {...}}
    - 以名称为 key 的对象 {"/app": {...}}
    - 空的 XML 节点（空字符串）

    无法识别时返回 None，由调用方尝试下一个候选路径
    """
    if isinstance(value, list):
        return [(None, item) for item in value]
    if isinstance(value, str):
        return [] if not value.strip() else None
    if not isinstance(value, dict):
        return None
    if item_tag is None:
        return None
    if not value:
        return []
    if set(value.keys()) == {item_tag}:
        wrapped = value[item_tag]
        if isinstance(wrapped, list):
            return [(None, item) for item in wrapped]
        return [(None, wrapped)]
    if all(isinstance(item, dict) for item in value.values()):
        return list(value.items())
    return None


def _collect(data: Dict[str, Any], paths) -> List[Tuple[Optional[str], Any]]:
    for path, item_tag in paths:
        value = _dig(data, path)
        if value is None:
            continue
        items = _as_items(value, item_tag)
        if items is not None:
            return items
        logger.debug(f"集合路径 {'.'.join(path)} 结构无法识别，尝试下一个候选")
    return []


def _name(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None


# ---------------------------------------------------------------------------
# 规范化
# ---------------------------------------------------------------------------

def normalize_process(data: Any, key: Optional[str] = None) -> Process:
    """
    规范化单个进程

    Raises:
        UnknownShapeError: data 不是对象
    """
    data = _as_mapping(data)
    pid = _name(first_present(data, PID_KEYS)) or key or UNKNOWN_NAME
    fields = {
        attr: convert(first_present(data, keys))
        for attr, keys, convert in PROCESS_FIELDS
    }
    return Process(pid=pid, **fields)


def normalize_supergroup(data: Any, key: Optional[str] = None) -> Supergroup:
    """
    规范化单个 Supergroup

    Raises:
        UnknownShapeError: data 不是对象
    """
    data = _as_mapping(data)
    name = _name(first_present(data, SUPERGROUP_NAME_KEYS)) or key or UNKNOWN_NAME

    processes = []
    for process_key, item in _collect(data, PROCESS_COLLECTION_PATHS):
        try:
            processes.append(normalize_process(item, process_key))
        except UnknownShapeError as e:
            logger.warning(f"忽略无法识别的进程条目 (supergroup={name}): {e}")

    group = data.get('group')
    group_name = None
    if isinstance(group, dict):
        group_name = _name(group.get('name'))

    return Supergroup(
        name=name,
        capacity_used=to_int(first_present(data, SUPERGROUP_CAPACITY_KEYS)),
        get_wait_list_size=to_int(first_present(data, SUPERGROUP_WAIT_LIST_KEYS)),
        processes=tuple(processes),
        group_name=group_name or name,
    )


def normalize_instance(data: Any, self_group_name: str = SELF_GROUP_NAME) -> Instance:
    """
    规范化单个实例

    Raises:
        UnknownShapeError: data 不是对象
    """
    data = _as_mapping(data)
    name = _name(first_present(data, INSTANCE_NAME_KEYS)) or UNKNOWN_NAME

    supergroups = []
    for key, item in _collect(data, SUPERGROUP_COLLECTION_PATHS):
        try:
            supergroup = normalize_supergroup(item, key)
        except UnknownShapeError as e:
            logger.warning(f"忽略无法识别的 supergroup 条目 (instance={name}): {e}")
            continue
        if supergroup.name == self_group_name:
            logger.debug(f"剔除导出器自身的 supergroup: {supergroup.name}")
            continue
        supergroups.append(supergroup)

    computed = {
        'process_count': sum(sg.process_count for sg in supergroups),
        'capacity_used': sum(sg.capacity_used for sg in supergroups),
        'get_wait_list_size': sum(sg.get_wait_list_size for sg in supergroups),
    }
    aggregates = {}
    for field in INSTANCE_AGGREGATE_KEYS:
        value = first_present(data, (field,))
        aggregates[field] = computed[field] if value is None else to_int(value)

    return Instance(name=name, supergroups=tuple(supergroups), **aggregates)


def normalize_status(document: Any, self_group_name: str = SELF_GROUP_NAME) -> Tuple[Instance, ...]:
    """
    把解析后的文档规范化为实例序列

    当前总是返回只包含一个 Instance 的 tuple。
    passenger-status-node 输出的是实例数组，此时取第一个对象元素。

    Args:
        document: parse_raw_status 的返回值
        self_group_name: 需要剔除的导出器自身应用名称

    Returns:
        (Instance,)
    """
    if isinstance(document, list):
        document = next((item for item in document if isinstance(item, dict)), {})

    try:
        instance = normalize_instance(document, self_group_name)
    except UnknownShapeError as e:
        logger.warning(f"无法识别的 passenger-status 文档结构，使用默认值: {e}")
        instance = normalize_instance({}, self_group_name)

    logger.debug(
        f"规范化完成: instance={instance.name}, "
        f"supergroups={len(instance.supergroups)}, processes={instance.process_count}"
    )
    return (instance,)
