# -*- coding: utf-8 -*-
"""
Prometheus 文本渲染模块

功能：
- 把规范化模型渲染为 Prometheus exposition 文本
- 每个样本前都输出自己的 HELP / TYPE 行
- 跳过导出器自身的 Supergroup
- 兼容旧版 /monitus/metrics 的 XML 指标格式

注意：label 值原样放入双引号中，不做转义。
"""

import logging
from typing import Callable, Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple

from status.model import Instance, Process, Supergroup, SELF_GROUP_NAME

logger = logging.getLogger(__name__)

NO_APPLICATION_MESSAGE = "# ERROR: No other application has been loaded yet"

GAUGE = 'gauge'
COUNTER = 'counter'


class MetricSpec(NamedTuple):
    """单个指标的定义"""
    name: str
    help: str
    type: str
    value: Callable


INSTANCE_METRICS = (
    MetricSpec('passenger_process_count', 'Total number of processes in instance', GAUGE,
               lambda inst: inst.process_count),
    MetricSpec('passenger_capacity_used', 'Capacity used by instance', GAUGE,
               lambda inst: inst.capacity_used),
    MetricSpec('passenger_get_wait_list_size', 'Size of get wait list in instance', GAUGE,
               lambda inst: inst.get_wait_list_size),
)

SUPERGROUP_METRICS = (
    MetricSpec('passenger_supergroup_capacity_used', 'Capacity used by supergroup', GAUGE,
               lambda sg: sg.capacity_used),
    MetricSpec('passenger_supergroup_get_wait_list_size', 'Size of get wait list in supergroup', GAUGE,
               lambda sg: sg.get_wait_list_size),
)

PROCESS_METRICS = (
    MetricSpec('passenger_process_cpu', 'CPU usage by process', GAUGE,
               lambda p: p.cpu),
    MetricSpec('passenger_process_memory', 'Memory usage by process (rss)', GAUGE,
               lambda p: p.rss),
    MetricSpec('passenger_process_vmsize', 'Virtual memory size of process', GAUGE,
               lambda p: p.vmsize),
    MetricSpec('passenger_process_sessions', 'Active sessions by process', GAUGE,
               lambda p: p.sessions),
    MetricSpec('passenger_process_processed', 'Total requests processed by process', COUNTER,
               lambda p: p.processed),
    MetricSpec('passenger_process_busyness', 'Busyness of process (0 = idle)', GAUGE,
               lambda p: p.busyness),
    MetricSpec('passenger_process_concurrency', 'Concurrency of process', GAUGE,
               lambda p: p.concurrency),
    MetricSpec('passenger_process_alive', 'Whether the process is alive (1) or not (0)', GAUGE,
               lambda p: p.alive),
    MetricSpec('passenger_process_enabled', 'Whether the process is enabled (1) or not (0)', GAUGE,
               lambda p: p.enabled),
    MetricSpec('passenger_process_uptime_seconds', 'Process uptime in seconds', GAUGE,
               lambda p: p.uptime),
    MetricSpec('passenger_process_spawn_start_time_seconds', 'Process spawn start time (unix timestamp)', GAUGE,
               lambda p: p.spawn_start_time),
    MetricSpec('passenger_process_last_used_seconds', 'Process last used time (unix timestamp)', GAUGE,
               lambda p: p.last_used),
    MetricSpec('passenger_process_requests', 'Requests currently handled by process', GAUGE,
               lambda p: p.requests),
    MetricSpec('passenger_process_has_metrics', 'Whether the process reports metrics (1) or not (0)', GAUGE,
               lambda p: p.has_metrics),
)


def format_value(value) -> str:
    """
    格式化样本值

    布尔值输出 1 / 0；整数值的浮点数不带小数部分
    """
    if isinstance(value, bool):
        return '1' if value else '0'
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)


def format_labels(labels: Sequence[Tuple[str, Optional[str]]]) -> str:
    return ','.join(f'{key}="{"" if value is None else value}"' for key, value in labels)


def prometheus_metric(name: str, help_text: str, metric_type: str,
                      labels: Sequence[Tuple[str, Optional[str]]], value) -> List[str]:
    """返回描述单个样本的三行文本"""
    return [
        f"# HELP {name} {help_text}",
        f"# TYPE {name} {metric_type}",
        f"{name}{{{format_labels(labels)}}} {format_value(value)}",
    ]


def _emit(lines: List[str], specs, labels, obj):
    for spec in specs:
        lines.extend(prometheus_metric(spec.name, spec.help, spec.type, labels, spec.value(obj)))


def render_instances(instances: Iterable[Instance], self_group_name: str = SELF_GROUP_NAME) -> str:
    """
    渲染实例序列为 Prometheus 文本

    Args:
        instances: 已过滤的实例序列
        self_group_name: 导出器自身应用名称

    Returns:
        exposition 文本；只有一个实例且没有任何 Supergroup 时返回 NO_APPLICATION_MESSAGE；
        实例序列为空时返回空字符串
    """
    instances = tuple(instances)
    if len(instances) == 1 and not _visible(instances[0].supergroups, self_group_name):
        return NO_APPLICATION_MESSAGE

    lines: List[str] = []
    for inst in instances:
        instance_labels = (('instance', inst.name),)
        _emit(lines, INSTANCE_METRICS, instance_labels, inst)

        for sg in _visible(inst.supergroups, self_group_name):
            supergroup_labels = instance_labels + (('supergroup', sg.name),)
            _emit(lines, SUPERGROUP_METRICS, supergroup_labels, sg)

            for process in sg.processes:
                process_labels = supergroup_labels + (('pid', process.pid),)
                _emit(lines, PROCESS_METRICS, process_labels, process)

    if not lines:
        return ''
    return '\n'.join(lines) + '\n'


def _visible(supergroups: Iterable[Supergroup], self_group_name: str) -> Tuple[Supergroup, ...]:
    return tuple(sg for sg in supergroups if sg.name != self_group_name)


def _active_processes(processes: Iterable[Process]) -> int:
    return sum(1 for p in processes if p.busyness != 0)


def render_legacy_metrics(instances: Iterable[Instance],
                          common_labels: Optional[Dict[str, Optional[str]]] = None,
                          self_group_name: str = SELF_GROUP_NAME) -> str:
    """
    渲染旧版 /monitus/metrics 指标

    每个 Supergroup 输出 passenger_processes_active / passenger_capacity /
    passenger_wait_list_size，label 为 supergroup_name、group_name 和公共 label
    """
    supergroups = [
        sg for inst in instances
        for sg in _visible(inst.supergroups, self_group_name)
    ]
    if not supergroups:
        return NO_APPLICATION_MESSAGE

    common = tuple((common_labels or {}).items())
    lines: List[str] = []
    for sg in supergroups:
        labels = (('supergroup_name', sg.name), ('group_name', sg.group_name or sg.name)) + common
        lines.extend(prometheus_metric('passenger_processes_active', 'Active processes', GAUGE,
                                       labels, _active_processes(sg.processes)))
        lines.extend(prometheus_metric('passenger_capacity', 'Capacity used', GAUGE,
                                       labels, sg.capacity_used))
        lines.extend(prometheus_metric('passenger_wait_list_size', 'Requests in the queue', GAUGE,
                                       labels, sg.get_wait_list_size))

    return '\n'.join(lines) + '\n'
