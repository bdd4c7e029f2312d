# -*- coding: utf-8 -*-
"""
状态过滤模块

功能：
- 按 instance / supergroup / pid 中的一个维度过滤规范化模型
- 过滤后重新计算受影响的汇总值
- 不修改输入模型，总是返回新的 tuple
"""

import logging
from dataclasses import replace
from typing import Dict, Iterable, Mapping, Optional, Tuple

from status.errors import MultipleFiltersError
from status.model import Instance, SELF_GROUP_NAME

logger = logging.getLogger(__name__)

# 过滤参数名称（顺序也是错误信息中的顺序）
FILTER_KEYS = ('instance', 'supergroup', 'pid')


def parse_filter_params(params: Mapping[str, Optional[str]]) -> Dict[str, str]:
    """
    从查询参数中提取过滤条件

    空字符串和纯空白视为未提供，值会去除首尾空白。

    Raises:
        MultipleFiltersError: 提供了多个过滤参数
    """
    filters = {}
    for key in FILTER_KEYS:
        value = params.get(key)
        if value is None:
            continue
        value = str(value).strip()
        if value:
            filters[key] = value

    if len(filters) > 1:
        raise MultipleFiltersError(filters.keys())
    return filters


def filter_instances(instances: Iterable[Instance],
                     instance: Optional[str] = None,
                     supergroup: Optional[str] = None,
                     pid: Optional[str] = None,
                     self_group_name: str = SELF_GROUP_NAME) -> Tuple[Instance, ...]:
    """
    过滤实例序列

    Args:
        instances: 规范化后的实例序列
        instance: 实例名称（完全匹配）
        supergroup: Supergroup 名称（完全匹配）
        pid: 进程 ID（按字符串比较）
        self_group_name: 导出器自身应用名称，任何过滤结果中都不保留

    Returns:
        过滤后的实例 tuple（可能为空）

    Raises:
        MultipleFiltersError: 同时提供了多个过滤条件
    """
    provided = [
        key for key, value in zip(FILTER_KEYS, (instance, supergroup, pid))
        if value is not None
    ]
    if len(provided) > 1:
        raise MultipleFiltersError(provided)

    instances = tuple(instances)
    if instance is not None:
        result = tuple(inst for inst in instances if inst.name == instance)
    elif supergroup is not None:
        result = _filter_by_supergroup(instances, supergroup, self_group_name)
    elif pid is not None:
        result = _filter_by_pid(instances, str(pid), self_group_name)
    else:
        result = instances

    if provided:
        logger.debug(f"过滤 {provided[0]}: {len(instances)} -> {len(result)} 个实例")
    return result


def _filter_by_supergroup(instances, name: str, self_group_name: str) -> Tuple[Instance, ...]:
    if name == self_group_name:
        return ()

    result = []
    for inst in instances:
        kept = tuple(sg for sg in inst.supergroups if sg.name == name)
        if not kept:
            continue
        result.append(replace(
            inst,
            supergroups=kept,
            process_count=sum(sg.process_count for sg in kept),
            capacity_used=sum(sg.capacity_used for sg in kept),
            get_wait_list_size=sum(sg.get_wait_list_size for sg in kept),
        ))
    return tuple(result)


def _filter_by_pid(instances, pid: str, self_group_name: str) -> Tuple[Instance, ...]:
    result = []
    for inst in instances:
        kept = []
        for sg in inst.supergroups:
            if sg.name == self_group_name:
                continue
            processes = tuple(p for p in sg.processes if p.pid == pid)
            if not processes:
                continue
            # 单个进程没有等待队列
            kept.append(replace(
                sg,
                processes=processes,
                capacity_used=len(processes),
                get_wait_list_size=0,
            ))
        if not kept:
            continue
        process_count = sum(sg.process_count for sg in kept)
        result.append(replace(
            inst,
            supergroups=tuple(kept),
            process_count=process_count,
            capacity_used=process_count,
            get_wait_list_size=0,
        ))
    return tuple(result)
