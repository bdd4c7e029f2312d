# -*- coding: utf-8 -*-
"""
状态渲染管道

功能：
- 串联 解析 → 规范化 → 过滤 → 渲染
- 把空输入、JSON 解析失败转换为可读的错误文本
- 每次调用都是无状态的，可以被多个请求线程并发调用
"""

import logging
from typing import Mapping, Optional, Union

from collector.filter import filter_instances, parse_filter_params
from collector.renderer import render_instances, render_legacy_metrics
from status.errors import EmptyInputError, ParseError
from status.model import SELF_GROUP_NAME
from status.normalizer import normalize_status
from status.parser import FORMAT_JSON, FORMAT_XML, parse_raw_status

logger = logging.getLogger(__name__)

EMPTY_RESULT_MESSAGE = "Error: Empty result"


def render_metrics(raw: Union[bytes, str, None],
                   fmt: str = FORMAT_JSON,
                   filters: Optional[Mapping[str, Optional[str]]] = None,
                   self_group_name: str = SELF_GROUP_NAME) -> str:
    """
    把 passenger-status 原始输出渲染为 Prometheus 文本

    Args:
        raw: 原始输出
        fmt: 'xml' 或 'json'
        filters: 过滤参数，最多一个 instance / supergroup / pid
        self_group_name: 导出器自身应用名称

    Returns:
        Prometheus 文本，或以下错误文本之一：
        - "Error: Empty result"
        - "Error: Invalid JSON from passenger-status: <message>"

    Raises:
        MultipleFiltersError: 提供了多个过滤参数（在解析之前检查）
        ParseError: XML 格式错误（由上层决定 HTTP 状态码）
    """
    selected = parse_filter_params(filters or {})

    try:
        document = parse_raw_status(raw, fmt)
    except EmptyInputError:
        logger.warning("passenger-status 没有返回任何内容")
        return EMPTY_RESULT_MESSAGE
    except ParseError as e:
        if fmt == FORMAT_JSON:
            logger.warning(f"passenger-status 返回了无效的 JSON: {e.message}")
            return f"Error: {e}"
        raise

    instances = normalize_status(document, self_group_name)
    instances = filter_instances(instances, self_group_name=self_group_name, **selected)
    return render_instances(instances, self_group_name)


def render_legacy(raw: Union[bytes, str, None],
                  common_labels: Optional[Mapping[str, Optional[str]]] = None,
                  self_group_name: str = SELF_GROUP_NAME) -> str:
    """
    渲染旧版 /monitus/metrics（passenger-status --show=xml）

    Raises:
        EmptyInputError: passenger-status 没有输出
        ParseError: XML 格式错误
    """
    document = parse_raw_status(raw, FORMAT_XML)
    instances = normalize_status(document, self_group_name)
    return render_legacy_metrics(instances, dict(common_labels or {}), self_group_name)
