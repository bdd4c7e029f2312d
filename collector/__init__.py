# -*- coding: utf-8 -*-
"""
Prometheus Collector 模块

功能：
- 过滤规范化后的 passenger-status 模型
- 渲染 Prometheus 格式的指标
- 维护导出器自身的流量指标
"""

from .filter import filter_instances, parse_filter_params
from .renderer import render_instances, render_legacy_metrics, NO_APPLICATION_MESSAGE
from .pipeline import render_metrics, render_legacy, EMPTY_RESULT_MESSAGE
from .self_metrics import SelfMetrics
