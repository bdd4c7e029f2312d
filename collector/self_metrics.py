# -*- coding: utf-8 -*-
"""
导出器自身指标模块

功能：
- 记录导出器自身的 HTTP / TCP 流量指标
- 记录限流命中次数
- 提供 /metrics 端点使用的 Prometheus 文本
"""

import logging
from prometheus_client import (
    CollectorRegistry, Counter, Gauge, Histogram,
    generate_latest, CONTENT_TYPE_LATEST
)

logger = logging.getLogger(__name__)

LISTENER_HTTP = 'http'
LISTENER_TCP = 'tcp'
LISTENER_WEBSOCKET = 'websocket'

DIRECTION_RX = 'rx'
DIRECTION_TX = 'tx'


class SelfMetrics:
    """
    导出器自身指标

    功能：
    - 每个实例拥有独立的 CollectorRegistry，不使用全局默认 registry
    - 线程安全（由 prometheus_client 保证）
    """

    content_type = CONTENT_TYPE_LATEST

    def __init__(self, registry: CollectorRegistry = None):
        """
        初始化自身指标

        Args:
            registry: 指标注册表（默认新建）
        """
        self.registry = registry or CollectorRegistry()

        # HTTP 指标
        self.http_requests_total = Counter(
            'http_requests_total',
            'Total HTTP requests',
            ['method', 'path', 'status', 'client_ip'],
            registry=self.registry
        )
        self.http_request_duration_seconds = Histogram(
            'http_request_duration_seconds',
            'HTTP request duration',
            ['path'],
            registry=self.registry
        )

        # 连接指标（所有监听器共用）
        self.tcp_connections_total = Counter(
            'tcp_connections_total',
            'Total TCP connections (all listeners)',
            ['listener'],
            registry=self.registry
        )
        self.active_connections = Gauge(
            'active_connections',
            'Active connections count',
            ['listener'],
            registry=self.registry
        )
        self.bandwidth_bytes_total = Counter(
            'bandwidth_bytes_total',
            'Total bytes (rx+tx)',
            ['listener', 'direction'],
            registry=self.registry
        )

        # 限流指标
        self.rate_limit_hits_total = Counter(
            'rate_limit_hits_total',
            'Rate limit hits',
            ['client_ip', 'rule'],
            registry=self.registry
        )

    def observe_http_request(self, method: str, path: str, status: int, client_ip: str,
                             duration: float, rx_bytes: int = 0, tx_bytes: int = 0):
        """记录一次 HTTP 请求"""
        self.http_requests_total.labels(
            method=method, path=path, status=str(status), client_ip=client_ip
        ).inc()
        self.http_request_duration_seconds.labels(path=path).observe(duration)
        self.add_bandwidth(LISTENER_HTTP, DIRECTION_RX, rx_bytes)
        self.add_bandwidth(LISTENER_HTTP, DIRECTION_TX, tx_bytes)

    def connection_opened(self, listener: str):
        self.tcp_connections_total.labels(listener=listener).inc()
        self.active_connections.labels(listener=listener).inc()

    def connection_closed(self, listener: str):
        self.active_connections.labels(listener=listener).dec()

    def add_bandwidth(self, listener: str, direction: str, size: int):
        if size > 0:
            self.bandwidth_bytes_total.labels(listener=listener, direction=direction).inc(size)

    def rate_limit_hit(self, client_ip: str, rule: str):
        self.rate_limit_hits_total.labels(client_ip=client_ip, rule=rule).inc()

    def render(self) -> str:
        """
        获取 Prometheus 格式的指标数据

        Returns:
            Prometheus text format 字符串
        """
        return generate_latest(self.registry).decode('utf-8')
