# -*- coding: utf-8 -*-
"""
WebSocket echo 模块

功能：
- 把收到的每条消息加上 "echo: " 前缀发回
- 记录 websocket 监听器的连接数和收发字节数
"""

import logging

from simple_websocket import ConnectionClosed

from collector.self_metrics import SelfMetrics, LISTENER_WEBSOCKET, DIRECTION_RX, DIRECTION_TX

logger = logging.getLogger(__name__)

ECHO_PREFIX = 'echo: '


def _size(message) -> int:
    if isinstance(message, str):
        return len(message.encode('utf-8'))
    return len(message)


def serve_echo(ws, metrics: SelfMetrics, client_ip: str):
    """
    处理一个 WebSocket 连接，直到对端关闭

    Args:
        ws: 提供 receive() / send() 的连接对象（flask-sock 的 Server）
        metrics: 导出器自身指标
        client_ip: 客户端 IP，仅用于日志
    """
    metrics.connection_opened(LISTENER_WEBSOCKET)
    logger.info(f"WS open {client_ip}")
    try:
        while True:
            message = ws.receive()
            if message is None:
                break
            size = _size(message)
            logger.debug(f"WS message from {client_ip} size={size}")
            metrics.add_bandwidth(LISTENER_WEBSOCKET, DIRECTION_RX, size)

            if isinstance(message, str):
                reply = ECHO_PREFIX + message
            else:
                reply = ECHO_PREFIX.encode('utf-8') + message
            ws.send(reply)
            metrics.add_bandwidth(LISTENER_WEBSOCKET, DIRECTION_TX, _size(reply))
    except ConnectionClosed as e:
        logger.info(f"WS closed {client_ip} code={e.reason}")
    finally:
        metrics.connection_closed(LISTENER_WEBSOCKET)
