# -*- coding: utf-8 -*-
"""
TCP echo 监听模块

功能：
- 在后台线程中接受 TCP 连接
- 每收到一段数据回复 "OK\\n"，用于保持连接和流量测试
- 连接数、带宽写入导出器自身指标
"""

import socket
import threading
import logging
from typing import Optional

from collector.self_metrics import SelfMetrics, LISTENER_TCP, DIRECTION_RX, DIRECTION_TX

logger = logging.getLogger(__name__)

ECHO_REPLY = b"OK\n"
RECV_SIZE = 4096


class TcpEchoListener:
    """
    TCP echo 监听器

    职责：
    1. 一个 accept 线程
    2. 每个连接一个工作线程
    3. 只负责收发和计数，不解析任何协议
    """

    def __init__(self, metrics: SelfMetrics, host: str = '0.0.0.0', port: int = 9000,
                 accept_timeout: float = 1.0):
        """
        初始化 TCP 监听器

        Args:
            metrics: 导出器自身指标
            host: 监听地址
            port: 监听端口（0 表示由系统分配）
            accept_timeout: accept 轮询间隔（秒），用于检查停止标志
        """
        self.metrics = metrics
        self.host = host
        self.port = port
        self.accept_timeout = accept_timeout

        # 控制标志
        self._running = False
        self._server: Optional[socket.socket] = None
        self._accept_thread: Optional[threading.Thread] = None

    def start(self):
        """绑定端口并启动 accept 线程"""
        if self._running:
            logger.warning("TCP 监听器已在运行")
            return

        server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        server.bind((self.host, self.port))
        server.listen()
        server.settimeout(self.accept_timeout)
        self._server = server
        self.port = server.getsockname()[1]

        self._running = True
        self._accept_thread = threading.Thread(
            target=self._accept_loop,
            name="TcpAcceptThread",
            daemon=True
        )
        self._accept_thread.start()
        logger.info(f"TCP listener started on {self.port}")

    def stop(self):
        """停止监听"""
        if not self._running:
            return

        self._running = False
        logger.info("停止 TCP 监听器...")

        if self._accept_thread and self._accept_thread.is_alive():
            self._accept_thread.join(timeout=5)

        if self._server:
            self._server.close()
            self._server = None

        logger.info("TCP 监听器已停止")

    @property
    def running(self) -> bool:
        return self._running

    def _accept_loop(self):
        while self._running:
            try:
                conn, address = self._server.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._running:
                    logger.error(f"TCP accept error: {e}")
                break

            self.metrics.connection_opened(LISTENER_TCP)
            threading.Thread(
                target=self._handle,
                args=(conn, address[0]),
                name=f"TcpWorker-{address[0]}",
                daemon=True
            ).start()

    def _handle(self, conn: socket.socket, ip: str):
        logger.info(f"TCP connect from {ip}")
        try:
            with conn:
                while True:
                    data = conn.recv(RECV_SIZE)
                    if not data:
                        break
                    self.metrics.add_bandwidth(LISTENER_TCP, DIRECTION_RX, len(data))
                    conn.sendall(ECHO_REPLY)
                    self.metrics.add_bandwidth(LISTENER_TCP, DIRECTION_TX, len(ECHO_REPLY))
        except OSError as e:
            logger.warning(f"TCP worker error: {e}")
        finally:
            self.metrics.connection_closed(LISTENER_TCP)
            logger.info(f"TCP disconnect {ip}")
