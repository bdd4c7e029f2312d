# -*- coding: utf-8 -*-
"""
流量测试模块

功能：
- TCP echo 监听器
- WebSocket echo
- CAPTCHA 挑战模拟
"""

from .tcp_listener import TcpEchoListener
from .websocket_echo import serve_echo, ECHO_PREFIX
from .captcha import CaptchaTokens
