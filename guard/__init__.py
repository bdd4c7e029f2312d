# -*- coding: utf-8 -*-
"""
请求防护模块

功能：
- 按客户端 IP 限流（令牌桶）
- IP 黑名单
"""

from .rate_limiter import RateLimiter, TokenBucket
from .blocklist import Blocklist
