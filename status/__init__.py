# -*- coding: utf-8 -*-
"""
passenger-status 状态模块

功能：
- 调用外部 passenger-status 工具获取原始输出
- 解析 XML / JSON 原始输出
- 规范化为统一的 Instance → Supergroup → Process 模型
"""

from .errors import (
    StatusError, EmptyInputError, ParseError,
    MultipleFiltersError, UnknownShapeError
)
from .model import Instance, Supergroup, Process, LifeStatus, SELF_GROUP_NAME
from .parser import parse_raw_status
from .normalizer import normalize_status
