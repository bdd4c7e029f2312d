# -*- coding: utf-8 -*-
"""
状态管道异常定义

功能：
- 定义 passenger-status 解析、规范化、过滤过程中的异常
- 所有异常都继承自 StatusError，调用方可以统一捕获
"""


class StatusError(Exception):
    """状态管道异常基类"""
    pass


class EmptyInputError(StatusError):
    """外部工具没有返回任何内容（超时、命令不存在等）"""

    def __init__(self, message: str = "Empty result"):
        super().__init__(message)


class ParseError(StatusError):
    """原始输出不是声明格式下的合法文档"""

    def __init__(self, fmt: str, message: str):
        self.fmt = fmt
        self.message = message
        super().__init__(f"Invalid {fmt.upper()} from passenger-status: {message}")


class MultipleFiltersError(StatusError):
    """同时传入了多个过滤参数"""

    def __init__(self, provided):
        self.provided = list(provided)
        super().__init__(
            f"Only one filter parameter allowed at a time. Provided: {', '.join(self.provided)}"
        )


class UnknownShapeError(StatusError):
    """文档结构无法识别（仅内部使用，规范化时回退到默认值）"""
    pass
