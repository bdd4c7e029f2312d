# -*- coding: utf-8 -*-
"""
passenger-status 原始输出解析模块

功能：
- 将 XML / JSON 原始字节解析为通用文档（dict / list / str）
- XML 严格解析，格式错误直接失败
- 空输入单独报告为 EmptyInputError
"""

import json
import logging
import xml.etree.ElementTree as ElementTree
from typing import Any, Union

from status.errors import EmptyInputError, ParseError

logger = logging.getLogger(__name__)

FORMAT_XML = "xml"
FORMAT_JSON = "json"
SUPPORTED_FORMATS = (FORMAT_XML, FORMAT_JSON)


def parse_raw_status(raw: Union[bytes, str, None], fmt: str) -> Any:
    """
    解析 passenger-status 的原始输出

    Args:
        raw: 原始输出（bytes 或 str）
        fmt: 声明的格式，'xml' 或 'json'

    Returns:
        通用文档：JSON 为解析后的值，XML 为嵌套 dict

    Raises:
        EmptyInputError: 输入为空
        ParseError: 输入不是合法的 XML / JSON
        ValueError: 不支持的格式
    """
    if fmt not in SUPPORTED_FORMATS:
        raise ValueError(f"不支持的格式: {fmt}，可选值: {', '.join(SUPPORTED_FORMATS)}")

    if raw is None:
        raise EmptyInputError()

    if not raw.strip():
        raise EmptyInputError()

    if fmt == FORMAT_JSON:
        if isinstance(raw, bytes):
            raw = raw.decode('utf-8', errors='replace')
        return _parse_json(raw)
    return _parse_xml(raw)


def _parse_json(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        logger.debug(f"JSON 解析失败: {e}")
        raise ParseError(FORMAT_JSON, str(e)) from e


def _parse_xml(raw: Union[bytes, str]) -> Any:
    # Phusion 镜像里的 Ruby wrapper 会在输出前打印 Ruby 路径
    # bytes 原样交给 expat，由 XML 声明决定编码
    start = raw.find(b'<' if isinstance(raw, bytes) else '<')
    if start < 0:
        raise ParseError(FORMAT_XML, "no XML element found")
    if start > 0:
        logger.debug(f"丢弃 XML 前的 {start} 个字符: {raw[:start].strip()!r}")
        raw = raw[start:]

    try:
        root = ElementTree.fromstring(raw)
    except ElementTree.ParseError as e:
        logger.debug(f"XML 解析失败: {e}")
        raise ParseError(FORMAT_XML, str(e)) from e

    value = element_to_value(root)
    # 根节点（通常是 <info>）本身就是实例
    return value if isinstance(value, dict) else {}


def element_to_value(element) -> Any:
    """
    把 XML 元素转换为通用结构

    - 有子元素：dict，key 为子元素 tag，重复 tag 合并为 list
    - 叶子元素：去除首尾空白后的文本
    """
    children = list(element)
    if not children:
        return (element.text or '').strip()

    result = {}
    for child in children:
        value = element_to_value(child)
        if child.tag in result:
            existing = result[child.tag]
            if isinstance(existing, list):
                existing.append(value)
            else:
                result[child.tag] = [existing, value]
        else:
            result[child.tag] = value
    return result
