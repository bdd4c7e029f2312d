# -*- coding: utf-8 -*-
"""
passenger-status 命令调用模块

功能：
- 调用 passenger-status / passenger-status-node 获取原始状态
- 调用 passenger-config 等命令并原样返回输出
- 超时、命令不存在、执行失败时返回空输出（不重试）
"""

import logging
import subprocess
from typing import List, Optional

from config.loader import ExporterConfig
from status.parser import SUPPORTED_FORMATS

logger = logging.getLogger(__name__)


def _run(argv: List[str], timeout: float) -> bytes:
    """
    执行外部命令并返回 stdout

    失败时返回 b''，由上层转换为 EmptyInputError
    """
    try:
        logger.debug(f"执行命令: {' '.join(argv)} (timeout={timeout}s)")
        result = subprocess.run(
            argv,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            timeout=timeout,
            check=False
        )
    except subprocess.TimeoutExpired:
        logger.warning(f"命令执行超时 ({timeout}s): {' '.join(argv)}")
        return b''
    except (FileNotFoundError, PermissionError) as e:
        logger.error(f"命令无法执行: {argv[0]}: {e}")
        return b''
    except OSError as e:
        logger.error(f"命令执行失败: {' '.join(argv)}: {e}")
        return b''

    if result.returncode != 0:
        stderr = result.stderr.decode('utf-8', errors='replace').strip()
        logger.warning(f"命令返回非零状态 {result.returncode}: {' '.join(argv)}: {stderr}")

    return result.stdout or b''


def build_status_command(fmt: str, instance_name: Optional[str], config: ExporterConfig) -> List[str]:
    """
    构造获取状态的命令

    指定 instance_name 时，对 passenger-status 追加 --instance 参数
    """
    argv = list(config.commands[fmt])
    if instance_name and argv and argv[0].endswith('passenger-status'):
        argv.extend(['--instance', instance_name])
    return argv


def fetch_raw_status(fmt: str, instance_name: Optional[str] = None,
                     config: Optional[ExporterConfig] = None) -> bytes:
    """
    获取 passenger-status 原始输出

    Args:
        fmt: 'xml' 或 'json'
        instance_name: Passenger 实例名称（可选）
        config: 导出器配置（默认使用内置默认值）

    Returns:
        原始字节；超时或命令不可用时为 b''
    """
    if fmt not in SUPPORTED_FORMATS:
        raise ValueError(f"不支持的格式: {fmt}")

    config = config or ExporterConfig()
    argv = build_status_command(fmt, instance_name, config)
    return _run(argv, config.status_timeout)


def run_passthrough(name: str, config: Optional[ExporterConfig] = None) -> str:
    """
    执行透传命令，返回解码后的 stdout

    Raises:
        KeyError: 未配置的命令名称
    """
    config = config or ExporterConfig()
    argv = config.passthrough[name]
    return _run(argv, config.status_timeout).decode('utf-8', errors='replace')
