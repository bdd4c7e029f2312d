# -*- coding: utf-8 -*-
"""
导出器配置加载模块

功能：
- 从 YAML 文件加载导出器配置
- 定义清晰的数据结构（ExporterConfig）
- 环境变量覆盖 YAML 中的值
- 读取失败时给出明确错误
"""

import os
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import yaml

from status.model import SELF_GROUP_NAME

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = 'config/exporter.yaml'

VALID_LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']

# passenger-status 命令（按格式）
DEFAULT_COMMANDS = {
    'xml': ['passenger-status', '-v', '--show=xml'],
    'json': ['passenger-status-node'],
}

# 原样透传的命令
DEFAULT_PASSTHROUGH = {
    'passenger-status': ['passenger-status', '--verbose'],
    'system-metrics': ['passenger-config', 'system-metrics'],
    'system-properties': ['passenger-config', 'system-properties'],
    'memory-stats': ['passenger-memory-stats'],
    'api-call-pool': ['passenger-config', 'api-call', 'get', '/pool.json'],
    'api-call-server': ['passenger-config', 'api-call', 'get', '/server.json'],
}


@dataclass
class ExporterConfig:
    """导出器配置的根数据结构"""
    http_port: int = 4567                 # HTTP 监听端口
    tcp_port: int = 9000                  # TCP echo 监听端口
    tcp_listener_enabled: bool = True     # 是否启动 TCP echo 监听
    status_timeout: float = 10.0          # 外部命令超时（秒）
    log_level: str = 'INFO'
    self_group_name: str = SELF_GROUP_NAME
    rate_limit_requests: int = 100        # 每个周期允许的请求数
    rate_limit_period: int = 60           # 限流周期（秒）
    commands: Dict[str, List[str]] = field(default_factory=lambda: dict(DEFAULT_COMMANDS))
    passthrough: Dict[str, List[str]] = field(default_factory=lambda: dict(DEFAULT_PASSTHROUGH))
    common_labels: Dict[str, Optional[str]] = field(
        default_factory=lambda: {'hostname': os.getenv('HOSTNAME')}
    )
    blocklist: List[str] = field(default_factory=list)  # 启动时加入黑名单的 IP


def load_exporter_config(config_path: Optional[str] = None) -> ExporterConfig:
    """
    加载导出器配置

    配置文件不存在时使用默认值，然后应用环境变量覆盖。

    Args:
        config_path: 配置文件路径（默认 config/exporter.yaml，可用 EXPORTER_CONFIG 指定）

    Returns:
        ExporterConfig 对象

    Raises:
        yaml.YAMLError: YAML 解析错误
        ValueError: 配置格式错误
    """
    config_path = config_path or os.getenv('EXPORTER_CONFIG', DEFAULT_CONFIG_PATH)

    data = {}
    if os.path.exists(config_path):
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                content = f.read()
        except IOError as e:
            raise IOError(f"无法读取配置文件 {config_path}: {e}")

        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"YAML 解析失败: {e}")

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError("配置格式错误: 顶层必须是字典类型")
        logger.info(f"已加载配置文件: {config_path}")
    else:
        logger.info(f"配置文件不存在，使用默认配置: {config_path}")

    config = _parse_config(data)
    _apply_env_overrides(config)
    _validate(config)
    return config


def _parse_config(data: dict) -> ExporterConfig:
    """解析 YAML 字典"""
    config = ExporterConfig()

    for key in ('http_port', 'tcp_port', 'rate_limit_requests', 'rate_limit_period'):
        if key in data:
            setattr(config, key, _as_int(data[key], key))

    if 'status_timeout' in data:
        config.status_timeout = _as_float(data['status_timeout'], 'status_timeout')

    if 'tcp_listener_enabled' in data:
        value = data['tcp_listener_enabled']
        if not isinstance(value, bool):
            raise ValueError("tcp_listener_enabled 必须是布尔值")
        config.tcp_listener_enabled = value

    if 'log_level' in data:
        config.log_level = str(data['log_level']).upper()

    if 'self_group_name' in data:
        value = data['self_group_name']
        if not isinstance(value, str) or not value.strip():
            raise ValueError("self_group_name 必须是非空字符串")
        config.self_group_name = value

    if 'commands' in data:
        commands = _parse_command_table(data['commands'], 'commands')
        unknown = set(commands) - set(DEFAULT_COMMANDS)
        if unknown:
            raise ValueError(f"commands 只支持 xml / json，未知项: {', '.join(sorted(unknown))}")
        config.commands.update(commands)

    if 'passthrough' in data:
        config.passthrough.update(_parse_command_table(data['passthrough'], 'passthrough'))

    if 'common_labels' in data:
        labels = data['common_labels']
        if not isinstance(labels, dict):
            raise ValueError("common_labels 必须是字典类型")
        config.common_labels = {str(k): (None if v is None else str(v)) for k, v in labels.items()}

    if 'blocklist' in data:
        blocklist = data['blocklist']
        if not isinstance(blocklist, list):
            raise ValueError("blocklist 必须是列表类型")
        config.blocklist = [str(ip) for ip in blocklist]

    return config


def _parse_command_table(table, name: str) -> Dict[str, List[str]]:
    if not isinstance(table, dict):
        raise ValueError(f"配置格式错误: '{name}' 必须是字典类型")

    result = {}
    for key, argv in table.items():
        if isinstance(argv, str):
            argv = argv.split()
        if not isinstance(argv, list) or not argv:
            raise ValueError(f"配置格式错误: '{name}.{key}' 必须是非空列表或字符串")
        result[str(key)] = [str(arg) for arg in argv]
    return result


def _apply_env_overrides(config: ExporterConfig):
    """环境变量优先于配置文件"""
    int_overrides = {
        'HTTP_PORT': 'http_port',
        'TCP_PORT': 'tcp_port',
        'RATE_LIMIT_REQUESTS': 'rate_limit_requests',
        'RATE_LIMIT_PERIOD': 'rate_limit_period',
    }
    for env_name, attr in int_overrides.items():
        value = os.getenv(env_name)
        if value:
            setattr(config, attr, _as_int(value, env_name))

    if os.getenv('STATUS_TIMEOUT'):
        config.status_timeout = _as_float(os.getenv('STATUS_TIMEOUT'), 'STATUS_TIMEOUT')

    if os.getenv('LOG_LEVEL'):
        config.log_level = os.getenv('LOG_LEVEL').upper()

    if os.getenv('SELF_GROUP_NAME'):
        config.self_group_name = os.getenv('SELF_GROUP_NAME')

    if os.getenv('TCP_LISTENER_ENABLED'):
        config.tcp_listener_enabled = os.getenv('TCP_LISTENER_ENABLED').lower() == 'true'


def _validate(config: ExporterConfig):
    for name in ('http_port', 'tcp_port'):
        port = getattr(config, name)
        if not 1 <= port <= 65535:
            raise ValueError(f"{name} 必须在 1-65535 范围内: {port}")

    if config.rate_limit_requests <= 0:
        raise ValueError("rate_limit_requests 必须是正整数")
    if config.rate_limit_period <= 0:
        raise ValueError("rate_limit_period 必须是正整数")
    if config.status_timeout <= 0:
        raise ValueError("status_timeout 必须大于 0")

    if config.log_level not in VALID_LOG_LEVELS:
        raise ValueError(f"log_level 必须是以下值之一: {', '.join(VALID_LOG_LEVELS)}")


def _as_int(value, name: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{name} 必须是整数")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} 必须是整数: {value!r}")


def _as_float(value, name: str) -> float:
    if isinstance(value, bool):
        raise ValueError(f"{name} 必须是数字")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} 必须是数字: {value!r}")
