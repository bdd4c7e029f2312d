#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Passenger Status Exporter 主程序入口

功能：
- 启动 Flask HTTP 服务器
- 暴露 /monitus/* 端点，把 passenger-status 输出转换为 Prometheus 指标
- 暴露 /metrics 端点（导出器自身流量指标）和 /health 健康检查端点
- 启动 TCP echo 监听器，提供 WebSocket echo 和 CAPTCHA 模拟端点
"""

import sys
import time
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from flask import Flask, Response, g, jsonify, request
from flask_sock import Sock
from werkzeug.routing import WebsocketMismatch

from config.loader import ExporterConfig, load_exporter_config
from collector import (
    SelfMetrics, parse_filter_params, render_metrics, render_legacy, EMPTY_RESULT_MESSAGE
)
from guard import Blocklist, RateLimiter
from harness import CaptchaTokens, TcpEchoListener, serve_echo
from status.errors import EmptyInputError, MultipleFiltersError, ParseError
from status.fetcher import fetch_raw_status, run_passthrough
from status.parser import FORMAT_JSON, FORMAT_XML

logger = logging.getLogger(__name__)

TEXT_CONTENT_TYPE = 'text/plain; charset=utf-8'
JSON_CONTENT_TYPE = 'application/json'

RATE_LIMIT_RULE = 'global_request_rate'

WS_PATH = '/ws-test'

# /stress-test 最多读取的请求体大小
STRESS_TEST_READ_LIMIT = 10 * 1024

# 原样透传的端点: 路由 -> (配置中的命令名称, Content-Type)
PASSTHROUGH_ROUTES = {
    '/monitus/passenger-status': ('passenger-status', TEXT_CONTENT_TYPE),
    '/monitus/passenger-config_system-metrics': ('system-metrics', TEXT_CONTENT_TYPE),
    '/monitus/passenger-config_system-properties': ('system-properties', JSON_CONTENT_TYPE),
    '/monitus/passenger-memory-stats': ('memory-stats', TEXT_CONTENT_TYPE),
    '/monitus/passenger-config_api-call_get_pool': ('api-call-pool', JSON_CONTENT_TYPE),
    '/monitus/passenger-config_api-call_get_server': ('api-call-server', JSON_CONTENT_TYPE),
}


def setup_logging(level: str = 'INFO'):
    """配置日志"""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    # 减少 Flask 日志
    logging.getLogger('werkzeug').setLevel(logging.WARNING)


def create_app(
    config: Optional[ExporterConfig] = None,
    self_metrics: Optional[SelfMetrics] = None,
    status_fetcher: Callable = fetch_raw_status,
    passthrough_runner: Callable = run_passthrough,
    tcp_listener: Optional[TcpEchoListener] = None,
) -> Flask:
    """
    创建 Flask 应用

    Args:
        config: 导出器配置（默认使用内置默认值）
        self_metrics: 导出器自身指标（默认新建）
        status_fetcher: 获取 passenger-status 原始输出的函数 (fmt, instance_name, config) -> bytes
        passthrough_runner: 执行透传命令的函数 (name, config) -> str
        tcp_listener: TCP 监听器（仅用于健康检查展示状态）

    Returns:
        Flask 应用
    """
    config = config or ExporterConfig()
    metrics = self_metrics or SelfMetrics()
    limiter = RateLimiter(config.rate_limit_requests, config.rate_limit_period)
    blocklist = Blocklist(config.blocklist)
    captcha_tokens = CaptchaTokens()

    app = Flask(__name__)
    sock = Sock(app)
    app.extensions['self_metrics'] = metrics
    app.extensions['rate_limiter'] = limiter
    app.extensions['blocklist'] = blocklist
    app.extensions['captcha_tokens'] = captcha_tokens

    def text_response(body: str, status: int = 200) -> Response:
        return Response(body, status=status, content_type=TEXT_CONTENT_TYPE)

    def json_response(body: str, status: int = 200) -> Response:
        return Response(body, status=status, content_type=JSON_CONTENT_TYPE)

    # ------------------------------------------------------------------
    # 请求钩子：黑名单 / 限流 / 自身指标
    # ------------------------------------------------------------------

    @app.before_request
    def guard_request():
        g.start_time = time.time()
        g.client_ip = request.remote_addr or 'unknown'

        if g.client_ip in blocklist:
            return text_response('Blocked', 403)

        if not limiter.allow(g.client_ip):
            metrics.rate_limit_hit(g.client_ip, RATE_LIMIT_RULE)
            logger.warning(f"Rate limit hit: {g.client_ip} {request.method} {request.path}")
            return text_response('Rate limit exceeded', 429)

    @app.after_request
    def record_request(response: Response) -> Response:
        duration = time.time() - g.get('start_time', time.time())
        metrics.observe_http_request(
            method=request.method,
            path=request.path,
            status=response.status_code,
            client_ip=g.get('client_ip', 'unknown'),
            duration=duration,
            rx_bytes=request.content_length or 0,
            tx_bytes=response.content_length or 0,
        )
        return response

    # ------------------------------------------------------------------
    # Passenger 指标端点
    # ------------------------------------------------------------------

    def prometheus_from(fmt: str) -> Response:
        # 过滤参数不合法时不调用外部命令
        try:
            filters = parse_filter_params(request.args)
        except MultipleFiltersError as e:
            logger.info(f"拒绝多个过滤参数: {e.provided}")
            return text_response(str(e), 400)

        raw = status_fetcher(fmt, None, config)
        try:
            body = render_metrics(raw, fmt, filters, config.self_group_name)
        except ParseError as e:
            logger.error(f"passenger-status 输出解析失败: {e}")
            return text_response(f"Error: {e}", 500)
        return text_response(body)

    @app.route('/monitus/metrics')
    def legacy_metrics():
        """旧版指标端点（passenger-status --show=xml）"""
        raw = status_fetcher(FORMAT_XML, None, config)
        try:
            body = render_legacy(raw, config.common_labels, config.self_group_name)
        except EmptyInputError:
            return text_response(EMPTY_RESULT_MESSAGE)
        except ParseError as e:
            logger.error(f"passenger-status 输出解析失败: {e}")
            return text_response(f"Error: {e}", 500)
        return text_response(body)

    @app.route('/monitus/passenger-status-prometheus')
    def passenger_status_prometheus():
        return prometheus_from(FORMAT_XML)

    @app.route('/monitus/passenger-status-node_prometheus')
    def passenger_status_node_prometheus():
        return prometheus_from(FORMAT_JSON)

    @app.route('/monitus/passenger-status-node_json')
    def passenger_status_node_json():
        raw = status_fetcher(FORMAT_JSON, None, config)
        if not raw or not raw.strip():
            return jsonify({'error': 'Empty result'})
        return json_response(raw)

    def make_passthrough(name: str, content_type: str):
        def passthrough():
            output = passthrough_runner(name, config)
            if name == 'api-call-server' and 'Unauthorized' in output:
                return jsonify({'error': 'Unauthorized'})
            return Response(output, content_type=content_type)
        return passthrough

    for rule, (name, content_type) in PASSTHROUGH_ROUTES.items():
        app.add_url_rule(rule, f"passthrough_{name}", make_passthrough(name, content_type))

    # ------------------------------------------------------------------
    # 导出器自身端点
    # ------------------------------------------------------------------

    @app.route('/metrics')
    def self_metrics_endpoint():
        """导出器自身流量指标"""
        return Response(metrics.render(), content_type=metrics.content_type)

    @app.route('/health')
    def health():
        status = {'status': 'healthy', 'blocklist_size': len(blocklist)}
        if tcp_listener is not None:
            status['tcp_listener'] = {'running': tcp_listener.running, 'port': tcp_listener.port}
        return status, 200

    @app.route('/test-endpoint')
    def test_endpoint():
        return jsonify({
            'ok': True,
            'time': datetime.now(timezone.utc).isoformat(),
            'path': request.path,
        })

    @app.route('/stress-test', methods=['POST'])
    def stress_test():
        payload = request.stream.read(STRESS_TEST_READ_LIMIT)
        headers = {
            key: value for key, value in request.environ.items()
            if key.startswith('HTTP_')
        }
        return jsonify({
            'received_bytes': len(payload),
            'client': g.client_ip,
            'ua': request.user_agent.string,
            'headers': headers,
        })

    @app.route('/captcha-challenge')
    def captcha_challenge():
        token = captcha_tokens.issue()
        return jsonify({
            'challenge_token': token,
            'note': 'echo this token in POST /captcha-verify {token:...}',
        })

    @app.route('/captcha-verify', methods=['POST'])
    def captcha_verify():
        data = request.get_json(silent=True)
        if data is None:
            return jsonify({'error': 'invalid json'}), 400
        token = data.get('token') if isinstance(data, dict) else None
        if captcha_tokens.verify(token):
            return jsonify({'ok': True, 'verified': True})
        return jsonify({'ok': False, 'verified': False}), 403

    @sock.route(WS_PATH)
    def ws_test(ws):
        serve_echo(ws, metrics, g.client_ip)

    @app.errorhandler(WebsocketMismatch)
    def not_websocket(e):
        return text_response('Not a websocket request', 400)

    # ------------------------------------------------------------------
    # 管理端点（测试自动化使用）
    # ------------------------------------------------------------------

    def read_ip():
        data = request.get_json(silent=True)
        if data is None:
            return None, (jsonify({'error': 'invalid json'}), 400)
        ip = data.get('ip') if isinstance(data, dict) else None
        if not ip:
            return None, (jsonify({'error': 'missing ip'}), 400)
        return str(ip), None

    @app.route('/admin/block', methods=['POST'])
    def admin_block():
        ip, error = read_ip()
        if error:
            return error
        blocklist.add(ip)
        return jsonify({'blocked': ip})

    @app.route('/admin/unblock', methods=['POST'])
    def admin_unblock():
        ip, error = read_ip()
        if error:
            return error
        blocklist.remove(ip)
        return jsonify({'unblocked': ip})

    return app


def main():
    """
    主函数：启动 Flask 服务器

    功能：
    1. 加载配置
    2. 启动 TCP echo 监听器
    3. 启动 HTTP 服务器
    """
    try:
        config = load_exporter_config()
    except Exception as e:
        setup_logging()
        logger.error(f"加载配置失败: {e}")
        sys.exit(1)

    setup_logging(config.log_level)
    logger.info("Starting Passenger Status Exporter...")
    logger.info("=" * 60)
    logger.info(f"HTTP 端口: {config.http_port}")
    logger.info(f"TCP 端口: {config.tcp_port} (enabled={config.tcp_listener_enabled})")
    logger.info(f"外部命令超时: {config.status_timeout} 秒")
    logger.info(f"限流: {config.rate_limit_requests} 请求 / {config.rate_limit_period} 秒")
    logger.info(f"自身应用名称: {config.self_group_name}")
    logger.info("=" * 60)

    metrics = SelfMetrics()

    tcp_listener = None
    if config.tcp_listener_enabled:
        tcp_listener = TcpEchoListener(metrics, port=config.tcp_port)
        try:
            tcp_listener.start()
        except OSError as e:
            logger.error(f"TCP 监听器启动失败: {e}", exc_info=True)
            tcp_listener = None

    app = create_app(config, self_metrics=metrics, tcp_listener=tcp_listener)

    logger.info(f"Starting HTTP server on port {config.http_port}")
    print(f"\n{'=' * 60}")
    print("Exporter 已启动")
    print(f"访问 http://localhost:{config.http_port}/monitus/metrics 查看 Passenger 指标")
    print(f"访问 http://localhost:{config.http_port}/metrics 查看导出器自身指标")
    print(f"访问 http://localhost:{config.http_port}/health 查看健康状态")
    print(f"{'=' * 60}\n")

    try:
        app.run(host='0.0.0.0', port=config.http_port, debug=False, threaded=True)
    finally:
        if tcp_listener:
            tcp_listener.stop()


if __name__ == '__main__':
    main()
