# -*- coding: utf-8 -*-
"""
Tests for the TCP echo listener
"""

import socket
import time

import pytest

from collector.self_metrics import SelfMetrics
from harness.tcp_listener import TcpEchoListener


def sample(metrics, name, **labels):
    return metrics.registry.get_sample_value(name, labels) or 0.0


def wait_for(predicate, timeout=5.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return False


@pytest.fixture
def listener():
    metrics = SelfMetrics()
    listener = TcpEchoListener(metrics, host='127.0.0.1', port=0, accept_timeout=0.1)
    listener.start()
    yield listener
    listener.stop()


def test_echoes_ok_and_counts_bandwidth(listener):
    metrics = listener.metrics

    with socket.create_connection(('127.0.0.1', listener.port), timeout=5) as client:
        client.sendall(b'hello')
        assert client.recv(16) == b'OK\n'

        assert wait_for(lambda: sample(metrics, 'active_connections', listener='tcp') == 1)
        assert sample(metrics, 'tcp_connections_total', listener='tcp') == 1
        assert wait_for(lambda: sample(metrics, 'bandwidth_bytes_total', listener='tcp', direction='tx') == 3)
        assert sample(metrics, 'bandwidth_bytes_total', listener='tcp', direction='rx') == 5

    assert wait_for(lambda: sample(metrics, 'active_connections', listener='tcp') == 0)


def test_stop_is_idempotent(listener):
    assert listener.running
    listener.stop()
    listener.stop()
    assert not listener.running
