# -*- coding: utf-8 -*-
"""
Tests for passenger-status command invocation
"""

import subprocess
from unittest.mock import Mock, patch

import pytest

from config.loader import ExporterConfig
from status.fetcher import build_status_command, fetch_raw_status, run_passthrough


def completed(stdout=b'', returncode=0, stderr=b''):
    return Mock(stdout=stdout, stderr=stderr, returncode=returncode)


class TestBuildStatusCommand:
    def test_default_commands(self):
        config = ExporterConfig()
        assert build_status_command('xml', None, config) == ['passenger-status', '-v', '--show=xml']
        assert build_status_command('json', None, config) == ['passenger-status-node']

    def test_instance_name_appended_for_passenger_status(self):
        config = ExporterConfig()
        assert build_status_command('xml', 'abc', config)[-2:] == ['--instance', 'abc']
        assert build_status_command('json', 'abc', config) == ['passenger-status-node']

    def test_config_not_mutated(self):
        config = ExporterConfig()
        build_status_command('xml', 'abc', config)
        assert config.commands['xml'] == ['passenger-status', '-v', '--show=xml']


class TestFetchRawStatus:
    @patch('status.fetcher.subprocess.run')
    def test_returns_stdout(self, mock_run):
        mock_run.return_value = completed(b'{"supergroups": []}')
        config = ExporterConfig(status_timeout=3)

        assert fetch_raw_status('json', config=config) == b'{"supergroups": []}'
        args, kwargs = mock_run.call_args
        assert args[0] == ['passenger-status-node']
        assert kwargs['timeout'] == 3

    @patch('status.fetcher.subprocess.run')
    def test_timeout_returns_empty(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd='passenger-status', timeout=1)
        assert fetch_raw_status('xml') == b''

    @patch('status.fetcher.subprocess.run')
    def test_missing_binary_returns_empty(self, mock_run):
        mock_run.side_effect = FileNotFoundError('passenger-status')
        assert fetch_raw_status('xml') == b''

    @patch('status.fetcher.subprocess.run')
    def test_failure_keeps_stdout(self, mock_run):
        mock_run.return_value = completed(b'', returncode=1, stderr=b'boom')
        assert fetch_raw_status('json') == b''

    def test_unknown_format(self):
        with pytest.raises(ValueError):
            fetch_raw_status('yaml')


class TestRunPassthrough:
    @patch('status.fetcher.subprocess.run')
    def test_decodes_output(self, mock_run):
        mock_run.return_value = completed('Version : 6.0.18\n'.encode('utf-8'))

        assert run_passthrough('passenger-status') == 'Version : 6.0.18\n'
        assert mock_run.call_args[0][0] == ['passenger-status', '--verbose']

    @patch('status.fetcher.subprocess.run')
    def test_failure_returns_empty_string(self, mock_run):
        mock_run.side_effect = OSError('nope')
        assert run_passthrough('memory-stats') == ''

    def test_unknown_name(self):
        with pytest.raises(KeyError):
            run_passthrough('rm-rf')
