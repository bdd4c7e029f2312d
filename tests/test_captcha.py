# -*- coding: utf-8 -*-
"""
Tests for the CAPTCHA challenge tokens
"""

import pytest

from harness.captcha import CaptchaTokens


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


def test_token_verifies_once():
    tokens = CaptchaTokens()
    token = tokens.issue()

    assert len(token) == 16
    assert tokens.verify(token) is True
    assert tokens.verify(token) is False


@pytest.mark.parametrize('token', ['deadbeefdeadbeef', '', None, 123])
def test_unknown_tokens_rejected(token):
    assert CaptchaTokens().verify(token) is False


def test_expired_token_rejected():
    clock = FakeClock()
    tokens = CaptchaTokens(ttl=10, clock=clock)
    token = tokens.issue()

    clock.now += 11
    assert tokens.verify(token) is False
    assert len(tokens) == 0


def test_expired_tokens_swept_on_issue():
    clock = FakeClock()
    tokens = CaptchaTokens(ttl=10, clock=clock, shards=1)
    tokens.issue()
    tokens.issue()

    clock.now += 11
    fresh = tokens.issue()

    assert len(tokens) == 1
    assert tokens.verify(fresh) is True
