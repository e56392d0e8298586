"""Tests for the unbounded start retry loop."""

from __future__ import annotations

import threading

import pytest

from winqube.errors import WaitCancelled
from winqube.poll import Deadline
from winqube.retry import retry_forever
from winqube.util import CmdError, CmdResult


def _flaky(failures: int):
    attempts = []

    def operation():
        attempts.append(1)
        if len(attempts) <= failures:
            raise CmdError('qvm-start win10', CmdResult(1, '', 'out of memory'))
        return 'started'

    return operation, attempts


@pytest.mark.parametrize('failures', [0, 1, 4])
def test_retry_forever_attempts_k_plus_one(monkeypatch, failures) -> None:
    sleeps: list[float] = []
    monkeypatch.setattr('winqube.retry.time.sleep', sleeps.append)
    operation, attempts = _flaky(failures)
    assert retry_forever(operation, backoff=10) == 'started'
    assert len(attempts) == failures + 1
    assert sleeps == [10] * failures


def test_retry_forever_does_not_hide_other_errors(monkeypatch) -> None:
    monkeypatch.setattr('winqube.retry.time.sleep', lambda s: None)

    def operation():
        raise ValueError('bug')

    with pytest.raises(ValueError):
        retry_forever(operation, backoff=0)


def test_retry_forever_honors_cancel(monkeypatch) -> None:
    cancel = threading.Event()

    def fake_sleep(seconds):
        cancel.set()

    monkeypatch.setattr('winqube.retry.time.sleep', fake_sleep)
    operation, attempts = _flaky(100)
    with pytest.raises(WaitCancelled):
        retry_forever(operation, backoff=1, deadline=Deadline(cancel=cancel))
    assert len(attempts) == 2
