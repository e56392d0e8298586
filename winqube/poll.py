"""Blocking wait loops that observe qube state until a phase completes."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from loguru import logger

from .config import READY_FEATURE, READY_VALUE
from .errors import WaitCancelled
from .qubes import QubesControl
from .util import CmdError

log = logger

# Waits are quiet apart from a progress line this often.
STATUS_EVERY_S = 60.0


@dataclass
class Deadline:
    """Optional bound on how long waits and retries may keep going.

    With no ``timeout_s`` and no ``cancel`` event the deadline never
    expires, which is the default for provisioning runs.
    """

    timeout_s: Optional[float] = None
    cancel: Optional[threading.Event] = None
    started: float = field(default_factory=time.monotonic)

    @classmethod
    def from_seconds(
        cls, seconds: float, cancel: Optional[threading.Event] = None
    ) -> 'Deadline':
        timeout_s = seconds if seconds and seconds > 0 else None
        return cls(timeout_s=timeout_s, cancel=cancel)

    def expired(self) -> bool:
        if self.cancel is not None and self.cancel.is_set():
            return True
        if self.timeout_s is None:
            return False
        return time.monotonic() - self.started >= self.timeout_s

    def check(self, what: str) -> None:
        if self.expired():
            elapsed = int(time.monotonic() - self.started)
            raise WaitCancelled(
                f'Gave up waiting for {what} after {elapsed}s '
                '(deadline reached or cancelled).'
            )


NO_DEADLINE = Deadline()


def _probe(query: Callable[[], bool]) -> bool:
    try:
        return bool(query())
    except CmdError as ex:
        log.debug('State query failed, treating as not ready: {}', ex)
        return False


def await_state(
    query: Callable[[], bool],
    *,
    what: str,
    poll_interval: float = 1.0,
    deadline: Deadline = NO_DEADLINE,
) -> None:
    """Block until ``query()`` is true, re-checking every ``poll_interval``.

    A query that raises :class:`CmdError` counts as "not yet".
    """
    start = time.monotonic()
    next_status_at = start + STATUS_EVERY_S
    while not _probe(query):
        deadline.check(what)
        now = time.monotonic()
        if now >= next_status_at:
            log.info('Still waiting for {} ({}s)', what, int(now - start))
            next_status_at = now + STATUS_EVERY_S
        time.sleep(poll_interval)
    log.debug('Observed {}', what)


def await_edge(
    up: Callable[[], bool],
    down: Callable[[], bool],
    *,
    what: str,
    poll_interval: float = 1.0,
    deadline: Deadline = NO_DEADLINE,
) -> None:
    """Wait for ``up`` to hold and only then for ``down`` to hold.

    ``down`` is never consulted before ``up`` has been observed.
    """
    await_state(
        up,
        what=f'{what} to begin',
        poll_interval=poll_interval,
        deadline=deadline,
    )
    await_state(
        down,
        what=f'{what} to finish',
        poll_interval=poll_interval,
        deadline=deadline,
    )


def marker_present(control: QubesControl, name: str) -> bool:
    return control.get_feature(name, READY_FEATURE) == READY_VALUE


def await_running_until_marked(
    control: QubesControl,
    name: str,
    *,
    poll_interval: float = 1.0,
    deadline: Deadline = NO_DEADLINE,
) -> None:
    """Wait for a boot of ``name`` to end by shutdown or by the ready marker."""
    await_edge(
        lambda: control.is_running(name),
        lambda: not control.is_running(name) or marker_present(control, name),
        what=f'{name} boot',
        poll_interval=poll_interval,
        deadline=deadline,
    )


def await_marker(
    control: QubesControl,
    name: str,
    *,
    poll_interval: float = 1.0,
    deadline: Deadline = NO_DEADLINE,
) -> None:
    await_state(
        lambda: marker_present(control, name),
        what=f'{name} to report {READY_FEATURE}={READY_VALUE}',
        poll_interval=poll_interval,
        deadline=deadline,
    )
