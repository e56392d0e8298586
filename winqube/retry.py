"""Retry qube operations that fail while the host is short on memory."""

from __future__ import annotations

import time
from typing import Callable, TypeVar

from loguru import logger

from .poll import NO_DEADLINE, Deadline
from .util import CmdError

log = logger

T = TypeVar('T')


def retry_forever(
    operation: Callable[[], T],
    *,
    backoff: float = 10.0,
    what: str = 'operation',
    deadline: Deadline = NO_DEADLINE,
) -> T:
    """Call ``operation`` until it succeeds, sleeping ``backoff`` in between.

    There is no attempt limit; only ``deadline`` ends the loop early. Only
    :class:`CmdError` is retried, anything else propagates.
    """
    attempt = 1
    while True:
        try:
            return operation()
        except CmdError as ex:
            log.warning(
                'Failed to {} (attempt {}), likely due to lack of memory; '
                'retrying in {}s: {}',
                what,
                attempt,
                backoff,
                ex.summary,
            )
        deadline.check(what)
        time.sleep(backoff)
        attempt += 1
