"""Create several Windows qubes with the same options, one after another."""

from __future__ import annotations

import threading
from dataclasses import replace
from typing import Callable, Iterator, Optional

from loguru import logger

from .config import CreateOptions, WinQubeConfig
from .provision import Phase, WindowsQubeProvisioner
from .qubes import QubesControl

log = logger


def next_free_name(
    basename: str, start: int, exists: Callable[[str], bool]
) -> tuple[str, int]:
    """Return the first ``basename-k`` with ``k >= start`` that is not taken."""
    k = start
    while exists(f'{basename}-{k}'):
        k += 1
    return f'{basename}-{k}', k


def iter_instance_names(
    basename: str, count: int, exists: Callable[[str], bool]
) -> Iterator[str]:
    """Yield ``count`` names, probing ``exists`` lazily before each one.

    A single qube keeps ``basename``. Otherwise names are ``basename-1``,
    ``basename-2``, ... skipping any already taken, with the counter carried
    forward so later names never reuse an earlier suffix.
    """
    if count == 1:
        yield basename
        return
    k = 1
    for _ in range(count):
        name, k = next_free_name(basename, k, exists)
        yield name
        k += 1


def create_batch(
    control: QubesControl,
    cfg: WinQubeConfig,
    opts: CreateOptions,
    *,
    cancel: Optional[threading.Event] = None,
    on_phase: Optional[Callable[[str, Phase], None]] = None,
) -> list[str]:
    """Provision ``opts.count`` qubes sequentially and return their names.

    Each name is chosen right before its qube is created, so qubes made by
    earlier iterations are seen as taken. The first fatal error stops the
    whole batch.
    """
    created: list[str] = []
    names = iter_instance_names(opts.name, opts.count, control.exists)
    for idx, name in enumerate(names, start=1):
        log.info('Creating Windows qube {} ({}/{})', name, idx, opts.count)
        prov = WindowsQubeProvisioner(
            control,
            cfg,
            replace(opts, name=name),
            name,
            cancel=cancel,
            on_phase=on_phase,
        )
        prov.run()
        created.append(name)
    return created
