"""Short-lived qrexec policy files that allow one qube-to-qube transfer."""

from __future__ import annotations

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from loguru import logger

from .config import PolicyConfig
from .util import CmdError, run_cmd

log = logger

FILECOPY_SERVICE = 'qubes.Filecopy'


def grant_path(cfg: PolicyConfig, run_id: int | str | None = None) -> Path:
    """Policy file for this run, keyed by pid unless ``run_id`` is given."""
    rid = os.getpid() if run_id is None else run_id
    return Path(cfg.dir) / f'{cfg.prefix}-{rid}.policy'


def policy_line(service: str, source: str, dest: str) -> str:
    return f'{service} * {source} {dest} allow\n'


def write_grant(path: Path, text: str) -> None:
    run_cmd(['tee', str(path)], sudo=True, input_text=text)
    log.debug('Wrote policy grant {}', path)


def revoke_grant(path: Path) -> None:
    run_cmd(['rm', '-f', str(path)], sudo=True)
    log.debug('Removed policy grant {}', path)


@contextmanager
def policy_grant(
    cfg: PolicyConfig,
    source: str,
    dest: str,
    *,
    service: str = FILECOPY_SERVICE,
    run_id: int | str | None = None,
) -> Iterator[Path]:
    """Allow ``service`` from ``source`` to ``dest`` for the ``with`` body.

    The policy file is removed when the block exits, including on error. If
    the body failed, a failure to remove the file is only logged and the
    body's exception propagates.
    """
    path = grant_path(cfg, run_id)
    write_grant(path, policy_line(service, source, dest))
    log.info('Granted {} from {} to {}', service, source, dest)
    try:
        yield path
    except BaseException:
        try:
            revoke_grant(path)
        except CmdError as ex:
            log.error(
                'Could not remove policy grant {}; delete it manually: {}',
                path,
                ex.summary,
            )
        raise
    revoke_grant(path)
    log.info('Revoked {} grant from {} to {}', service, source, dest)
