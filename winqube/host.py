"""Dom0 preflight checks: host identity, Qubes release, and required tools."""

from __future__ import annotations

import re
import socket
from pathlib import Path

from loguru import logger

from .errors import ValidationError
from .util import which

log = logger

REQUIRED_CMDS = [
    'qvm-check',
    'qvm-create',
    'qvm-prefs',
    'qvm-features',
    'qvm-volume',
    'qvm-start',
    'qvm-shutdown',
    'qvm-run',
    'qvm-firewall',
    'qvm-tags',
]
OPTIONAL_CMDS = ['qvm-sync-appmenus', 'pgrep']

MIN_QUBES_VERSION = (4, 1)
QUBES_RELEASE = Path('/etc/qubes-release')


def check_commands() -> tuple[list[str], list[str]]:
    missing = [c for c in REQUIRED_CMDS if which(c) is None]
    missing_opt = [c for c in OPTIONAL_CMDS if which(c) is None]
    return missing, missing_opt


def is_dom0() -> bool:
    return socket.gethostname() == 'dom0'


def qubes_version() -> tuple[int, int] | None:
    try:
        data = QUBES_RELEASE.read_text(encoding='utf-8')
    except Exception:
        return None
    m = re.search(r'release\s+R?(\d+)\.(\d+)', data)
    if m is None:
        return None
    return int(m.group(1)), int(m.group(2))


def require_supported_host() -> tuple[int, int]:
    if not is_dom0():
        raise ValidationError('winqube must be run from dom0.')
    version = qubes_version()
    if version is None:
        raise ValidationError(
            f'Could not determine the Qubes OS release from {QUBES_RELEASE}.'
        )
    if version < MIN_QUBES_VERSION:
        want = '.'.join(str(v) for v in MIN_QUBES_VERSION)
        have = '.'.join(str(v) for v in version)
        raise ValidationError(
            f'Qubes OS {have} is not supported; {want} or newer is required.'
        )
    log.debug('Host is dom0 on Qubes OS {}.{}', *version)
    return version
