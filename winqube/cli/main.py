"""Top-level modal CLI wiring, argv normalization, and logging setup."""

from __future__ import annotations

import os
import sys

import scriptconfig as scfg
from loguru import logger

from ._common import _load_cfg, log
from .config import ConfigModalCLI
from .create import CreateCLI
from .host import DoctorCLI
from .media import MediaCLI

LOG_FORMAT = (
    '<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | '
    '<level>{level: <8}</level> | '
    '<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - '
    '<level>{message}</level>'
)

# hyphenated spellings of multi-word long flags
FLAG_ALIASES = {
    '--answer-file': '--answer_file',
    '--disk-size': '--disk_size',
    '--skip-host-check': '--skip_host_check',
}


class WinQubeModalCLI(scfg.ModalCLI):
    """Unattended Windows qube provisioning for Qubes OS dom0."""

    create = CreateCLI
    media = MediaCLI
    doctor = DoctorCLI
    config = ConfigModalCLI


def main(argv: list[str] | None = None) -> None:
    argv = _normalize_argv(sys.argv[1:] if argv is None else argv)
    _setup_logging(_count_verbose(argv), _configured_verbosity(argv))
    try:
        rc = WinQubeModalCLI.main(argv=argv, _noexit=True)
    except Exception as ex:
        print(f'ERROR: {ex}', file=sys.stderr)
        log.error('winqube failed: {}', ex)
        sys.exit(1)
    if '-h' in argv or '--help' in argv:
        sys.exit(0)
    sys.exit(rc if isinstance(rc, int) else 0)


def _configured_verbosity(argv: list[str]) -> int:
    """Verbosity from the settings file, or 1 if it cannot be read."""
    config_value = None
    if '--config' in argv:
        idx = argv.index('--config') + 1
        config_value = argv[idx] if idx < len(argv) else None
    try:
        return _load_cfg(config_value).verbosity
    except Exception:
        return 1


def _log_level(verbosity: int) -> str:
    if verbosity >= 2:
        return 'DEBUG'
    return 'INFO' if verbosity == 1 else 'WARNING'


def _setup_logging(args_verbose: int, cfg_verbosity: int) -> None:
    verbosity = args_verbose or cfg_verbosity
    level = _log_level(verbosity)
    colorize = sys.stderr.isatty() and os.getenv('NO_COLOR') is None
    logger.remove()
    logger.add(sys.stderr, level=level, colorize=colorize, format=LOG_FORMAT)
    log.debug('Logging at {} (verbosity={})', level, verbosity)


def _normalize_argv(argv: list[str]) -> list[str]:
    return [FLAG_ALIASES.get(item, item) for item in argv]


def _count_verbose(argv: list[str]) -> int:
    """Count ``--verbose`` and every ``v`` in short flags like ``-vv``."""
    total = 0
    for item in argv:
        if item == '--verbose':
            total += 1
        elif item[:1] == '-' and item[1:2] != '-' and set(item[1:]) == {'v'}:
            total += len(item) - 1
    return total
