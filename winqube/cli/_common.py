"""Options and helpers shared by the winqube subcommands."""

from __future__ import annotations

from pathlib import Path

import scriptconfig as scfg
from loguru import logger

from ..config import WinQubeConfig, config_path, load
from ..qubes import QubesAdminCLI, QubesControl

log = logger


class _BaseCommand(scfg.DataConfig):
    """Base options shared by all commands."""

    config = scfg.Value(
        None, help='Path to settings TOML (default: user config dir).'
    )
    verbose = scfg.Value(
        0,
        short_alias=['v'],
        isflag='counter',
        help='Increase verbosity (-v, -vv).',
    )


def _cfg_path(p: str | None) -> Path:
    return Path(p).expanduser().resolve() if p else config_path()


def _load_cfg(config_path_opt: str | None) -> WinQubeConfig:
    path = _cfg_path(config_path_opt)
    if config_path_opt and not path.exists():
        raise FileNotFoundError(
            f'Config not found: {path}. Run: winqube config init --config {path}'
        )
    cfg = load(path)
    log.debug('Loaded settings from {} (exists={})', path, path.exists())
    return cfg


def _make_control() -> QubesControl:
    return QubesAdminCLI()


__all__ = [name for name in globals() if not name.startswith('__')]
