"""The ``config`` commands: inspect or write the settings TOML."""

from __future__ import annotations

import scriptconfig as scfg

from ..config import WinQubeConfig, dump_toml, save
from ._common import _BaseCommand, _cfg_path, _load_cfg, log


class ConfigShowCLI(_BaseCommand):
    """Print the effective settings (file values plus environment)."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        print(f'# {_cfg_path(args.config)}')
        print(dump_toml(_load_cfg(args.config)), end='')
        return 0


class ConfigInitCLI(_BaseCommand):
    """Write a settings file populated with defaults."""

    force = scfg.Value(
        False, isflag=True, help='Overwrite an existing settings file.'
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        path = _cfg_path(args.config)
        if path.exists() and not args.force:
            raise RuntimeError(
                f'Settings already exist: {path}. Use --force to overwrite.'
            )
        path.parent.mkdir(parents=True, exist_ok=True)
        save(path, WinQubeConfig())
        log.info('Wrote default settings to {}', path)
        print(path)
        return 0


class ConfigModalCLI(scfg.ModalCLI):
    """Settings subcommands."""

    show = ConfigShowCLI
    init = ConfigInitCLI
