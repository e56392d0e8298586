"""The ``doctor`` command: report whether this host can run ``create``."""

from __future__ import annotations

from ..errors import ValidationError
from ..host import check_commands, require_supported_host
from ._common import _BaseCommand, _load_cfg, _make_control


class DoctorCLI(_BaseCommand):
    """Check dom0, the Qubes release, the qvm tools, and the resources qube."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        ok = True
        try:
            version = require_supported_host()
        except ValidationError as ex:
            print(f'FAIL host: {ex}')
            ok = False
        else:
            print(f'OK   host: dom0, Qubes OS {version[0]}.{version[1]}')
        missing, missing_opt = check_commands()
        if missing:
            print(f'FAIL tools: missing {", ".join(missing)}')
            ok = False
        else:
            print('OK   tools: all required qvm-* commands found')
        if missing_opt:
            print(f'WARN tools: optional missing {", ".join(missing_opt)}')
        cfg = _load_cfg(args.config)
        if not missing and _make_control().exists(cfg.resources.qube):
            print(f'OK   resources qube: {cfg.resources.qube}')
        else:
            print(f'FAIL resources qube: {cfg.resources.qube} not found')
            ok = False
        return 0 if ok else 1
