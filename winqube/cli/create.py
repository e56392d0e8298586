"""The ``create`` command: validate options, then provision the qubes."""

from __future__ import annotations

import scriptconfig as scfg

from ..batch import create_batch
from ..config import CreateOptions, parse_packages
from ..host import require_supported_host
from ..validate import check_options, validate_create
from ._common import _BaseCommand, _load_cfg, _make_control, log


class CreateCLI(_BaseCommand):
    """Create and fully set up one or more Windows qubes.

    The ISOs and answer files available in the resources qube are listed by
    ``winqube media``, not by this help.
    """

    name = scfg.Value('', position=1, help='Name of the new qube.')
    iso = scfg.Value(
        '',
        short_alias=['i'],
        help='Windows ISO in the resources qube (see: winqube media).',
    )
    answer_file = scfg.Value(
        '',
        short_alias=['a'],
        help='Answer file (XML) in the resources qube (see: winqube media).',
    )
    count = scfg.Value(
        1,
        short_alias=['c'],
        type=int,
        help='Number of qubes with the same configuration to create.',
    )
    template = scfg.Value(
        False,
        short_alias=['t'],
        isflag=True,
        help='Make a TemplateVM instead of a StandaloneVM.',
    )
    netvm = scfg.Value(
        '',
        short_alias=['n'],
        help='NetVM to attach once installation has finished.',
    )
    seamless = scfg.Value(
        False,
        short_alias=['s'],
        isflag=True,
        help='Enable seamless mode persistently across reboots.',
    )
    optimize = scfg.Value(
        False,
        short_alias=['o'],
        isflag=True,
        help='Disable Windows functionality a qube does not need.',
    )
    spyless = scfg.Value(
        False,
        short_alias=['y'],
        isflag=True,
        help='Configure Windows telemetry settings to respect privacy.',
    )
    whonix = scfg.Value(
        False,
        short_alias=['w'],
        isflag=True,
        help='Apply recommended settings for a Windows-Whonix-Workstation.',
    )
    packages = scfg.Value(
        '',
        short_alias=['p'],
        help='Comma-separated Chocolatey packages to pre-install.',
    )
    pool = scfg.Value('', short_alias=['P'], help='Storage pool for the qube.')
    disk_size = scfg.Value(
        0,
        short_alias=['d'],
        type=int,
        help='Root volume size in GiB (default from settings).',
    )
    skip_host_check = scfg.Value(
        False,
        isflag=True,
        help='Do not verify that this is dom0 on a supported Qubes release.',
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        opts = _options_from_args(args)
        check_options(opts)
        if not args.skip_host_check:
            require_supported_host()
        cfg = _load_cfg(args.config)
        control = _make_control()
        validate_create(control, cfg, opts)
        created = create_batch(control, cfg, opts)
        log.info('Created {} qube(s): {}', len(created), ', '.join(created))
        for name in created:
            print(name)
        return 0


def _options_from_args(args: CreateCLI) -> CreateOptions:
    return CreateOptions(
        name=str(args.name or '').strip(),
        iso=str(args.iso or '').strip(),
        answer_file=str(args.answer_file or '').strip(),
        count=int(args.count),
        template=bool(args.template),
        netvm=str(args.netvm or '').strip(),
        seamless=bool(args.seamless),
        optimize=bool(args.optimize),
        spyless=bool(args.spyless),
        whonix=bool(args.whonix),
        packages=parse_packages(args.packages),
        pool=str(args.pool or '').strip(),
        disk_size_gib=int(args.disk_size or 0),
    )
