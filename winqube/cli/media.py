"""The ``media`` command: list installation media in the resources qube."""

from __future__ import annotations

from ..media import list_answer_files, list_isos
from ._common import _BaseCommand, _load_cfg, _make_control


class MediaCLI(_BaseCommand):
    """List the Windows ISOs and answer files ``create`` can use."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        control = _make_control()
        print(f'Resources qube: {cfg.resources.qube}')
        print('')
        print(f'ISOs ({cfg.isos_dir})')
        for item in list_isos(control, cfg) or ['(none)']:
            print(f'  - {item}')
        print('')
        print(f'Answer files ({cfg.answer_files_dir})')
        for item in list_answer_files(control, cfg) or ['(none)']:
            print(f'  - {item}')
        return 0
