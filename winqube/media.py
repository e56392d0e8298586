"""Installation media staging and inventory inside the resources qube."""

from __future__ import annotations

import shlex

from loguru import logger

from .config import WinQubeConfig
from .qubes import MediaRef, QubesControl
from .util import CmdError

log = logger

TOOLS_ISO_NAME = 'qubes-windows-tools.iso'
TOOLS_MEDIA_NAME = 'qwt-installer.iso'


def list_isos(control: QubesControl, cfg: WinQubeConfig) -> list[str]:
    return control.list_files(cfg.resources.qube, cfg.isos_dir, '*.iso')


def list_answer_files(control: QubesControl, cfg: WinQubeConfig) -> list[str]:
    return control.list_files(
        cfg.resources.qube, cfg.answer_files_dir, '*.xml'
    )


def package_exists(
    control: QubesControl, cfg: WinQubeConfig, package: str
) -> bool:
    """Ask the resources qube whether ``package`` is a known Chocolatey package."""
    cmd = (
        f'cd {shlex.quote(cfg.tools_dir)} && '
        f'./package-exists.sh {shlex.quote(package)}'
    )
    try:
        control.run_command(cfg.resources.qube, cmd)
    except CmdError:
        return False
    return True


def _media_path(cfg: WinQubeConfig, filename: str) -> str:
    return f'{cfg.media_out_dir}/{filename}'


def create_unattended_iso(
    control: QubesControl,
    cfg: WinQubeConfig,
    name: str,
    iso: str,
    answer_file: str,
) -> MediaRef:
    """Build ``<name>.iso``: the Windows ISO with the answer file baked in."""
    out = _media_path(cfg, f'{name}.iso')
    cmd = (
        f'cd {shlex.quote(cfg.resources.dir)}/windows-media && '
        './create-media.sh '
        f'{shlex.quote("isos/" + iso)} '
        f'{shlex.quote("answer-files/" + answer_file)} '
        f'{shlex.quote(out)}'
    )
    log.info('Preparing unattended installation media for {}', name)
    control.run_command(cfg.resources.qube, cmd, interactive=True)
    return MediaRef(cfg.resources.qube, out)


def stage_tools_iso(control: QubesControl, cfg: WinQubeConfig) -> MediaRef:
    """Copy the dom0 QWT ISO into the resources qube and repack it to autorun."""
    staged = f'{cfg.tools_dir}/{TOOLS_ISO_NAME}'
    out = _media_path(cfg, TOOLS_MEDIA_NAME)
    log.info(
        'Staging Qubes Windows Tools media from {}', cfg.resources.tools_iso
    )
    control.send_file(cfg.resources.tools_iso, cfg.resources.qube, staged)
    cmd = (
        f'cd {shlex.quote(cfg.tools_dir)} && '
        f'./unpack-qwt-iso.sh {shlex.quote(TOOLS_ISO_NAME)} && '
        f'./create-autorun-media.sh {shlex.quote(out)}'
    )
    control.run_command(cfg.resources.qube, cmd, interactive=True)
    return MediaRef(cfg.resources.qube, out)


def remove_staged_media(
    control: QubesControl, cfg: WinQubeConfig, name: str
) -> None:
    path = _media_path(cfg, f'{name}.iso')
    control.run_command(cfg.resources.qube, f'rm -f {shlex.quote(path)}')
    log.debug('Removed staged media {}', path)
