"""Checks run on create options before any qube is touched."""

from __future__ import annotations

import re

from loguru import logger

from .config import CreateOptions, WinQubeConfig
from .errors import ValidationError
from .media import list_answer_files, list_isos, package_exists
from .qubes import QubesControl

log = logger

# Qubes qube names: letter first, then letters, digits, '_', '.', '-'.
QUBE_NAME_RE = re.compile(r'^[a-zA-Z][a-zA-Z0-9_.-]*$')
MAX_QUBE_NAME_LEN = 31


def _choices(items: list[str]) -> str:
    return ', '.join(items) if items else '(none found)'


def check_options(opts: CreateOptions) -> None:
    """Checks that need nothing but the options themselves."""
    if not opts.name:
        raise ValidationError('A qube name is required.')
    if not QUBE_NAME_RE.match(opts.name) or len(opts.name) > MAX_QUBE_NAME_LEN:
        raise ValidationError(f'Invalid qube name: {opts.name!r}')
    if opts.count < 1:
        raise ValidationError(f'--count must be at least 1 (got {opts.count}).')
    if opts.disk_size_gib < 0:
        raise ValidationError(
            f'--disk_size must not be negative (got {opts.disk_size_gib}).'
        )
    if not opts.iso:
        raise ValidationError('--iso is required.')
    if not opts.answer_file:
        raise ValidationError('--answer_file is required.')
    if opts.wants_packages and not opts.wants_network:
        raise ValidationError('--packages requires --netvm.')
    if opts.whonix and not opts.wants_network:
        raise ValidationError('--whonix requires --netvm.')


def validate_create(
    control: QubesControl, cfg: WinQubeConfig, opts: CreateOptions
) -> None:
    """Raise :class:`ValidationError` for anything that would fail a run."""
    check_options(opts)
    resources = cfg.resources.qube
    if not control.exists(resources):
        raise ValidationError(f'Resources qube does not exist: {resources}')
    if opts.count == 1 and control.exists(opts.name):
        raise ValidationError(f'Qube already exists: {opts.name}')
    if opts.wants_network and not control.exists(opts.netvm):
        raise ValidationError(f'NetVM does not exist: {opts.netvm}')
    isos = list_isos(control, cfg)
    if opts.iso not in isos:
        raise ValidationError(
            f'File not found in {resources}:{cfg.isos_dir}: {opts.iso}. '
            f'Available: {_choices(isos)}'
        )
    answers = list_answer_files(control, cfg)
    if opts.answer_file not in answers:
        raise ValidationError(
            f'File not found in {resources}:{cfg.answer_files_dir}: '
            f'{opts.answer_file}. Available: {_choices(answers)}'
        )
    for package in opts.packages:
        log.debug('Checking package {}', package)
        if not package_exists(control, cfg, package):
            raise ValidationError(f'Package not found: {package}')
