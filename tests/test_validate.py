"""Tests for create-option validation."""

from __future__ import annotations

import pytest

from winqube.config import CreateOptions
from winqube.errors import ValidationError
from winqube.validate import check_options, validate_create


def _opts(**kwargs) -> CreateOptions:
    base = dict(
        name='win10',
        iso='win10x64-enterprise.iso',
        answer_file='win10x64-enterprise.xml',
    )
    base.update(kwargs)
    return CreateOptions(**base)


@pytest.mark.parametrize(
    'kwargs, match',
    [
        ({'name': ''}, 'name is required'),
        ({'name': '1win'}, 'Invalid qube name'),
        ({'name': 'win 10'}, 'Invalid qube name'),
        ({'name': 'w' * 32}, 'Invalid qube name'),
        ({'count': 0}, '--count'),
        ({'disk_size_gib': -1}, 'must not be negative'),
        ({'iso': ''}, '--iso is required'),
        ({'answer_file': ''}, '--answer_file is required'),
        ({'packages': ('firefox',)}, '--packages requires --netvm'),
        ({'whonix': True}, '--whonix requires --netvm'),
    ],
)
def test_check_options_rejects(kwargs, match) -> None:
    with pytest.raises(ValidationError, match=match):
        check_options(_opts(**kwargs))


def test_check_options_accepts_valid() -> None:
    check_options(_opts())
    check_options(_opts(netvm='sys-firewall', packages=('git',), whonix=True))


def test_validate_create_happy_path(fake_qubes, cfg) -> None:
    validate_create(fake_qubes, cfg, _opts(netvm='sys-firewall'))
    assert fake_qubes.calls_of('create') == []


def test_packages_without_netvm_touches_nothing(fake_qubes, cfg) -> None:
    with pytest.raises(ValidationError, match='--netvm'):
        validate_create(fake_qubes, cfg, _opts(packages=('firefox',)))
    assert fake_qubes.calls == []


def test_missing_resources_qube(fake_qubes, cfg) -> None:
    del fake_qubes.qubes['windows-mgmt']
    with pytest.raises(ValidationError, match='Resources qube'):
        validate_create(fake_qubes, cfg, _opts())


def test_existing_name_rejected_for_single_qube(fake_qubes, cfg) -> None:
    fake_qubes._add('win10')
    with pytest.raises(ValidationError, match='already exists'):
        validate_create(fake_qubes, cfg, _opts())
    validate_create(fake_qubes, cfg, _opts(count=2))


def test_missing_netvm(fake_qubes, cfg) -> None:
    with pytest.raises(ValidationError, match='NetVM does not exist'):
        validate_create(fake_qubes, cfg, _opts(netvm='sys-nope'))


def test_missing_iso_lists_available(fake_qubes, cfg) -> None:
    with pytest.raises(ValidationError) as excinfo:
        validate_create(fake_qubes, cfg, _opts(iso='win7.iso'))
    msg = str(excinfo.value)
    assert 'win7.iso' in msg
    assert 'win10x64-enterprise.iso' in msg


def test_missing_answer_file(fake_qubes, cfg) -> None:
    fake_qubes.files[cfg.answer_files_dir] = []
    with pytest.raises(ValidationError, match=r'\(none found\)'):
        validate_create(fake_qubes, cfg, _opts())


def test_unknown_package(fake_qubes, cfg) -> None:
    fake_qubes.failing_commands = ['package-exists.sh nosuchpkg']
    opts = _opts(netvm='sys-firewall', packages=('firefox', 'nosuchpkg'))
    with pytest.raises(ValidationError, match='Package not found: nosuchpkg'):
        validate_create(fake_qubes, cfg, opts)
