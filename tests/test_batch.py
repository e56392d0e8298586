"""Tests for naming and sequencing of multi-qube runs."""

from __future__ import annotations

import pytest

from winqube.batch import create_batch, iter_instance_names, next_free_name
from winqube.config import CreateOptions
from winqube.util import CmdError


def _opts(**kwargs) -> CreateOptions:
    return CreateOptions(
        name='win', iso='win.iso', answer_file='win.xml', **kwargs
    )


def test_next_free_name_probes_upward() -> None:
    taken = {'win-1', 'win-2'}
    assert next_free_name('win', 1, taken.__contains__) == ('win-3', 3)
    assert next_free_name('win', 4, taken.__contains__) == ('win-4', 4)


def test_single_instance_keeps_basename() -> None:
    assert list(iter_instance_names('win', 1, lambda n: False)) == ['win']


@pytest.mark.parametrize('count', [2, 3, 7])
def test_names_unique_and_free(count) -> None:
    taken = {'win-1', 'win-3', 'win-4'}
    names = []
    for name in iter_instance_names('win', count, taken.__contains__):
        names.append(name)
        taken.add(name)
    assert len(names) == count
    assert len(set(names)) == count
    assert not {'win-1', 'win-3', 'win-4'} & set(names)


def test_batch_skips_existing_names(fake_qubes, cfg) -> None:
    fake_qubes._add('win-1')
    created = create_batch(fake_qubes, cfg, _opts(count=3))
    assert created == ['win-2', 'win-3', 'win-4']
    assert [c[1] for c in fake_qubes.calls_of('create')] == created


def test_batch_of_one(fake_qubes, cfg) -> None:
    assert create_batch(fake_qubes, cfg, _opts()) == ['win']


def test_batch_runs_sequentially(fake_qubes, cfg) -> None:
    create_batch(fake_qubes, cfg, _opts(count=2))
    creates = [i for i, c in enumerate(fake_qubes.calls) if c[0] == 'create']
    first_shutdown = fake_qubes.calls.index(('shutdown_and_wait', 'win-1'))
    assert creates[0] < first_shutdown < creates[1]


def test_fatal_error_aborts_batch(fake_qubes, cfg) -> None:
    fake_qubes.copy_failures = 2
    with pytest.raises(CmdError):
        create_batch(fake_qubes, cfg, _opts(count=3))
    assert [c[1] for c in fake_qubes.calls_of('create')] == ['win-1']
