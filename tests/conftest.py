"""Shared fixtures: an in-memory stand-in for the qvm-* tools."""

from __future__ import annotations

import pytest

from winqube.config import READY_FEATURE, READY_VALUE, WinQubeConfig
from winqube.qubes import MediaRef, QubesControl
from winqube.util import CmdError, CmdResult

RESOURCES = 'windows-mgmt'


def _fail(what: str) -> CmdError:
    return CmdError(what, CmdResult(1, '', f'{what} failed'))


class FakeQubes(QubesControl):
    """Simulates qubes that boot, run for a few observations, then stop.

    Every start counts as a boot of that qube. A running qube stops after
    ``boot_polls`` observations (``is_running`` or ``get_feature``). When
    boot number ``marker_boot`` ends, the ready marker is set, as the tools
    would do.
    """

    def __init__(self, existing=(RESOURCES, 'sys-firewall')) -> None:
        self.qubes: dict[str, dict] = {}
        for name in existing:
            self._add(name)
        self.calls: list[tuple] = []
        self.boot_polls = 1
        self.marker_boot = 3
        self.start_failures = 0
        self.copy_failures = 0
        self.appmenu_polls = 1
        self.failing_commands: list[str] = []
        self.fail_sync_appmenus = False
        self.files: dict[str, list[str]] = {}
        self._appmenu_seen: dict[str, int] = {}

    def _add(self, name: str) -> dict:
        q = {
            'running': False,
            'ticks': 0,
            'boots': 0,
            'features': {},
            'prefs': {},
            'tags': set(),
            'firewall': 'accept',
            'volumes': {},
        }
        self.qubes[name] = q
        return q

    def _observe(self, name: str) -> dict | None:
        q = self.qubes.get(name)
        if q is None or not q['running']:
            return q
        if q['ticks'] > 0:
            q['ticks'] -= 1
        else:
            q['running'] = False
            if q['boots'] >= self.marker_boot:
                q['features'][READY_FEATURE] = READY_VALUE
        return q

    def calls_of(self, method: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == method]

    def exists(self, name: str) -> bool:
        self.calls.append(('exists', name))
        return name in self.qubes

    def is_running(self, name: str) -> bool:
        self.calls.append(('is_running', name))
        q = self._observe(name)
        return bool(q and q['running'])

    def get_feature(self, name: str, key: str) -> str | None:
        self.calls.append(('get_feature', name, key))
        q = self._observe(name)
        if q is None:
            return None
        return q['features'].get(key)

    def set_feature(self, name: str, key: str, value: str) -> None:
        self.calls.append(('set_feature', name, key, value))
        self.qubes[name]['features'][key] = value

    def unset_feature(self, name: str, key: str) -> None:
        self.calls.append(('unset_feature', name, key))
        self.qubes[name]['features'].pop(key, None)

    def create(
        self, name: str, qube_class: str, *, label: str, pool: str = ''
    ) -> CmdResult:
        self.calls.append(('create', name, qube_class, label, pool))
        if name in self.qubes:
            raise _fail(f'qvm-create {name}')
        self._add(name)
        return CmdResult(0, '', '')

    def set_pref(self, name: str, key: str, value: str) -> None:
        self.calls.append(('set_pref', name, key, value))
        self.qubes[name]['prefs'][key] = value

    def extend_volume(self, name: str, volume: str, size_gib: int) -> None:
        self.calls.append(('extend_volume', name, volume, size_gib))
        self.qubes[name]['volumes'][volume] = size_gib

    def start(self, name: str, media: MediaRef | None = None) -> CmdResult:
        self.calls.append(('start', name, media))
        if self.start_failures > 0:
            self.start_failures -= 1
            raise _fail(f'qvm-start {name}')
        q = self.qubes[name]
        q['boots'] += 1
        q['running'] = True
        q['ticks'] = self.boot_polls
        return CmdResult(0, '', '')

    def shutdown_and_wait(self, name: str) -> None:
        self.calls.append(('shutdown_and_wait', name))
        self.qubes[name]['running'] = False

    def run_command(
        self, name: str, cmd: str, *, interactive: bool = False
    ) -> CmdResult:
        self.calls.append(('run_command', name, cmd))
        if any(pat in cmd for pat in self.failing_commands):
            raise _fail(cmd)
        return CmdResult(0, '', '')

    def copy_in(self, src: str, dest: str, path: str) -> CmdResult:
        self.calls.append(('copy_in', src, dest, path))
        if self.copy_failures > 0:
            self.copy_failures -= 1
            raise _fail('qvm-copy-to-vm')
        return CmdResult(0, '', '')

    def send_file(self, local_path: str, dest: str, dest_path: str) -> None:
        self.calls.append(('send_file', local_path, dest, dest_path))

    def set_firewall(self, name: str, rule: str) -> None:
        self.calls.append(('set_firewall', name, rule))
        self.qubes[name]['firewall'] = rule

    def add_tag(self, name: str, tag: str) -> None:
        self.calls.append(('add_tag', name, tag))
        self.qubes[name]['tags'].add(tag)

    def list_files(self, name: str, directory: str, pattern: str) -> list[str]:
        self.calls.append(('list_files', name, directory, pattern))
        return list(self.files.get(directory, []))

    def process_running(self, pattern: str) -> bool:
        self.calls.append(('process_running', pattern))
        seen = self._appmenu_seen.get(pattern, 0) + 1
        self._appmenu_seen[pattern] = seen
        return seen <= self.appmenu_polls

    def sync_appmenus(self, name: str) -> None:
        self.calls.append(('sync_appmenus', name))
        if self.fail_sync_appmenus:
            raise _fail(f'qvm-sync-appmenus {name}')


@pytest.fixture
def cfg() -> WinQubeConfig:
    cfg = WinQubeConfig()
    cfg.timing.poll_interval_s = 0
    cfg.timing.start_backoff_s = 0
    return cfg


@pytest.fixture
def fake_qubes(cfg: WinQubeConfig) -> FakeQubes:
    fake = FakeQubes()
    fake.files[cfg.isos_dir] = ['win10x64-enterprise.iso']
    fake.files[cfg.answer_files_dir] = ['win10x64-enterprise.xml']
    return fake


@pytest.fixture(autouse=True)
def policy_calls(monkeypatch) -> list[list[str]]:
    """Record policy file writes instead of running sudo."""
    calls: list[list[str]] = []

    def fake_run_cmd(cmd, **kwargs):
        calls.append(list(cmd))
        return CmdResult(0, '', '')

    monkeypatch.setattr('winqube.policy.run_cmd', fake_run_cmd)
    return calls
