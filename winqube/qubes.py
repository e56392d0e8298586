"""Capability interface over the Qubes admin tools and its ``qvm-*`` adapter."""

from __future__ import annotations

import abc
import shlex
from dataclasses import dataclass

from loguru import logger

from .util import CmdResult, run_cmd

log = logger


@dataclass(frozen=True)
class MediaRef:
    """An image file living inside another qube, attachable as a cdrom."""

    qube: str
    path: str

    @property
    def cdrom_arg(self) -> str:
        return f'{self.qube}:{self.path}'


class QubesControl(abc.ABC):
    """Primitive operations the provisioner performs against named qubes.

    Mutating methods raise :class:`winqube.util.CmdError` when the
    underlying tool fails. Query methods never raise for a missing or
    stopped qube; they report "no" instead.
    """

    @abc.abstractmethod
    def exists(self, name: str) -> bool: ...

    @abc.abstractmethod
    def is_running(self, name: str) -> bool: ...

    @abc.abstractmethod
    def get_feature(self, name: str, key: str) -> str | None: ...

    @abc.abstractmethod
    def set_feature(self, name: str, key: str, value: str) -> None: ...

    @abc.abstractmethod
    def unset_feature(self, name: str, key: str) -> None: ...

    @abc.abstractmethod
    def create(
        self, name: str, qube_class: str, *, label: str, pool: str = ''
    ) -> CmdResult: ...

    @abc.abstractmethod
    def set_pref(self, name: str, key: str, value: str) -> None: ...

    @abc.abstractmethod
    def extend_volume(self, name: str, volume: str, size_gib: int) -> None: ...

    @abc.abstractmethod
    def start(self, name: str, media: MediaRef | None = None) -> CmdResult: ...

    @abc.abstractmethod
    def shutdown_and_wait(self, name: str) -> None: ...

    @abc.abstractmethod
    def run_command(
        self, name: str, cmd: str, *, interactive: bool = False
    ) -> CmdResult: ...

    @abc.abstractmethod
    def copy_in(self, src: str, dest: str, path: str) -> CmdResult: ...

    @abc.abstractmethod
    def send_file(self, local_path: str, dest: str, dest_path: str) -> None: ...

    @abc.abstractmethod
    def set_firewall(self, name: str, rule: str) -> None: ...

    @abc.abstractmethod
    def add_tag(self, name: str, tag: str) -> None: ...

    @abc.abstractmethod
    def list_files(
        self, name: str, directory: str, pattern: str
    ) -> list[str]: ...

    @abc.abstractmethod
    def process_running(self, pattern: str) -> bool: ...

    @abc.abstractmethod
    def sync_appmenus(self, name: str) -> None: ...


FIREWALL_RULES = ('drop', 'accept')


class QubesAdminCLI(QubesControl):
    """Drive qubes through the dom0 ``qvm-*`` command line tools."""

    def exists(self, name: str) -> bool:
        return run_cmd(['qvm-check', '--quiet', name], check=False).code == 0

    def is_running(self, name: str) -> bool:
        res = run_cmd(['qvm-check', '--running', '--quiet', name], check=False)
        return res.code == 0

    def get_feature(self, name: str, key: str) -> str | None:
        res = run_cmd(['qvm-features', name, key], check=False)
        if res.code != 0:
            return None
        value = res.stdout.strip()
        return value or None

    def set_feature(self, name: str, key: str, value: str) -> None:
        run_cmd(['qvm-features', name, key, value])

    def unset_feature(self, name: str, key: str) -> None:
        run_cmd(['qvm-features', '--unset', name, key])

    def create(
        self, name: str, qube_class: str, *, label: str, pool: str = ''
    ) -> CmdResult:
        cmd = ['qvm-create', '--class', qube_class, '--label', label]
        if pool:
            cmd += ['-P', pool]
        return run_cmd([*cmd, name])

    def set_pref(self, name: str, key: str, value: str) -> None:
        run_cmd(['qvm-prefs', name, key, value])

    def extend_volume(self, name: str, volume: str, size_gib: int) -> None:
        run_cmd(['qvm-volume', 'extend', f'{name}:{volume}', f'{size_gib}g'])

    def start(self, name: str, media: MediaRef | None = None) -> CmdResult:
        cmd = ['qvm-start']
        if media is not None:
            cmd.append(f'--cdrom={media.cdrom_arg}')
        return run_cmd([*cmd, name])

    def shutdown_and_wait(self, name: str) -> None:
        run_cmd(['qvm-shutdown', '--wait', name])

    def run_command(
        self, name: str, cmd: str, *, interactive: bool = False
    ) -> CmdResult:
        if interactive:
            return run_cmd(['qvm-run', '-p', name, cmd], capture=False)
        return run_cmd(['qvm-run', '-q', name, cmd])

    def copy_in(self, src: str, dest: str, path: str) -> CmdResult:
        inner = f'qvm-copy-to-vm {shlex.quote(dest)} {shlex.quote(path)}'
        return run_cmd(['qvm-run', '-q', '-p', src, inner])

    def send_file(self, local_path: str, dest: str, dest_path: str) -> None:
        run_cmd(
            ['qvm-run', '-q', '-p', dest, f'cat > {shlex.quote(dest_path)}'],
            stdin_path=local_path,
        )

    def set_firewall(self, name: str, rule: str) -> None:
        if rule not in FIREWALL_RULES:
            raise ValueError(f'Unknown firewall rule: {rule!r}')
        # reset leaves a single accept-all rule
        run_cmd(['qvm-firewall', name, 'reset'])
        if rule == 'drop':
            run_cmd(['qvm-firewall', name, 'add', '--before', '0', 'drop'])

    def add_tag(self, name: str, tag: str) -> None:
        run_cmd(['qvm-tags', name, 'add', tag])

    def list_files(self, name: str, directory: str, pattern: str) -> list[str]:
        inner = (
            f'cd {shlex.quote(directory)} && '
            'find . -maxdepth 1 -type f '
            f"-name {shlex.quote(pattern)} -printf '%f\\n'"
        )
        res = run_cmd(['qvm-run', '-p', name, inner], check=False)
        if res.code != 0:
            log.warning(
                'Could not list {} in {}:{}: {}',
                pattern,
                name,
                directory,
                res.stderr.strip(),
            )
            return []
        return sorted(
            line.strip() for line in res.stdout.splitlines() if line.strip()
        )

    def process_running(self, pattern: str) -> bool:
        return run_cmd(['pgrep', '-f', pattern], check=False).code == 0

    def sync_appmenus(self, name: str) -> None:
        run_cmd(['qvm-sync-appmenus', name])
