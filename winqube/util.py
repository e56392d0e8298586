"""Running dom0 commands and reporting their outcome."""

from __future__ import annotations

import os
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from typing import Optional, Sequence

from loguru import logger

log = logger


@dataclass(frozen=True)
class CmdResult:
    code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.code == 0


class CmdError(RuntimeError):
    """A command exited non-zero; ``result`` holds its captured output."""

    def __init__(self, cmd: Sequence[str] | str, result: CmdResult):
        self.cmd = cmd
        self.result = result
        shown = cmd if isinstance(cmd, str) else shell_join(cmd)
        super().__init__(
            f'{shown} exited with {result.code}\n{result.stderr}'.strip()
        )

    @property
    def summary(self) -> str:
        """First line of the message, for one-line log entries."""
        return str(self).splitlines()[0]


def shell_join(cmd: Sequence[str]) -> str:
    return ' '.join(shlex.quote(c) for c in cmd)


def _with_sudo(cmd: Sequence[str]) -> list[str]:
    if os.geteuid() == 0:
        return list(cmd)
    # -n: never prompt, fail instead
    return ['sudo', '-n', *cmd]


def _decode(data: bytes | None) -> str:
    return (data or b'').decode('utf-8', errors='replace')


def run_cmd(
    cmd: Sequence[str],
    *,
    sudo: bool = False,
    check: bool = True,
    capture: bool = True,
    text: bool = True,
    input_text: Optional[str] = None,
    stdin_path: Optional[str] = None,
) -> CmdResult:
    """Run a dom0 command and wrap its outcome in a :class:`CmdResult`.

    ``stdin_path`` streams a file into the command, which is how media is
    passed into another qube with ``qvm-run --pass-io``. Output is always
    decoded to text.
    """
    argv = _with_sudo(cmd) if sudo else list(cmd)
    log.opt(depth=1).debug('RUN: {}', shell_join(argv))
    if stdin_path is not None:
        with open(stdin_path, 'rb') as fh:
            proc = subprocess.run(argv, stdin=fh, capture_output=capture)
        res = CmdResult(
            proc.returncode, _decode(proc.stdout), _decode(proc.stderr)
        )
    else:
        proc = subprocess.run(
            argv, input=input_text, capture_output=capture, text=text
        )
        res = CmdResult(proc.returncode, proc.stdout or '', proc.stderr or '')
    if res.ok:
        log.opt(depth=1).debug('OK: {}', shell_join(argv))
    elif check:
        log.opt(depth=1).error(
            'Command failed code={} cmd={} stderr={}',
            res.code,
            shell_join(argv),
            res.stderr.strip(),
        )
        raise CmdError(argv, res)
    return res


def which(cmd: str) -> Optional[str]:
    return shutil.which(cmd)
