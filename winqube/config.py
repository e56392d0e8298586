"""Host settings (TOML backed) and the immutable per-run create options."""

from __future__ import annotations

import os
import tomllib
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Sequence

import ubelt as ub

RESOURCES_QUBE_ENV = 'WINQUBE_RESOURCES_QUBE'

DEFAULT_RESOURCES_QUBE = 'windows-mgmt'
DEFAULT_RESOURCES_DIR = '/home/user/Documents/qvm-create-windows-qube'
DEFAULT_QWT_ISO = '/usr/lib/qubes/qubes-windows-tools.iso'

# Marker feature announced by Qubes Windows Tools once its agent is up.
READY_FEATURE = 'os'
READY_VALUE = 'Windows'


@dataclass
class ResourcesConfig:
    qube: str = DEFAULT_RESOURCES_QUBE
    dir: str = DEFAULT_RESOURCES_DIR
    tools_iso: str = DEFAULT_QWT_ISO


@dataclass
class VMConfig:
    label: str = 'red'
    # Windows 10/11 minimums
    memory_mb: int = 4096
    qrexec_timeout: int = 7200 * 12
    disk_size_gib: int = 60
    private_size_gib: int = 2


@dataclass
class TimingConfig:
    poll_interval_s: float = 1.0
    start_backoff_s: float = 10.0
    # 0 means wait forever
    wait_timeout_s: float = 0.0


@dataclass
class NetworkConfig:
    open_on_failure: bool = False


@dataclass
class PolicyConfig:
    dir: str = '/etc/qubes/policy.d'
    prefix: str = '30-winqube'


@dataclass
class WinQubeConfig:
    resources: ResourcesConfig = field(default_factory=ResourcesConfig)
    vm: VMConfig = field(default_factory=VMConfig)
    timing: TimingConfig = field(default_factory=TimingConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    policy: PolicyConfig = field(default_factory=PolicyConfig)
    verbosity: int = 1

    def with_env_overrides(self) -> 'WinQubeConfig':
        qube = os.environ.get(RESOURCES_QUBE_ENV, '').strip()
        if qube:
            self.resources.qube = qube
        return self

    @property
    def isos_dir(self) -> str:
        return f'{self.resources.dir}/windows-media/isos'

    @property
    def answer_files_dir(self) -> str:
        return f'{self.resources.dir}/windows-media/answer-files'

    @property
    def media_out_dir(self) -> str:
        return f'{self.resources.dir}/windows-media/out'

    @property
    def tools_dir(self) -> str:
        return f'{self.resources.dir}/tools'

    @property
    def post_dir(self) -> str:
        return f'{self.resources.dir}/windows/post'


@dataclass(frozen=True)
class CreateOptions:
    """Everything the ``create`` flags decide, fixed for the whole run."""

    name: str
    iso: str
    answer_file: str
    count: int = 1
    template: bool = False
    netvm: str = ''
    seamless: bool = False
    optimize: bool = False
    spyless: bool = False
    whonix: bool = False
    packages: tuple[str, ...] = ()
    pool: str = ''
    disk_size_gib: int = 0

    @property
    def qube_class(self) -> str:
        return 'TemplateVM' if self.template else 'StandaloneVM'

    @property
    def wants_network(self) -> bool:
        return bool(self.netvm)

    @property
    def wants_packages(self) -> bool:
        return bool(self.packages)


def parse_packages(raw: str | Sequence[str] | None) -> tuple[str, ...]:
    """Split a comma list of package names.

    The command line may hand over the list already split, so a sequence of
    strings (each possibly holding commas itself) is accepted too.
    """
    if raw is None:
        raw = ''
    if isinstance(raw, str):
        raw = [raw]
    seen: set[str] = set()
    out: list[str] = []
    for item in (part for chunk in raw for part in str(chunk).split(',')):
        item = item.strip()
        if not item or item in seen:
            continue
        seen.add(item)
        out.append(item)
    return tuple(out)


def config_path() -> Path:
    p = ub.Path.appdir('winqube', type='config').ensuredir()
    return Path(p) / 'config.toml'


_SECTIONS = ('resources', 'vm', 'timing', 'network', 'policy')


def _toml_escape(s: str) -> str:
    return s.replace('\\', '\\\\').replace('"', '\\"')


def dump_toml(cfg: WinQubeConfig) -> str:
    d = asdict(cfg)
    lines: list[str] = []
    # top-level keys must precede the first table header
    if cfg.verbosity != 1:
        lines.append(f'verbosity = {int(cfg.verbosity)}')
        lines.append('')
    for section, body in d.items():
        if isinstance(body, dict):
            lines.append(f'[{section}]')
            for k, v in body.items():
                if isinstance(v, bool):
                    lines.append(f"{k} = {'true' if v else 'false'}")
                elif isinstance(v, (int, float)):
                    lines.append(f'{k} = {v}')
                else:
                    lines.append(f'{k} = "{_toml_escape(str(v))}"')
            lines.append('')
    return '\n'.join(lines).rstrip() + '\n'


def load(path: Path | None = None) -> WinQubeConfig:
    fpath = path or config_path()
    cfg = WinQubeConfig()
    if not fpath.exists():
        return cfg.with_env_overrides()
    raw = tomllib.loads(fpath.read_text(encoding='utf-8'))
    for section in _SECTIONS:
        if section in raw and isinstance(raw[section], dict):
            obj = getattr(cfg, section)
            for k, v in raw[section].items():
                if hasattr(obj, k):
                    setattr(obj, k, v)
    if 'verbosity' in raw:
        cfg.verbosity = int(raw['verbosity'])
    return cfg.with_env_overrides()


def save(path: Path, cfg: WinQubeConfig) -> None:
    path.write_text(dump_toml(cfg), encoding='utf-8')
