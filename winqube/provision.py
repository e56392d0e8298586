"""Phase-by-phase provisioning of one Windows qube.

The run is a straight line of phases; there is no rollback. Steps that
create the qube or drive the installer are fatal on failure, customization
steps inside the guest are best-effort. The policy grant is always revoked
and the network stays sealed on failure unless configured otherwise.
"""

from __future__ import annotations

import enum
import threading
from typing import Callable, Optional

from loguru import logger

from .config import CreateOptions, WinQubeConfig
from .media import create_unattended_iso, remove_staged_media, stage_tools_iso
from .netguard import IsolationWindow
from .poll import (
    Deadline,
    await_edge,
    await_marker,
    await_running_until_marked,
    marker_present,
)
from .policy import policy_grant
from .qubes import MediaRef, QubesControl
from .retry import retry_forever
from .util import CmdError

log = logger


class Phase(enum.Enum):
    CREATED = 'created'
    DISK_CONFIGURED = 'disk-configured'
    INSTALL_PHASE_1_RUNNING = 'install-phase-1-running'
    INSTALL_PHASE_1_DONE = 'install-phase-1-done'
    INSTALL_PHASE_2_RUNNING = 'install-phase-2-running'
    INSTALL_PHASE_2_DONE = 'install-phase-2-done'
    TOOLS_STAGING = 'tools-staging'
    TOOLS_INSTALL_RUNNING = 'tools-install-running'
    TOOLS_INSTALL_DONE = 'tools-install-done'
    TOOLS_FINALIZE_RUNNING = 'tools-finalize-running'
    APPMENU_SYNC = 'appmenu-sync'
    POST_SCRIPTS = 'post-scripts'
    TEARDOWN_POLICY = 'teardown-policy'
    SHUTDOWN = 'shutdown'
    DONE = 'done'


WHONIX_TAG = 'anon-vm'

# Customization scripts shipped in the post bundle, keyed by option name.
OPTIONAL_SCRIPTS = (
    ('seamless', 'seamless.bat'),
    ('optimize', 'optimize.bat'),
    ('spyless', 'spyless.bat'),
    ('whonix', 'whonix.bat'),
)
PACKAGES_SCRIPT = 'packages.bat'
USER_SCRIPT = 'run.bat'


# POSIX extended regex metacharacters, as interpreted by pgrep
_ERE_SPECIAL = set('.[]()*+?{}|^$\\')


def appmenu_sync_pattern(name: str) -> str:
    """``pgrep -f`` regex matching only the app menu sync of ``name``.

    The name is escaped and the match anchored at both ends, so a
    sync of ``win-10`` does not match ``win-1``.
    """
    escaped = ''.join('\\' + c if c in _ERE_SPECIAL else c for c in name)
    return f'(^|[/ ])qvm-sync-appmenus {escaped}$'


def guest_incoming_dir(resources_qube: str) -> str:
    return f'%USERPROFILE%\\Documents\\QubesIncoming\\{resources_qube}'


class WindowsQubeProvisioner:
    """Provision the qube ``name`` from a fixed set of options."""

    def __init__(
        self,
        control: QubesControl,
        cfg: WinQubeConfig,
        opts: CreateOptions,
        name: str,
        *,
        cancel: Optional[threading.Event] = None,
        on_phase: Optional[Callable[[str, Phase], None]] = None,
    ) -> None:
        self.control = control
        self.cfg = cfg
        self.opts = opts
        self.name = name
        self.cancel = cancel
        self.on_phase = on_phase
        self.phase: Phase | None = None
        self.phase_history: list[Phase] = []

    def _enter(self, phase: Phase) -> None:
        self.phase = phase
        self.phase_history.append(phase)
        log.info('{}: {}', self.name, phase.value)
        if self.on_phase is not None:
            self.on_phase(self.name, phase)

    def _deadline(self) -> Deadline:
        return Deadline.from_seconds(
            self.cfg.timing.wait_timeout_s, cancel=self.cancel
        )

    @property
    def _poll_interval(self) -> float:
        return self.cfg.timing.poll_interval_s

    def _start(self, media: MediaRef | None = None) -> None:
        retry_forever(
            lambda: self.control.start(self.name, media),
            backoff=self.cfg.timing.start_backoff_s,
            what=f'start {self.name}',
            deadline=self._deadline(),
        )

    def _await_boot(self) -> None:
        await_running_until_marked(
            self.control,
            self.name,
            poll_interval=self._poll_interval,
            deadline=self._deadline(),
        )

    def _best_effort(self, what: str, func: Callable[[], object]) -> bool:
        try:
            func()
        except CmdError as ex:
            log.warning('{} failed for {} (ignored): {}', what, self.name, ex)
            return False
        return True

    def _guest_run(self, command: str, *, interactive: bool = False) -> None:
        post_dir = f'{guest_incoming_dir(self.cfg.resources.qube)}\\post'
        self.control.run_command(
            self.name,
            f'cd /d "{post_dir}" && {command}',
            interactive=interactive,
        )

    def create_and_configure(self) -> None:
        vm = self.cfg.vm
        self.control.create(
            self.name, self.opts.qube_class, label=vm.label, pool=self.opts.pool
        )
        self._enter(Phase.CREATED)
        prefs = [
            ('virt_mode', 'hvm'),
            ('kernel', ''),
            ('memory', str(vm.memory_mb)),
            # dynamic memory balancing is unreliable for Windows guests
            ('maxmem', '0'),
            # installer boots include disk checks of unknown length
            ('qrexec_timeout', str(vm.qrexec_timeout)),
        ]
        for key, value in prefs:
            self.control.set_pref(self.name, key, value)
        # installer display only works with the emulated cirrus adapter
        self.control.set_feature(self.name, 'video-model', 'cirrus')
        disk_size = self.opts.disk_size_gib or vm.disk_size_gib
        self.control.extend_volume(self.name, 'root', disk_size)
        self.control.extend_volume(self.name, 'private', vm.private_size_gib)
        self.control.set_pref(self.name, 'netvm', '')
        if self.opts.whonix:
            self.control.add_tag(self.name, WHONIX_TAG)
        self._enter(Phase.DISK_CONFIGURED)

    def install_phase_1(self, media: MediaRef) -> None:
        self._start(media)
        self._enter(Phase.INSTALL_PHASE_1_RUNNING)
        self._await_boot()
        self._enter(Phase.INSTALL_PHASE_1_DONE)
        self._best_effort(
            'Removing staged installation media',
            lambda: remove_staged_media(self.control, self.cfg, self.name),
        )

    def install_phase_2(self) -> None:
        self.control.unset_feature(self.name, 'video-model')
        self._start()
        self._enter(Phase.INSTALL_PHASE_2_RUNNING)
        self._await_boot()
        self._enter(Phase.INSTALL_PHASE_2_DONE)

    def stage_tools(self) -> MediaRef:
        self._enter(Phase.TOOLS_STAGING)
        return stage_tools_iso(self.control, self.cfg)

    def install_tools(self, media: MediaRef, window: IsolationWindow) -> None:
        window.seal()
        self._start(media)
        self._enter(Phase.TOOLS_INSTALL_RUNNING)
        self._await_boot()
        self._enter(Phase.TOOLS_INSTALL_DONE)

    def finalize_tools(self) -> None:
        # The host can register the tools after the guest already shut down.
        if marker_present(self.control, self.name):
            return
        self._start()
        self._enter(Phase.TOOLS_FINALIZE_RUNNING)
        await_marker(
            self.control,
            self.name,
            poll_interval=self._poll_interval,
            deadline=self._deadline(),
        )

    def sync_appmenus(self) -> None:
        self._enter(Phase.APPMENU_SYNC)
        pattern = appmenu_sync_pattern(self.name)
        await_edge(
            lambda: self.control.process_running(pattern),
            lambda: not self.control.process_running(pattern),
            what=f'app menu sync of {self.name}',
            poll_interval=self._poll_interval,
            deadline=self._deadline(),
        )
        self._best_effort(
            'Forced app menu sync',
            lambda: self.control.sync_appmenus(self.name),
        )

    def copy_post_bundle(self) -> None:
        src = self.cfg.resources.qube
        try:
            self.control.copy_in(src, self.name, self.cfg.post_dir)
        except CmdError as ex:
            log.warning(
                'Copying post-setup scripts into {} failed, retrying once: {}',
                self.name,
                ex,
            )
            self.control.copy_in(src, self.name, self.cfg.post_dir)

    def post_scripts(self, window: IsolationWindow) -> None:
        self._enter(Phase.POST_SCRIPTS)
        self.copy_post_bundle()
        for option, script in OPTIONAL_SCRIPTS:
            if getattr(self.opts, option):
                self._best_effort(
                    f'Post-setup script {script}',
                    lambda script=script: self._guest_run(script),
                )
        if self.opts.wants_packages:
            window.open()
            packages = ','.join(self.opts.packages)
            self._best_effort(
                'Package installation',
                lambda: self._guest_run(
                    f'{PACKAGES_SCRIPT} {packages}', interactive=True
                ),
            )
            self._best_effort(
                'App menu sync after package installation',
                lambda: self.control.sync_appmenus(self.name),
            )
        self._best_effort(
            f'User script {USER_SCRIPT}',
            lambda: self._guest_run(USER_SCRIPT, interactive=True),
        )
        incoming = guest_incoming_dir(self.cfg.resources.qube)
        self._best_effort(
            'Removing post-setup scripts',
            lambda: self.control.run_command(
                self.name, f'rmdir /s /q "{incoming}"'
            ),
        )

    def shutdown(self, window: IsolationWindow) -> None:
        self._enter(Phase.SHUTDOWN)
        self.control.shutdown_and_wait(self.name)
        if not self.opts.wants_packages:
            window.open()

    def run(self) -> Phase:
        log.info(
            'Provisioning {} ({}) from {}',
            self.name,
            self.opts.qube_class,
            self.opts.iso,
        )
        install_media = create_unattended_iso(
            self.control,
            self.cfg,
            self.name,
            self.opts.iso,
            self.opts.answer_file,
        )
        self.create_and_configure()
        self.install_phase_1(install_media)
        self.install_phase_2()
        tools_media = self.stage_tools()
        window = IsolationWindow(
            self.control,
            self.name,
            self.opts.netvm,
            open_on_failure=self.cfg.network.open_on_failure,
        )
        with window:
            self.install_tools(tools_media, window)
            self.finalize_tools()
            self.sync_appmenus()
            with policy_grant(
                self.cfg.policy, self.cfg.resources.qube, self.name
            ):
                self.post_scripts(window)
                self._enter(Phase.TEARDOWN_POLICY)
            self.shutdown(window)
        self._enter(Phase.DONE)
        log.info('Finished provisioning {}', self.name)
        return Phase.DONE
