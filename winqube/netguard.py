"""Keep a qube off the network while untrusted installers run, then open it."""

from __future__ import annotations

from loguru import logger

from .qubes import QubesControl

log = logger

SEALED = 'sealed'
OPEN = 'open'


def seal(control: QubesControl, name: str) -> None:
    """Deny all traffic and detach the netvm so ``name`` has no route out."""
    log.debug('Sealing network of {}', name)
    control.set_firewall(name, 'drop')
    control.set_pref(name, 'netvm', '')
    log.info('Network sealed for {}', name)


def open_network(control: QubesControl, name: str, netvm: str) -> None:
    """Lift the deny rule and attach ``netvm``."""
    log.debug('Opening network of {} via {}', name, netvm)
    control.set_firewall(name, 'accept')
    control.set_pref(name, 'netvm', netvm)
    log.info('Network opened for {} (netvm={})', name, netvm)


class IsolationWindow:
    """Seal/open bookkeeping for one qube during one provisioning run.

    Used as a context manager around the phases after the network could be
    attached. ``open()`` calls through to :func:`open_network` at most once.
    If the block raises before the network was opened the qube stays sealed,
    unless ``open_on_failure`` asks for the network to be restored anyway.
    """

    def __init__(
        self,
        control: QubesControl,
        name: str,
        netvm: str,
        *,
        open_on_failure: bool = False,
    ) -> None:
        self.control = control
        self.name = name
        self.netvm = netvm
        self.open_on_failure = open_on_failure
        self.state: str | None = None

    @property
    def enabled(self) -> bool:
        return bool(self.netvm)

    def seal(self) -> None:
        if not self.enabled:
            return
        seal(self.control, self.name)
        self.state = SEALED

    def open(self) -> None:
        if not self.enabled or self.state == OPEN:
            return
        open_network(self.control, self.name, self.netvm)
        self.state = OPEN

    def __enter__(self) -> 'IsolationWindow':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None or self.state != SEALED:
            return
        if self.open_on_failure:
            log.warning(
                'Provisioning of {} failed; restoring network ({}) as configured.',
                self.name,
                self.netvm,
            )
            try:
                self.open()
            except Exception as ex:
                log.error('Could not restore network of {}: {}', self.name, ex)
            return
        log.warning(
            'Provisioning of {} failed; it stays sealed. Re-enable with: '
            'qvm-firewall {} reset && qvm-prefs {} netvm {}',
            self.name,
            self.name,
            self.name,
            self.netvm,
        )
