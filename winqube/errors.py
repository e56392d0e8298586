"""Project-specific exception types."""

from __future__ import annotations


class WinQubeError(RuntimeError):
    """Base error for domain-level winqube failures."""


class ValidationError(WinQubeError):
    """Raised when options or host state rule out a run before it starts."""


class WaitCancelled(WinQubeError, TimeoutError):
    """Raised when a wait or retry loop hits its deadline or is cancelled."""
