"""CLI package exports for top-level command entry points."""

from __future__ import annotations

from .main import WinQubeModalCLI, main

__all__ = ['WinQubeModalCLI', 'main']
