"""Unattended Windows qube provisioning for Qubes OS dom0."""

__version__ = '0.1.0'
