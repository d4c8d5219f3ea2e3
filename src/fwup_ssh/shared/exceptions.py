"""Hierarchical exception types for the fwup SSH subsystem."""

from __future__ import annotations


class FwupSshError(Exception):
    """Base exception for all fwup_ssh errors."""


# ── Process driver ──────────────────────────────────────────────


class FwupLaunchError(FwupSshError):
    """The fwup process could not be started."""


# ── Transport ───────────────────────────────────────────────────


class ChannelSendError(FwupSshError):
    """Outbound write to an SSH channel failed (usually already closed)."""


class ServerError(FwupSshError):
    """SSH daemon could not be configured or started."""
