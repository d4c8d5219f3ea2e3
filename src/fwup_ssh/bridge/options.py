"""Per-session option resolution."""

from __future__ import annotations

import shlex
import shutil
from functools import partial
from typing import Any

from fwup_ssh.bridge.notifier import reboot_host
from fwup_ssh.config import Settings
from fwup_ssh.shared.models import FwupOptions


def default_options(settings: Settings) -> dict[str, Any]:
    """Return the defaults a session starts from before caller overrides."""
    return {
        "devpath": settings.devpath,
        "fwup_path": settings.fwup_path or shutil.which("fwup"),
        "fwup_extra_options": tuple(shlex.split(settings.fwup_extra_options)),
        "task": settings.task,
        "success_callback": partial(reboot_host, settings.reboot_command),
    }


def resolve_options(settings: Settings, **overrides: Any) -> FwupOptions:
    """Merge caller overrides onto settings-derived defaults.

    Unknown keys are rejected so typos do not silently fall back to defaults.

    Raises:
        TypeError: If an override key is not a session option.
    """
    unknown = set(overrides) - set(FwupOptions.model_fields)
    if unknown:
        raise TypeError(f"unknown fwup options: {sorted(unknown)}")

    merged = {**default_options(settings), **overrides}
    merged["fwup_extra_options"] = tuple(merged["fwup_extra_options"])
    return FwupOptions(**merged)
