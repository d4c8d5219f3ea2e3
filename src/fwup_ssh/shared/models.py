"""Frozen Pydantic domain models shared by all modules."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from pydantic import BaseModel


class FwupOptions(BaseModel):
    """Resolved options for one firmware update session."""

    model_config = {"frozen": True}

    devpath: str = ""
    fwup_path: str | None = None
    fwup_extra_options: tuple[str, ...] = ()
    task: str = "upgrade"
    # Called with no arguments after fwup exits with status 0.
    success_callback: Callable[[], Any] | None = None

    @property
    def fwup_args(self) -> list[str]:
        """Arguments passed to fwup after the executable path."""
        return [
            "--apply",
            "--no-unmount",
            "-d",
            self.devpath,
            "--task",
            self.task,
            "--exit-handshake",
            *self.fwup_extra_options,
        ]
