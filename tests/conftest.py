"""Shared pytest fixtures for the fwup_ssh test suite."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from fwup_ssh.config import Settings
from fwup_ssh.shared.models import FwupOptions


@pytest.fixture()
def devpath(tmp_path: Path) -> str:
    """A file standing in for the target block device."""
    path = tmp_path / "mmcblk0"
    path.write_bytes(b"")
    return str(path)


@pytest.fixture()
def settings(devpath: str) -> Settings:
    """Return a Settings instance with test defaults."""
    return Settings(
        devpath=devpath,
        fwup_path="/usr/bin/fwup",
        fwup_extra_options="--public-key-file /etc/fwup.pub",
        reboot_command="true",
    )


@pytest.fixture()
def success_callback() -> MagicMock:
    return MagicMock(name="success_callback", return_value=None)


@pytest.fixture()
def options(devpath: str, success_callback: MagicMock) -> FwupOptions:
    return FwupOptions(
        devpath=devpath,
        fwup_path="/usr/bin/fwup",
        success_callback=success_callback,
    )


@pytest.fixture()
def mock_channel() -> MagicMock:
    """Outbound SSH channel; ``mock_calls`` records send order."""
    return MagicMock(spec=["send", "send_eof", "send_exit_status", "close"])


@pytest.fixture()
def mock_process() -> AsyncMock:
    mock = AsyncMock()
    mock.write = AsyncMock(return_value=None)
    mock.close = AsyncMock(return_value=None)
    return mock


@pytest.fixture()
def mock_launcher(mock_process: AsyncMock) -> AsyncMock:
    mock = AsyncMock()
    mock.launch.return_value = mock_process
    return mock
