"""Tests for the fwup process driver."""

from __future__ import annotations

import asyncio
import stat
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from fwup_ssh.bridge.events import ProcessCrashed, ProcessFinished, ProcessOutput
from fwup_ssh.fwup.port import FwupLauncher, FwupPort
from fwup_ssh.shared.exceptions import FwupLaunchError
from fwup_ssh.shared.models import FwupOptions


def _fake_proc(stdout: asyncio.StreamReader, *, returncode: int = 0) -> MagicMock:
    proc = MagicMock()
    proc.pid = 4242
    proc.returncode = returncode
    proc.stdout = stdout
    proc.stdin = MagicMock()
    proc.stdin.is_closing.return_value = False
    proc.stdin.drain = AsyncMock()
    proc.wait = AsyncMock(return_value=returncode)
    return proc


async def _wait_for_terminal(events: list[object]) -> None:
    for _ in range(100):
        if events and isinstance(events[-1], (ProcessFinished, ProcessCrashed)):
            return
        await asyncio.sleep(0.01)
    raise AssertionError(f"no terminal event in {events}")


class TestFwupPort:
    async def test_output_then_finished(self) -> None:
        stdout = asyncio.StreamReader()
        events: list[object] = []
        port = FwupPort(_fake_proc(stdout), events.append, read_size=64)

        stdout.feed_data(b"10%")
        await asyncio.sleep(0.01)
        stdout.feed_data(b"100%\x1a\x00")
        await _wait_for_terminal(events)
        await port.close()

        assert events == [ProcessOutput(data=b"10%"), ProcessFinished(data=b"100%", status=0)]

    async def test_eof_without_handshake_is_crash(self) -> None:
        stdout = asyncio.StreamReader()
        events: list[object] = []
        port = FwupPort(_fake_proc(stdout, returncode=-9), events.append)

        stdout.feed_data(b"partial")
        stdout.feed_eof()
        await _wait_for_terminal(events)
        await port.close()

        assert events == [ProcessOutput(data=b"partial"), ProcessCrashed(returncode=-9)]

    async def test_write_forwards_to_stdin(self) -> None:
        proc = _fake_proc(asyncio.StreamReader())
        port = FwupPort(proc, lambda event: None)

        await port.write(b"firmware")

        proc.stdin.write.assert_called_once_with(b"firmware")
        proc.stdin.drain.assert_awaited_once()
        await port.close()

    async def test_write_broken_pipe_is_swallowed(self) -> None:
        proc = _fake_proc(asyncio.StreamReader())
        proc.stdin.drain.side_effect = BrokenPipeError()
        port = FwupPort(proc, lambda event: None)

        await port.write(b"firmware")
        await port.close()

    async def test_close_kills_lingering_process(self) -> None:
        proc = _fake_proc(asyncio.StreamReader())
        proc.wait = AsyncMock(side_effect=[asyncio.TimeoutError(), -9])
        port = FwupPort(proc, lambda event: None, kill_timeout=0.01)

        await port.close()

        proc.stdin.close.assert_called_once()
        proc.kill.assert_called_once()


class TestFwupLauncher:
    async def test_missing_fwup_path(self) -> None:
        with pytest.raises(FwupLaunchError, match="not found on PATH"):
            await FwupLauncher().launch(FwupOptions(devpath="/dev/null"), lambda event: None)

    async def test_binary_not_found(self) -> None:
        options = FwupOptions(devpath="/dev/null", fwup_path="/nonexistent/fwup")

        with patch("asyncio.create_subprocess_exec", side_effect=FileNotFoundError("fwup")):
            with pytest.raises(FwupLaunchError, match="fwup binary not found"):
                await FwupLauncher().launch(options, lambda event: None)

    async def test_command_line(self) -> None:
        options = FwupOptions(
            devpath="/dev/mmcblk0",
            fwup_path="/usr/bin/fwup",
            fwup_extra_options=("--public-key-file", "/etc/fwup.pub"),
        )
        proc = _fake_proc(asyncio.StreamReader())

        with patch("asyncio.create_subprocess_exec", return_value=proc) as mock_exec:
            port = await FwupLauncher().launch(options, lambda event: None)

        args = mock_exec.call_args[0]
        assert args[0] == "/usr/bin/fwup"
        assert list(args[1:]) == options.fwup_args
        assert mock_exec.call_args[1]["stderr"] == asyncio.subprocess.STDOUT
        await port.close()

    async def test_real_process_handshake(self, tmp_path: Path) -> None:
        script = tmp_path / "fake-fwup"
        script.write_text("#!/bin/sh\nread line\nprintf 'got %s\\n\\032\\001' \"$line\"\ncat >/dev/null\n")
        script.chmod(script.stat().st_mode | stat.S_IEXEC)
        events: list[object] = []

        port = await FwupLauncher(kill_timeout=2).launch(
            FwupOptions(devpath="/dev/null", fwup_path=str(script)),
            events.append,
        )
        await port.write(b"image\n")
        await _wait_for_terminal(events)
        await port.close()

        output = b"".join(getattr(e, "data", b"") for e in events)
        assert output == b"got image\n"
        assert events[-1] == ProcessFinished(data=events[-1].data, status=1)  # type: ignore[attr-defined]

    async def test_real_process_exit_without_handshake(self, tmp_path: Path) -> None:
        script = tmp_path / "fake-fwup"
        script.write_text("#!/bin/sh\necho 'fwup: could not open device'\nexit 3\n")
        script.chmod(script.stat().st_mode | stat.S_IEXEC)
        events: list[object] = []

        port = await FwupLauncher(kill_timeout=2).launch(
            FwupOptions(devpath="/dev/null", fwup_path=str(script)),
            events.append,
        )
        await _wait_for_terminal(events)
        await port.close()

        assert events[-1] == ProcessCrashed(returncode=3)

    async def test_exec_format_error(self, tmp_path: Path) -> None:
        binary = tmp_path / "fwup"
        binary.write_bytes(b"\x7fELFgarbage")
        binary.chmod(binary.stat().st_mode | stat.S_IEXEC)

        with pytest.raises(FwupLaunchError, match="fwup failed to start"):
            await FwupLauncher().launch(
                FwupOptions(devpath="/dev/null", fwup_path=str(binary)),
                lambda event: None,
            )

    async def test_fork_failure(self) -> None:
        options = FwupOptions(devpath="/dev/null", fwup_path="/usr/bin/fwup")

        with patch("asyncio.create_subprocess_exec", side_effect=BlockingIOError(11, "Resource temporarily unavailable")):
            with pytest.raises(FwupLaunchError, match="Resource temporarily unavailable"):
                await FwupLauncher().launch(options, lambda event: None)
