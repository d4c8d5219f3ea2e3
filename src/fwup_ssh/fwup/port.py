"""fwup process driver using asyncio subprocesses."""

from __future__ import annotations

import asyncio
import logging

from fwup_ssh.bridge.events import ProcessCrashed, ProcessFinished, ProcessOutput
from fwup_ssh.bridge.interfaces import EventSink
from fwup_ssh.fwup.handshake import ExitHandshakeDecoder
from fwup_ssh.shared.exceptions import FwupLaunchError
from fwup_ssh.shared.models import FwupOptions

logger = logging.getLogger(__name__)


class FwupPort:
    """A running fwup process.

    Implements the ``FwupProcess`` protocol. A reader task turns fwup's
    stdout into events for the owning session and posts exactly one
    terminal event: ``ProcessFinished`` when the exit handshake arrives,
    ``ProcessCrashed`` when stdout closes without it.
    """

    def __init__(
        self,
        proc: asyncio.subprocess.Process,
        sink: EventSink,
        *,
        read_size: int = 4096,
        kill_timeout: float = 5.0,
    ) -> None:
        self._proc = proc
        self._sink = sink
        self._read_size = read_size
        self._kill_timeout = kill_timeout
        self._reader = asyncio.get_running_loop().create_task(self._read_output())

    @property
    def pid(self) -> int:
        return self._proc.pid

    async def write(self, data: bytes) -> None:
        """Write firmware bytes to fwup's stdin.

        A broken pipe means fwup already exited; the reader reports that, so
        the error is only logged here.
        """
        stdin = self._proc.stdin
        if stdin is None or stdin.is_closing():
            logger.debug("fwup[%d] stdin closed, dropping %d byte(s)", self.pid, len(data))
            return
        try:
            stdin.write(data)
            await stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            logger.warning("fwup[%d] stdin write failed: %s", self.pid, exc)

    async def close(self) -> None:
        """Close stdin, wait for fwup to exit, and kill it if it lingers."""
        stdin = self._proc.stdin
        if stdin is not None and not stdin.is_closing():
            stdin.close()

        try:
            await asyncio.wait_for(self._proc.wait(), timeout=self._kill_timeout)
        except asyncio.TimeoutError:
            logger.warning("fwup[%d] did not exit after %.1fs, killing", self.pid, self._kill_timeout)
            try:
                self._proc.kill()
            except ProcessLookupError:
                pass
            await self._proc.wait()

        if not self._reader.done():
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
        logger.debug("fwup[%d] reaped (rc=%s)", self.pid, self._proc.returncode)

    async def _read_output(self) -> None:
        decoder = ExitHandshakeDecoder()
        stdout = self._proc.stdout
        assert stdout is not None

        while True:
            try:
                chunk = await stdout.read(self._read_size)
            except (ConnectionResetError, BrokenPipeError) as exc:
                logger.warning("fwup[%d] stdout read failed: %s", self.pid, exc)
                chunk = b""

            if not chunk:
                rc = await self._proc.wait()
                logger.error("fwup[%d] exited without exit handshake (rc=%s)", self.pid, rc)
                self._sink(ProcessCrashed(returncode=rc))
                return

            output = decoder.feed(chunk)
            if decoder.done:
                assert decoder.status is not None
                self._sink(ProcessFinished(data=output, status=decoder.status))
                return
            if output:
                self._sink(ProcessOutput(data=output))


class FwupLauncher:
    """Start fwup processes for sessions.

    Implements the ``ProcessLauncher`` protocol.
    """

    def __init__(self, *, read_size: int = 4096, kill_timeout: float = 5.0) -> None:
        self._read_size = read_size
        self._kill_timeout = kill_timeout

    async def launch(self, options: FwupOptions, sink: EventSink) -> FwupPort:
        """Start fwup with stdin/stdout pipes; stderr is merged into stdout.

        Raises:
            FwupLaunchError: If fwup_path is unset or cannot be executed.
        """
        if not options.fwup_path:
            raise FwupLaunchError("fwup executable not found on PATH")

        cmd = [options.fwup_path, *options.fwup_args]
        logger.info("launching %s", " ".join(cmd))
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except FileNotFoundError as exc:
            raise FwupLaunchError(f"fwup binary not found: {options.fwup_path}") from exc
        except PermissionError as exc:
            raise FwupLaunchError(f"fwup binary not executable: {options.fwup_path}") from exc
        except OSError as exc:
            raise FwupLaunchError(f"fwup failed to start: {exc}") from exc

        return FwupPort(proc, sink, read_size=self._read_size, kill_timeout=self._kill_timeout)
