"""asyncssh adapter exposing the channel bridge as an SSH subsystem."""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Callable
from typing import Any

import asyncssh

from fwup_ssh.bridge.events import (
    ChannelData,
    ChannelEof,
    ChannelSignal,
    ChannelUp,
    TransportClosed,
)
from fwup_ssh.bridge.interfaces import ProcessLauncher
from fwup_ssh.bridge.options import resolve_options
from fwup_ssh.bridge.session import FwupChannelBridge
from fwup_ssh.config import Settings
from fwup_ssh.fwup.port import FwupLauncher
from fwup_ssh.shared.enums import StreamId
from fwup_ssh.shared.exceptions import ChannelSendError

logger = logging.getLogger(__name__)

_channel_ids = itertools.count(1)

BridgeFactory = Callable[[], FwupChannelBridge]


class SshChannel:
    """Wrap an ``SSHServerChannel`` as a bridge ``Channel``.

    asyncssh sends exit-status and closes the channel in one call, so
    :meth:`send_exit_status` also starts the close; the following
    :meth:`close` is then a no-op.
    """

    def __init__(self, chan: asyncssh.SSHServerChannel[bytes]) -> None:
        self._chan = chan

    def send(self, data: bytes) -> None:
        try:
            self._chan.write(data)
        except (BrokenPipeError, asyncssh.Error) as exc:
            raise ChannelSendError(f"send failed: {exc}") from exc

    def send_eof(self) -> None:
        try:
            self._chan.write_eof()
        except (BrokenPipeError, asyncssh.Error) as exc:
            raise ChannelSendError(f"send eof failed: {exc}") from exc

    def send_exit_status(self, status: int) -> None:
        try:
            self._chan.exit(status)
        except (BrokenPipeError, asyncssh.Error) as exc:
            raise ChannelSendError(f"send exit-status failed: {exc}") from exc

    def close(self) -> None:
        self._chan.close()


class FwupSubsystemSession(asyncssh.SSHServerSession):
    """One SSH session that accepts only the fwup subsystem.

    Channel callbacks are translated into bridge events; the bridge runs in
    its own task for the lifetime of the channel.
    """

    def __init__(
        self,
        bridge: FwupChannelBridge,
        *,
        subsystem_name: str = "fwup",
        high_water: int = 256 * 1024,
        low_water: int = 64 * 1024,
    ) -> None:
        self._bridge = bridge
        self._bridge.data_consumed = self._on_data_consumed
        self._subsystem_name = subsystem_name
        self._high_water = high_water
        self._low_water = low_water
        self._queued_bytes = 0
        self._reading_paused = False
        self._chan: asyncssh.SSHServerChannel[bytes] | None = None
        self._task: asyncio.Task[None] | None = None
        self.channel_id = next(_channel_ids)

    @property
    def reading_paused(self) -> bool:
        return self._reading_paused

    @property
    def task(self) -> asyncio.Task[None] | None:
        return self._task

    def connection_made(self, chan: asyncssh.SSHServerChannel[bytes]) -> None:
        self._chan = chan
        self._task = asyncio.get_running_loop().create_task(self._bridge.run())
        self._task.add_done_callback(self._on_bridge_done)

    def subsystem_requested(self, subsystem: str) -> bool:
        if subsystem != self._subsystem_name:
            logger.warning("channel %d: rejecting subsystem %r", self.channel_id, subsystem)
            return False
        return True

    def shell_requested(self) -> bool:
        return False

    def exec_requested(self, command: str) -> bool:
        logger.warning("channel %d: rejecting exec request %r", self.channel_id, command)
        return False

    def session_started(self) -> None:
        assert self._chan is not None
        peer = self._chan.get_extra_info("peername")
        logger.info("channel %d: fwup subsystem started for %s", self.channel_id, peer)
        self._bridge.post(ChannelUp(channel_id=self.channel_id, channel=SshChannel(self._chan)))

    def data_received(self, data: bytes, datatype: int | None) -> None:
        stream = StreamId.STDERR if datatype == asyncssh.EXTENDED_DATA_STDERR else StreamId.STDOUT
        self._queued_bytes += len(data)
        self._bridge.post(ChannelData(data=data, stream=stream))
        if not self._reading_paused and self._queued_bytes > self._high_water and self._chan is not None:
            logger.debug("channel %d: %d byte(s) queued, pausing reads", self.channel_id, self._queued_bytes)
            self._reading_paused = True
            self._chan.pause_reading()

    def eof_received(self) -> bool:
        self._bridge.post(ChannelEof())
        # Keep the channel half open; fwup may still be writing output.
        return True

    def signal_received(self, signal: str) -> None:
        self._bridge.post(ChannelSignal(name=signal))

    def break_received(self, msec: int) -> bool:
        return False

    def connection_lost(self, exc: Exception | None) -> None:
        # asyncssh does not pass exit-signal or exit-status requests from the
        # client to server sessions; a closed channel is the only teardown.
        self._bridge.post(TransportClosed(reason=str(exc) if exc else "channel closed"))

    def _on_data_consumed(self, size: int) -> None:
        self._queued_bytes -= size
        if self._reading_paused and self._queued_bytes <= self._low_water and self._chan is not None:
            logger.debug("channel %d: %d byte(s) queued, resuming reads", self.channel_id, self._queued_bytes)
            self._reading_paused = False
            self._chan.resume_reading()

    def _on_bridge_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("channel %d: session task failed: %s", self.channel_id, exc, exc_info=exc)


def subsystem_spec(
    settings: Settings,
    *,
    launcher: ProcessLauncher | None = None,
    **overrides: Any,
) -> tuple[str, BridgeFactory]:
    """Return ``(subsystem name, bridge factory)`` for registering with a server.

    Options are resolved for each new bridge so PATH lookups and the reboot
    action reflect the state at channel open.
    """
    if launcher is None:
        launcher = FwupLauncher(
            read_size=settings.fwup_read_size,
            kill_timeout=settings.fwup_kill_timeout_seconds,
        )
    resolve_options(settings, **overrides)  # fail fast on bad overrides

    def factory() -> FwupChannelBridge:
        return FwupChannelBridge(resolve_options(settings, **overrides), launcher)

    return settings.subsystem_name, factory


class FwupSSHServer(asyncssh.SSHServer):
    """asyncssh server that opens a fwup session for every session channel."""

    def __init__(self, subsystem_name: str, bridge_factory: BridgeFactory) -> None:
        self._subsystem_name = subsystem_name
        self._bridge_factory = bridge_factory

    def connection_made(self, conn: asyncssh.SSHServerConnection) -> None:
        logger.info("ssh connection from %s", conn.get_extra_info("peername"))

    def connection_lost(self, exc: Exception | None) -> None:
        if exc is not None:
            logger.warning("ssh connection lost: %s", exc)

    def session_requested(self) -> FwupSubsystemSession:
        return FwupSubsystemSession(self._bridge_factory(), subsystem_name=self._subsystem_name)
