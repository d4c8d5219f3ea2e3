"""Channel bridge: relays one SSH channel to one fwup process."""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Awaitable, Callable
from typing import Any

from fwup_ssh.bridge.events import (
    BridgeEvent,
    ChannelData,
    ChannelEof,
    ChannelExitSignal,
    ChannelExitStatus,
    ChannelSignal,
    ChannelUp,
    ProcessCrashed,
    ProcessFinished,
    ProcessOutput,
    TransportClosed,
)
from fwup_ssh.bridge.interfaces import Channel, FwupProcess, ProcessLauncher
from fwup_ssh.bridge.notifier import dispatch_success_callback
from fwup_ssh.shared.enums import SessionPhase, StreamId
from fwup_ssh.shared.exceptions import ChannelSendError, FwupLaunchError
from fwup_ssh.shared.models import FwupOptions

logger = logging.getLogger(__name__)


class FwupChannelBridge:
    """State machine for one ``fwup`` subsystem session.

    Events from the transport and from the fwup process are posted with
    :meth:`post` and handled one at a time by :meth:`run`. The session ends
    when fwup finishes, fwup dies, or the transport goes away; in every case
    the channel is closed once and the process handle is released.
    """

    def __init__(self, options: FwupOptions, launcher: ProcessLauncher) -> None:
        self.options = options
        self._launcher = launcher
        self._events: asyncio.Queue[BridgeEvent] = asyncio.Queue()
        self._handlers: dict[type, Callable[[Any], Awaitable[None]]] = {
            ChannelUp: self._on_channel_up,
            ChannelData: self._on_channel_data,
            ChannelEof: self._on_ignored,
            ChannelSignal: self._on_ignored,
            ChannelExitSignal: self._on_transport_exit,
            ChannelExitStatus: self._on_transport_exit,
            TransportClosed: self._on_transport_exit,
            ProcessOutput: self._on_process_output,
            ProcessFinished: self._on_process_finished,
            ProcessCrashed: self._on_process_crashed,
        }
        self.phase = SessionPhase.AWAITING_OPEN
        self.channel_id: int | None = None
        self._channel: Channel | None = None
        self._process: FwupProcess | None = None
        self._channel_closed = False
        # Called with the size of each ChannelData event once it is handled,
        # so the transport can resume reading.
        self.data_consumed: Callable[[int], None] | None = None

    def post(self, event: BridgeEvent) -> None:
        """Queue an event for the session. Never blocks."""
        self._events.put_nowait(event)

    async def run(self) -> None:
        """Consume events until the session reaches a terminal outcome."""
        try:
            while self.phase in (SessionPhase.AWAITING_OPEN, SessionPhase.RUNNING):
                event = await self._events.get()
                handler = self._handlers.get(type(event))
                if handler is None:
                    logger.debug("ignoring unrecognised event %r", event)
                    continue
                await handler(event)
        except Exception as exc:
            logger.exception("channel %s: session failed: %s", self.channel_id, exc)
            self._abort()
        finally:
            await self._release()

    # ── Transport events ────────────────────────────────────────

    async def _on_channel_up(self, event: ChannelUp) -> None:
        if self.phase is not SessionPhase.AWAITING_OPEN:
            logger.debug("ignoring duplicate channel-up for channel %s", event.channel_id)
            return

        self.channel_id = event.channel_id
        self._channel = event.channel

        devpath = self.options.devpath
        if not isinstance(devpath, str) or not devpath or not os.path.exists(devpath):
            logger.error("channel %s: fwup devpath is invalid: %r", self.channel_id, devpath)
            self._fail(f"fwup devpath is invalid: {devpath!r}")
            return

        logger.info("channel %s: starting fwup on %s (task=%s)", self.channel_id, devpath, self.options.task)
        try:
            self._process = await self._launcher.launch(self.options, self.post)
        except FwupLaunchError as exc:
            logger.error("channel %s: %s", self.channel_id, exc)
            self._fail(f"fwup could not be started: {exc}")
            return

        self.phase = SessionPhase.RUNNING

    async def _on_channel_data(self, event: ChannelData) -> None:
        try:
            if self.phase is not SessionPhase.RUNNING or self._process is None:
                logger.debug("dropping %d byte(s) received outside of a running session", len(event.data))
                return
            # Peer stderr is discarded.
            if event.stream != StreamId.STDOUT:
                return
            await self._process.write(event.data)
        finally:
            if self.data_consumed is not None:
                self.data_consumed(len(event.data))

    async def _on_transport_exit(self, event: BridgeEvent) -> None:
        logger.info("channel %s: transport ended session: %r", self.channel_id, event)
        self.phase = SessionPhase.TERMINATING
        self._close_channel()

    async def _on_ignored(self, event: BridgeEvent) -> None:
        logger.debug("channel %s: ignoring %r", self.channel_id, event)

    # ── Process events ──────────────────────────────────────────

    async def _on_process_output(self, event: ProcessOutput) -> None:
        if self.phase is not SessionPhase.RUNNING:
            return
        self._send(event.data)

    async def _on_process_finished(self, event: ProcessFinished) -> None:
        if self.phase is not SessionPhase.RUNNING:
            return
        self.phase = SessionPhase.TERMINATING

        if event.data:
            self._send(event.data)
        self._send_eof()
        self._send_exit_status(event.status)
        self._close_channel()
        logger.info("channel %s: fwup exited with status %d", self.channel_id, event.status)

        dispatch_success_callback(event.status, self.options.success_callback)

    async def _on_process_crashed(self, event: ProcessCrashed) -> None:
        if self.phase is not SessionPhase.RUNNING:
            return
        self.phase = SessionPhase.TERMINATING

        logger.error("channel %s: fwup terminated unexpectedly (rc=%s)", self.channel_id, event.returncode)
        self._send_eof()
        self._send_exit_status(1)
        self._close_channel()

    # ── Outbound helpers ────────────────────────────────────────

    def _fail(self, message: str) -> None:
        """Report a failure before fwup was started and end the session."""
        self.phase = SessionPhase.TERMINATING
        self._send(message.encode())
        self._send_exit_status(1)
        self._close_channel()

    def _abort(self) -> None:
        """End the session after an unexpected error with exit-status 1."""
        was_running = self.phase is SessionPhase.RUNNING
        self.phase = SessionPhase.TERMINATING
        if was_running:
            self._send_eof()
        self._send_exit_status(1)
        self._close_channel()

    def _send(self, data: bytes) -> None:
        if self._channel is None or self._channel_closed:
            logger.debug("channel %s: dropping %d byte(s) after close", self.channel_id, len(data))
            return
        try:
            self._channel.send(data)
        except ChannelSendError as exc:
            logger.debug("channel %s: send failed: %s", self.channel_id, exc)

    def _send_eof(self) -> None:
        if self._channel is None or self._channel_closed:
            return
        try:
            self._channel.send_eof()
        except ChannelSendError as exc:
            logger.debug("channel %s: send eof failed: %s", self.channel_id, exc)

    def _send_exit_status(self, status: int) -> None:
        if self._channel is None or self._channel_closed:
            return
        try:
            self._channel.send_exit_status(status)
        except ChannelSendError as exc:
            logger.debug("channel %s: send exit-status failed: %s", self.channel_id, exc)

    def _close_channel(self) -> None:
        if self._channel is None or self._channel_closed:
            return
        self._channel_closed = True
        try:
            self._channel.close()
        except ChannelSendError as exc:
            logger.debug("channel %s: close failed: %s", self.channel_id, exc)

    async def _release(self) -> None:
        self._close_channel()
        process, self._process = self._process, None
        if process is not None:
            try:
                await process.close()
            except Exception as exc:
                logger.error("channel %s: failed to release fwup process: %s", self.channel_id, exc)
        self.phase = SessionPhase.CLOSED
        logger.debug("channel %s: session closed", self.channel_id)
