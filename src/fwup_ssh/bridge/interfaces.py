"""Protocol interfaces for channel bridge dependency injection."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from fwup_ssh.shared.models import FwupOptions

# Receives events from the process driver; must not block.
EventSink = Callable[[Any], None]


@runtime_checkable
class Channel(Protocol):
    """Outbound side of one SSH session channel."""

    def send(self, data: bytes) -> None:
        """Send data on the primary stream.

        Raises:
            ChannelSendError: If the channel can no longer carry data
        """
        ...

    def send_eof(self) -> None:
        """Signal end of output to the peer.

        Raises:
            ChannelSendError: If the channel is already closed
        """
        ...

    def send_exit_status(self, status: int) -> None:
        """Report the exit status of the remote command.

        Raises:
            ChannelSendError: If the channel is already closed
        """
        ...

    def close(self) -> None:
        """Close the channel. Safe to call more than once."""
        ...


@runtime_checkable
class FwupProcess(Protocol):
    """Handle to a running fwup process owned by one session."""

    async def write(self, data: bytes) -> None:
        """Write firmware bytes to fwup's stdin."""
        ...

    async def close(self) -> None:
        """Close stdin and make sure the OS process is reaped."""
        ...


@runtime_checkable
class ProcessLauncher(Protocol):
    """Protocol for starting fwup processes."""

    async def launch(self, options: FwupOptions, sink: EventSink) -> FwupProcess:
        """Start fwup for the given options.

        Args:
            options: Resolved session options
            sink: Callable receiving ``ProcessOutput``, ``ProcessFinished`` or
                ``ProcessCrashed`` events. Exactly one terminal event is posted.

        Returns:
            Handle to the running process

        Raises:
            FwupLaunchError: If the process cannot be started
        """
        ...
