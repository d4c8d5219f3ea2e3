"""Events consumed by the channel bridge.

Two producers feed a session: the SSH transport adapter (``Channel*`` and
``TransportClosed``) and the fwup process driver (``Process*``). Both post
into the same queue so the bridge handles them strictly one at a time.
"""

from __future__ import annotations

from dataclasses import dataclass

from fwup_ssh.bridge.interfaces import Channel
from fwup_ssh.shared.enums import StreamId

# ── Transport events ────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ChannelUp:
    """The subsystem channel is open and ready for traffic."""

    channel_id: int
    channel: Channel


@dataclass(frozen=True, slots=True)
class ChannelData:
    data: bytes
    stream: StreamId = StreamId.STDOUT


@dataclass(frozen=True, slots=True)
class ChannelEof:
    pass


@dataclass(frozen=True, slots=True)
class ChannelSignal:
    name: str


@dataclass(frozen=True, slots=True)
class ChannelExitSignal:
    name: str
    core_dumped: bool = False
    message: str = ""


@dataclass(frozen=True, slots=True)
class ChannelExitStatus:
    status: int


@dataclass(frozen=True, slots=True)
class TransportClosed:
    """The peer or the connection went away."""

    reason: str = ""


# ── Process events ──────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ProcessOutput:
    """A chunk of fwup output to relay to the peer."""

    data: bytes


@dataclass(frozen=True, slots=True)
class ProcessFinished:
    """fwup completed the exit handshake.

    ``data`` is whatever output preceded the handshake marker in the final read.
    """

    data: bytes
    status: int


@dataclass(frozen=True, slots=True)
class ProcessCrashed:
    """fwup exited without completing the exit handshake."""

    returncode: int | None = None


BridgeEvent = (
    ChannelUp
    | ChannelData
    | ChannelEof
    | ChannelSignal
    | ChannelExitSignal
    | ChannelExitStatus
    | TransportClosed
    | ProcessOutput
    | ProcessFinished
    | ProcessCrashed
)
