"""Decoder for fwup's ``--exit-handshake`` output framing.

When run with ``--exit-handshake`` fwup writes its normal output, then a
Ctrl-Z (``0x1a``) followed by one byte holding the exit status, and waits for
stdin to close before exiting.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

HANDSHAKE_MARKER = b"\x1a"


class ExitHandshakeDecoder:
    """Split a stream of fwup output reads into output and a final status.

    The marker and the status byte may arrive in different reads.
    """

    def __init__(self) -> None:
        self._pending_marker = False
        self.status: int | None = None

    @property
    def done(self) -> bool:
        return self.status is not None

    def feed(self, chunk: bytes) -> bytes:
        """Consume one read from fwup.

        Returns:
            Output that precedes the handshake (possibly empty). Once
            :attr:`done` is True the returned bytes are the final fragment
            and later calls return nothing.
        """
        if self.done:
            if chunk:
                logger.debug("discarding %d byte(s) after exit handshake", len(chunk))
            return b""

        if self._pending_marker:
            if not chunk:
                return b""
            self._finish(chunk[0], chunk[1:])
            return b""

        output, marker, rest = chunk.partition(HANDSHAKE_MARKER)
        if not marker:
            return output
        if rest:
            self._finish(rest[0], rest[1:])
        else:
            self._pending_marker = True
        return output

    def _finish(self, status: int, trailing: bytes) -> None:
        self.status = status
        self._pending_marker = False
        if trailing:
            logger.debug("discarding %d byte(s) after exit handshake", len(trailing))
