"""SSH daemon serving the fwup subsystem."""

from __future__ import annotations

import asyncio
import logging
import os

import asyncssh

from fwup_ssh.config import Settings, get_settings
from fwup_ssh.shared.exceptions import ServerError
from fwup_ssh.transport.ssh import FwupSSHServer, subsystem_spec

logger = logging.getLogger(__name__)


async def start_server(settings: Settings) -> asyncssh.SSHAcceptor:
    """Start listening for SSH connections.

    Raises:
        ServerError: If key files are missing or the listener cannot start.
    """
    host_key = os.path.expanduser(settings.host_key_path)
    if not os.path.isfile(host_key):
        raise ServerError(f"host key not found: {host_key}")

    authorized_keys: str | None = os.path.expanduser(settings.authorized_keys_path)
    if authorized_keys and not os.path.isfile(authorized_keys):
        logger.warning("authorized keys file %s not found; public key auth disabled", authorized_keys)
        authorized_keys = None

    name, bridge_factory = subsystem_spec(settings)

    try:
        acceptor = await asyncssh.listen(
            settings.ssh_host,
            settings.ssh_port,
            server_factory=lambda: FwupSSHServer(name, bridge_factory),
            server_host_keys=[host_key],
            authorized_client_keys=authorized_keys,
            # Firmware images are binary.
            encoding=None,
        )
    except (OSError, asyncssh.Error) as exc:
        raise ServerError(f"failed to listen on {settings.ssh_host}:{settings.ssh_port}: {exc}") from exc

    logger.info("fwup ssh subsystem %r listening on %s:%d", name, settings.ssh_host, settings.ssh_port)
    return acceptor


async def run_server(settings: Settings, *, stop_event: asyncio.Event | None = None) -> None:
    """Serve until ``stop_event`` is set (forever when not given)."""
    acceptor = await start_server(settings)
    stop_event = stop_event or asyncio.Event()
    try:
        await stop_event.wait()
        logger.info("stop_event set; shutting down ssh server")
    finally:
        acceptor.close()
        await acceptor.wait_closed()


def main() -> None:
    """Entry point for ``python -m fwup_ssh.daemon``."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    asyncio.run(run_server(settings))


if __name__ == "__main__":
    main()
