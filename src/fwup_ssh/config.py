"""Centralised configuration via Pydantic Settings."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Daemon-wide configuration loaded from environment variables."""

    model_config = {"env_prefix": "FWUP_SSH_", "frozen": True}

    # Update target
    devpath: str = ""
    # Leave blank to look fwup up on PATH when a session starts.
    fwup_path: str = ""
    # Shell-quoted, e.g. "--public-key-file /etc/fwup.pub"
    fwup_extra_options: str = ""
    task: str = "upgrade"

    # Completion action
    reboot_command: str = "reboot"

    # fwup process driver
    fwup_kill_timeout_seconds: float = 5.0
    fwup_read_size: int = 4096

    # SSH daemon
    subsystem_name: str = "fwup"
    ssh_host: str = "0.0.0.0"
    ssh_port: int = 22
    host_key_path: str = "/etc/ssh/ssh_host_ed25519_key"
    authorized_keys_path: str = "~/.ssh/authorized_keys"

    # Logging
    log_level: str = "INFO"


def get_settings() -> Settings:
    """Return settings from the environment; tests build Settings directly."""
    return Settings()
