"""Runner settings loaded from environment variables."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """All defaults can be overridden with FLEETCHECK_* variables or CLI options."""

    # Execution ceilings
    command_timeout: float = 600.0
    connect_timeout: float = 15.0

    # Retry defaults for steps declared with retry()
    retry_max_wait: float = 60.0
    retry_poll_interval: float = 1.0

    # Run steps on all targeted hosts at once unless a step says otherwise
    parallel: bool = False

    # External apply collaborator (detailed exit codes: 0 clean, 2 changed)
    apply_command: str = "puppet apply --detailed-exitcodes"
    apply_success_codes: list[int] = Field(default_factory=lambda: [0, 2])
    apply_change_codes: list[int] = Field(default_factory=lambda: [2])
    manifest_dir: str = "/tmp"

    # SSH defaults for hosts that don't carry their own credentials
    ssh_user: str = "root"
    ssh_password: str = ""
    ssh_key_path: str = ""
    ssh_strict_host_keys: bool = False
    # Remote ceiling wrapped around every SSH command; empty disables it
    ssh_timeout_wrapper: str = "timeout -s KILL {seconds}"
    ssh_kill_grace: float = 1.0

    # Characters of stdout/stderr kept in reports
    output_tail: int = 4000

    model_config = SettingsConfigDict(
        env_prefix="FLEETCHECK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


def load_settings(**overrides) -> Settings:
    """Settings from the environment with explicit (non-None) overrides on top."""
    return Settings(**{k: v for k, v in overrides.items() if v is not None})
