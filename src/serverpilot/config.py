"""Configuration via pydantic-settings — 12-factor app style.

Every field can be set through a ``SERVERPILOT_``-prefixed environment
variable or a ``.env`` file; command-line options override both.
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """serverpilot configuration — loaded from env vars / .env file."""

    run_file: Optional[Path] = Field(default=None, description="Launch file or server bundle to run")
    run_file_is_bundle: bool = Field(default=False, description="Run the file through the launcher instead of reading a command from it")
    tag: str = Field(default="main", description="Identifier of the supervised server")
    plugin_dir: Path = Field(default=Path("PlugIns"), description="Directory scanned for plugin bundles")
    entry_point_group: str = Field(default="serverpilot.plugins", description="Entry-point group for installed plugins (empty disables)")
    command_prefix: str = Field(default="!", description="Prefix of supervisor commands typed in chat or on the console")
    launcher: str = Field(default="java -jar", description="Command prefix used to run a server bundle")
    log_level: str = Field(default="INFO", description="Root log level")
    stop_timeout: Optional[float] = Field(default=None, description="Seconds to wait for a graceful stop before killing (unset waits forever)")

    class Config:
        env_prefix = "SERVERPILOT_"
        env_file = ".env"

    @field_validator("command_prefix")
    @classmethod
    def _prefix_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("command_prefix must not be blank")
        return value

    @property
    def launcher_argv(self) -> tuple[str, ...]:
        return tuple(self.launcher.split())


def get_settings() -> Settings:
    """Build settings from the current environment."""
    return Settings()
