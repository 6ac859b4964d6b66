import os
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

_CONFIG_PATH = os.getenv("MCPANEL_CONFIG", "config.toml")
_ENV_PATH = os.getenv("MCPANEL_ENV", ".env")


class ReloginPolicy(str, Enum):
    """What to do with a login for a player whose session is still open."""

    IGNORE = "ignore"
    REOPEN = "reopen"


class RconSettings(BaseModel):
    host: str = "127.0.0.1"
    port: int = Field(default=25575, ge=1, le=65535)
    password: str = ""
    timeout_seconds: float = 10.0


class LogTailSettings(BaseModel):
    log_dir_name: str = "logs"
    latest_log_name: str = "latest.log"
    archive_glob: str = "*.log.gz"
    # Poll instead of relying on filesystem notifications (network mounts, docker volumes)
    force_polling: bool = False
    poll_interval_ms: int = 1000
    queue_size: int = 1000


class SessionSettings(BaseModel):
    relogin_policy: ReloginPolicy = ReloginPolicy.IGNORE


class MaintenanceSettings(BaseModel):
    broadcast_command: str = "broadcast"
    shutdown_command: str = "stop"
    warning_template: str = "[Restart] Server restarting in {remaining} ({label})"
    cancel_in_flight_on_reload: bool = False


class ActivitySettings(BaseModel):
    max_events: int = 500
    max_commands: int = 200


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        env_prefix="MCPANEL_",
        toml_file=_CONFIG_PATH,
        env_file=_ENV_PATH,
        extra="ignore",
    )

    database_url: str = "sqlite:///mcpanel.db"
    database_echo: bool = False

    server_path: Path = Field(default=Path("."))
    logs_dir: Path = Field(default=Path("logs"))

    rcon: RconSettings = Field(default_factory=RconSettings)
    log_tail: LogTailSettings = Field(default_factory=LogTailSettings)
    sessions: SessionSettings = Field(default_factory=SessionSettings)
    maintenance: MaintenanceSettings = Field(default_factory=MaintenanceSettings)
    activity: ActivitySettings = Field(default_factory=ActivitySettings)

    timezone: Optional[str] = None

    @property
    def server_log_dir(self) -> Path:
        return self.server_path / self.log_tail.log_dir_name

    @property
    def latest_log_path(self) -> Path:
        return self.server_log_dir / self.log_tail.latest_log_name

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Source order: init args > OS env > .env > config.toml > secrets
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )


settings = Settings()
