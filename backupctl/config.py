"""Runtime configuration from the environment."""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class RuntimeSettings(BaseSettings):
    """Process-level options, read from BACKUPCTL_* environment variables."""
    model_config = SettingsConfigDict(env_prefix="BACKUPCTL_", extra="ignore", validate_assignment=True)

    settings_file: str = "settings.json"
    log_level: str = "INFO"
    workers: int = 1  # >1 runs jobs in a thread pool
    console_log: bool = True

    @field_validator("log_level", mode="before")
    @classmethod
    def _known_level(cls, value):
        level = str(value).strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log level must be one of {', '.join(LOG_LEVELS)}")
        return level


def get_runtime_settings() -> RuntimeSettings:
    return RuntimeSettings()
