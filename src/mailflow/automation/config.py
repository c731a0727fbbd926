"""Configuration for the local-first workflow runner.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AutomationSettings(BaseSettings):
    """Settings for the workflow runner.

    Environment variables:
    - LOG_LEVEL                 (optional)
    - MAILFLOW_STATE_PATH       (optional)
    - MAILFLOW_MAX_LOG_ENTRIES  (optional)

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `AutomationSettings(_env_file=path_to_env)`.
    """

    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )

    state_path: Path = Field(
        default=Path("mailflow_state"),
        validation_alias="MAILFLOW_STATE_PATH",
        description="Directory where workflow plans are persisted",
    )

    max_log_entries: int = Field(
        default=1000,
        validation_alias="MAILFLOW_MAX_LOG_ENTRIES",
        description="How many execution log entries are kept in memory",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def workflows_dir(self) -> Path:
        """Directory holding one JSON file per plan."""

        return self.state_path / "workflows"
