"""Configuration for the REST server."""

from __future__ import annotations

from pydantic import Field

from mailflow.automation.config import AutomationSettings


class ServerSettings(AutomationSettings):
    """Settings for the REST API.

    Extends :class:`mailflow.automation.config.AutomationSettings` with HTTP concerns.
    """

    # Dev-friendly CORS. Override via MAILFLOW_CORS_ORIGINS=...
    cors_origins: str = Field(
        default="http://localhost:5173,http://127.0.0.1:5173",
        validation_alias="MAILFLOW_CORS_ORIGINS",
        description="Comma-separated list of allowed CORS origins.",
    )

    def parsed_cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]
