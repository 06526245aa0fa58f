"""Configuration for the REST server."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerSettings(BaseSettings):
    """Settings for the HTTP surface.

    Flow behaviour (timeouts, collaborator endpoints) lives in
    :class:`vr_business_flow.config.FlowSettings`.
    """

    host: str = Field(default="127.0.0.1", validation_alias="VR_FLOW_HOST")
    port: int = Field(default=5000, ge=1, le=65535, validation_alias="VR_FLOW_PORT")

    # Override via VR_FLOW_CORS_ORIGINS=...
    cors_origins: str = Field(
        default="http://localhost:5173,http://127.0.0.1:5173",
        validation_alias="VR_FLOW_CORS_ORIGINS",
        description="Comma-separated list of allowed CORS origins.",
    )

    model_config = SettingsConfigDict(
        env_prefix="", env_file=".env", extra="ignore", populate_by_name=True
    )

    def parsed_cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]
