"""Configuration for the flow orchestrator.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)

Collaborator endpoints are only descriptive for the in-memory collaborators;
real adapters read the same settings.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FlowSettings(BaseSettings):
    """Settings for the flow orchestrator.

    Environment variables:
    - LOG_LEVEL                                (optional)
    - VR_FLOW_COLLABORATOR_TIMEOUT_SECONDS     (optional)
    - VR_FLOW_WORKSPACE_BASE_URL               (optional)
    - VR_FLOW_KNOWLEDGE_BASE_URL               (optional)
    - VR_FLOW_KNOWLEDGE_BASE_DATABASE_ID       (optional)

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `FlowSettings(_env_file=path_to_env)`.
    """

    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )

    collaborator_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        validation_alias="VR_FLOW_COLLABORATOR_TIMEOUT_SECONDS",
        description=(
            "Upper bound for a single collaborator call. Expiry raises TransientError "
            "so callers can tell retryable failures apart from permanent ones."
        ),
    )

    workspace_base_url: str = Field(
        default="https://taskade.com/project",
        validation_alias="VR_FLOW_WORKSPACE_BASE_URL",
        description="Base URL used to build client workspace project links",
    )

    knowledge_base_url: str = Field(
        default="https://notion.so",
        validation_alias="VR_FLOW_KNOWLEDGE_BASE_URL",
        description="Base URL used to build client knowledge-base page links",
    )

    knowledge_base_database_id: str = Field(
        default="",
        validation_alias="VR_FLOW_KNOWLEDGE_BASE_DATABASE_ID",
        description="Knowledge-base database that client entries are written to",
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )
