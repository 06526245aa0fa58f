"""Pydantic models for the REST server.

Field names are camelCase on the wire.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from vr_business_flow.collaborators.models import ProgressSnapshot


class _ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FlowStartResponse(_ApiModel):
    success: bool = True
    client_id: str
    current_stage: str
    workspace_url: str | None = None
    notion_url: str | None = None


class FlowUpdateRequest(_ApiModel):
    stage: str = Field(min_length=1)
    data: dict[str, Any] | None = None


class FlowStatusResponse(_ApiModel):
    success: bool = True
    data: ProgressSnapshot


class MessageResponse(_ApiModel):
    success: bool = True
    message: str


class ServicesResponse(_ApiModel):
    success: bool = True
    data: list[str]


class ErrorResponse(_ApiModel):
    success: bool = False
    error: str


class HealthResponse(_ApiModel):
    status: str
    service: str
    version: str
    timestamp: str
