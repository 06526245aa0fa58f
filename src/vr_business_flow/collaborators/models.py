"""Pydantic models for collaborator payloads.

Models are permissive (``extra="allow"``) where a collaborator may return more
than the flow reads; the flow only relies on the declared fields.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


class ClientInfo(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str = Field(min_length=1)
    business_type: str = Field(default="", alias="businessType")
    email: str | None = None
    assigned_specialist: str | None = Field(default=None, alias="assignedSpecialist")


class Referral(BaseModel):
    """Referral payload submitted by an upstream partner."""

    model_config = ConfigDict(populate_by_name=True)

    source: str = Field(min_length=1)
    client_info: ClientInfo = Field(alias="clientInfo")


class ReferralRecord(BaseModel):
    referral_id: str
    source: str
    client_info: ClientInfo
    status: str = "processed"


class InterviewResult(BaseModel):
    model_config = ConfigDict(extra="allow")

    disability_accommodations: dict[str, Any] = Field(default_factory=dict)
    business_readiness: dict[str, Any] = Field(default_factory=dict)
    learning_style: dict[str, Any] = Field(default_factory=dict)
    tech_proficiency: dict[str, Any] = Field(default_factory=dict)


class ClientProfile(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    business_type: str = ""
    assigned_specialist: str | None = None
    accommodations: list[str] = Field(default_factory=list)
    learning_style: dict[str, Any] = Field(default_factory=dict)
    collected_at: datetime = Field(default_factory=_utc_now)
    status: str = "collected"


class ProfileAnalysis(BaseModel):
    business_potential: float
    recommended_path: str
    timeline: str


class EligibilityResult(BaseModel):
    eligible: bool
    criteria: list[str] = Field(default_factory=list)
    notes: str = ""


class ReadinessResult(BaseModel):
    readiness_score: float = Field(ge=0.0, le=1.0)
    strengths: list[str] = Field(default_factory=list)
    development_areas: list[str] = Field(default_factory=list)


class ServiceClassification(BaseModel):
    category: str = Field(min_length=1)
    subcategory: str = ""
    estimated_cost: float = 0.0
    duration: str = ""


class Milestone(BaseModel):
    name: str
    duration: str


class WorkspaceConfig(BaseModel):
    workspace_id: str
    template: str
    service_category: str
    core_services: list[str] = Field(default_factory=list)
    addon_services: list[str] = Field(default_factory=list)
    milestones: list[Milestone] = Field(default_factory=list)
    assistant_config: dict[str, Any] = Field(default_factory=dict)


class WorkspaceProject(BaseModel):
    project_id: str
    workspace_id: str
    status: str = "created"
    url: str


class AgentAssignment(BaseModel):
    primary_agent: str
    support_agents: list[str] = Field(default_factory=list)
    project_id: str


class KnowledgeBaseEntry(BaseModel):
    page_id: str
    database_id: str = ""
    status: str = "created"
    url: str


class MonitoringHandle(BaseModel):
    monitoring_id: str
    status: str = "active"
    checkpoints: list[Milestone] = Field(default_factory=list)


class BusinessServicePartner(BaseModel):
    id: str = Field(min_length=1)
    name: str


class IntegrationReceipt(BaseModel):
    model_config = ConfigDict(extra="allow")

    integration_id: str
    external_id: str
    status: str = "integrated"
    service_type: str = ""


class StageProgress(BaseModel):
    stage: str
    status: str
    updated_at: datetime = Field(default_factory=_utc_now)
    data: dict[str, Any] | None = None


class ProgressSnapshot(BaseModel):
    """Read-only view of one client's progress as kept by progress monitoring."""

    client_id: str
    current_stage: str
    completed_stages: list[str] = Field(default_factory=list)
    overall_progress: float = Field(default=0.0, ge=0.0, le=1.0)
    flow_complete: bool = False
    monitoring_id: str | None = None
    stages: dict[str, StageProgress] = Field(default_factory=dict)
