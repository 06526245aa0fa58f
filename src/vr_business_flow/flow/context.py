"""The context threaded through every stage of one client's flow."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel

from vr_business_flow.collaborators.models import (
    AgentAssignment,
    ClientProfile,
    EligibilityResult,
    InterviewResult,
    KnowledgeBaseEntry,
    MonitoringHandle,
    ProfileAnalysis,
    ReadinessResult,
    ReferralRecord,
    ServiceClassification,
    WorkspaceConfig,
    WorkspaceProject,
)
from vr_business_flow.errors import ContextWriteError
from vr_business_flow.flow.state_machine import FlowStage, transition


class _WriteOnce:
    """Reject a second assignment to any field listed in ``_write_once``.

    A field counts as written once it holds something other than None.
    """

    __slots__ = ()
    _write_once: frozenset[str] = frozenset()

    def __setattr__(self, name: str, value: Any) -> None:
        if name in self._write_once and getattr(self, name, None) is not None:
            raise ContextWriteError(f"{type(self).__name__}.{name} is already set")
        object.__setattr__(self, name, value)


def _dump(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return value


@dataclass(slots=True)
class ClientData(_WriteOnce):
    """Accumulated client record; each part is owned by stage 1."""

    _write_once = frozenset({"referral", "interview", "profile", "analysis"})

    referral: ReferralRecord | None = None
    interview: InterviewResult | None = None
    profile: ClientProfile | None = None
    analysis: ProfileAnalysis | None = None

    def to_json(self) -> dict[str, object]:
        return {
            "referral": _dump(self.referral),
            "interview": _dump(self.interview),
            "profile": _dump(self.profile),
            "analysis": _dump(self.analysis),
        }


@dataclass(slots=True)
class AssessmentResults(_WriteOnce):
    """Stage 2 output. ``eligibility.eligible`` gates everything after it."""

    _write_once = frozenset({"eligibility", "readiness", "classification"})

    eligibility: EligibilityResult | None = None
    readiness: ReadinessResult | None = None
    classification: ServiceClassification | None = None

    def to_json(self) -> dict[str, object]:
        return {
            "eligibility": _dump(self.eligibility),
            "readiness": _dump(self.readiness),
            "classification": _dump(self.classification),
        }


@dataclass(frozen=True, slots=True)
class SettlementRecord:
    """Outcome of one concurrently issued partner integration."""

    integration_id: str
    status: Literal["fulfilled", "rejected"]
    value: dict[str, object] | None = None
    reason: str | None = None
    error_type: str | None = None

    @property
    def fulfilled(self) -> bool:
        return self.status == "fulfilled"

    def to_json(self) -> dict[str, object]:
        out: dict[str, object] = {"integration_id": self.integration_id, "status": self.status}
        if self.value is not None:
            out["value"] = self.value
        if self.reason is not None:
            out["reason"] = self.reason
        if self.error_type is not None:
            out["error_type"] = self.error_type
        return out


@dataclass(slots=True)
class ProgressMetrics:
    workspace_project: WorkspaceProject | None = None
    agent_assignment: AgentAssignment | None = None
    knowledge_base_entry: KnowledgeBaseEntry | None = None
    monitoring: MonitoringHandle | None = None
    partner_integrations: list[SettlementRecord] = field(default_factory=list)
    partner_lookup_error: str | None = None

    def fulfilled(self) -> list[SettlementRecord]:
        return [r for r in self.partner_integrations if r.fulfilled]

    def rejected(self) -> list[SettlementRecord]:
        return [r for r in self.partner_integrations if not r.fulfilled]

    def to_json(self) -> dict[str, object]:
        return {
            "workspace_project": _dump(self.workspace_project),
            "agent_assignment": _dump(self.agent_assignment),
            "knowledge_base_entry": _dump(self.knowledge_base_entry),
            "monitoring": _dump(self.monitoring),
            "partner_integrations": [r.to_json() for r in self.partner_integrations],
            "partner_lookup_error": self.partner_lookup_error,
        }


def new_client_id() -> str:
    return uuid.uuid4().hex


@dataclass(slots=True)
class FlowContext(_WriteOnce):
    """One client's flow state, created once and mutated by each stage in turn.

    ``current_stage`` is derived from ``stage_history`` and only moves through
    :meth:`advance`, which validates the edge against the stage machine.
    """

    _write_once = frozenset({"client_id", "service_category", "workspace_config"})

    client_id: str
    referral_source: str
    stage_history: list[FlowStage] = field(default_factory=lambda: [FlowStage.INITIAL_CONTACT])
    client_data: ClientData = field(default_factory=ClientData)
    assessment_results: AssessmentResults = field(default_factory=AssessmentResults)
    service_category: str | None = None
    workspace_config: WorkspaceConfig | None = None
    partner_integrations: list[str] = field(default_factory=list)
    progress_metrics: ProgressMetrics = field(default_factory=ProgressMetrics)
    failed_stage: FlowStage | None = None
    failure_reason: str | None = None

    @property
    def current_stage(self) -> FlowStage:
        return self.stage_history[-1]

    def advance(self, to: FlowStage) -> FlowStage:
        """Move to ``to`` or raise IllegalTransitionError."""

        next_stage = transition(current=self.current_stage, to=to)
        self.stage_history.append(next_stage)
        return next_stage

    def fail(self, reason: str) -> None:
        """Absorb the flow into FAILED, remembering where it broke."""

        self.failed_stage = self.current_stage
        self.failure_reason = reason
        self.advance(FlowStage.FAILED)

    def to_summary(self) -> dict[str, object]:
        return {
            "client_id": self.client_id,
            "referral_source": self.referral_source,
            "current_stage": self.current_stage.value,
            "stage_history": [s.value for s in self.stage_history],
            "client_data": self.client_data.to_json(),
            "assessment_results": self.assessment_results.to_json(),
            "service_category": self.service_category,
            "workspace_config": _dump(self.workspace_config),
            "partner_integrations": list(self.partner_integrations),
            "progress_metrics": self.progress_metrics.to_json(),
            "failed_stage": self.failed_stage.value if self.failed_stage else None,
            "failure_reason": self.failure_reason,
        }
