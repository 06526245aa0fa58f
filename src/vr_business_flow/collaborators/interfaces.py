"""Capability contracts the orchestrator depends on.

Each group is an abstract base class so that in-memory doubles and real
adapters (registered-agent filing, knowledge base, workspace provisioning,
AI interview) can be substituted independently. All operations are
coroutines.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from vr_business_flow.collaborators.models import (
    AgentAssignment,
    BusinessServicePartner,
    ClientInfo,
    ClientProfile,
    EligibilityResult,
    IntegrationReceipt,
    InterviewResult,
    KnowledgeBaseEntry,
    Milestone,
    MonitoringHandle,
    ProfileAnalysis,
    ProgressSnapshot,
    ReadinessResult,
    Referral,
    ReferralRecord,
    ServiceClassification,
    WorkspaceConfig,
    WorkspaceProject,
)

if TYPE_CHECKING:
    from vr_business_flow.flow.context import AssessmentResults, FlowContext


class IntakeService(ABC):
    """Client data collection. ``notify_specialist`` is best-effort."""

    @abstractmethod
    async def collect_client_data(
        self, client_id: str, client_info: ClientInfo, interview: InterviewResult
    ) -> ClientProfile:
        """Collect and validate the client's data.

        Raises:
            ValidationError: If the collected data is incomplete.
        """

    @abstractmethod
    async def notify_specialist(self, specialist_id: str | None, context: FlowContext) -> None:
        """Tell the assigned human specialist about a newly assessed client."""


class InterviewService(ABC):
    """AI-assisted interview and agent assignment. Raises when unavailable."""

    @abstractmethod
    async def conduct_initial_interview(
        self, client_id: str, client_info: ClientInfo
    ) -> InterviewResult: ...

    @abstractmethod
    async def assign_ai_agents(
        self, client_id: str, service_category: str, project_id: str
    ) -> AgentAssignment: ...


class AssessmentService(ABC):
    """Eligibility, readiness and classification.

    ``check_vr_eligibility`` never raises for a valid client: an ineligible
    client yields ``EligibilityResult(eligible=False)``.
    """

    @abstractmethod
    async def analyze_client_profile(self, profile: ClientProfile) -> ProfileAnalysis: ...

    @abstractmethod
    async def check_vr_eligibility(self, profile: ClientProfile) -> EligibilityResult: ...

    @abstractmethod
    async def assess_business_readiness(
        self, profile: ClientProfile, interview: InterviewResult
    ) -> ReadinessResult: ...

    @abstractmethod
    async def classify_service_category(
        self, results: AssessmentResults
    ) -> ServiceClassification: ...

    @abstractmethod
    async def determine_core_services(
        self, category: str, results: AssessmentResults
    ) -> list[str]: ...

    @abstractmethod
    async def recommend_addon_services(
        self, profile: ClientProfile, core_services: list[str]
    ) -> list[str]: ...

    @abstractmethod
    async def get_available_service_categories(self) -> list[str]: ...


class WorkspaceService(ABC):
    """Project-workspace provisioning. Raises on provisioning failure."""

    @abstractmethod
    async def create_workspace_configuration(
        self,
        client_id: str,
        *,
        service_category: str,
        core_services: list[str],
        addon_services: list[str],
        profile: ClientProfile,
    ) -> WorkspaceConfig:
        """Build the provisioning descriptor for a client.

        Raises:
            UnsupportedCategoryError: If no template matches ``service_category``.
        """

    @abstractmethod
    async def generate_project(
        self, client_id: str, config: WorkspaceConfig
    ) -> WorkspaceProject: ...

    @abstractmethod
    async def send_workspace_access(self, client_id: str, project: WorkspaceProject) -> None: ...


class KnowledgeBaseService(ABC):
    """Knowledge-base recording. Raises on write failure."""

    @abstractmethod
    async def create_client_entry(
        self, client_id: str, record: dict[str, Any]
    ) -> KnowledgeBaseEntry: ...

    @abstractmethod
    async def update_progress(self, client_id: str, stage: str, status: str) -> None: ...


class PartnerService(ABC):
    """Partner-system integration. Individual calls may raise.

    Integrations must be idempotent per (client, integration): the flow may be
    re-run for the same client after a partial failure.
    """

    @abstractmethod
    async def process_referral(self, referral: Referral) -> ReferralRecord: ...

    @abstractmethod
    async def integrate_insurance(
        self, client_id: str, profile: ClientProfile
    ) -> IntegrationReceipt: ...

    @abstractmethod
    async def integrate_tax_services(
        self, client_id: str, profile: ClientProfile
    ) -> IntegrationReceipt: ...

    @abstractmethod
    async def get_business_service_partners(
        self, category: str
    ) -> list[BusinessServicePartner]: ...

    @abstractmethod
    async def integrate_business_service(
        self, client_id: str, partner: BusinessServicePartner, profile: ClientProfile
    ) -> IntegrationReceipt: ...


class ProgressMonitoringService(ABC):
    """Progress bookkeeping. Reads are idempotent; writes are best-effort."""

    @abstractmethod
    async def initialize_monitoring(
        self,
        client_id: str,
        *,
        milestones: list[Milestone],
        project_id: str,
        knowledge_base_page_id: str,
    ) -> MonitoringHandle: ...

    @abstractmethod
    async def update_stage_progress(
        self, client_id: str, stage: str, status: str, data: dict[str, Any] | None = None
    ) -> None: ...

    @abstractmethod
    async def get_client_progress(self, client_id: str) -> ProgressSnapshot:
        """Return the current snapshot without waiting on stage execution.

        Raises:
            UnknownClientError: If nothing has been recorded for ``client_id``.
        """

    @abstractmethod
    async def mark_flow_complete(self, client_id: str) -> None: ...


@dataclass(frozen=True, slots=True)
class Collaborators:
    """Explicit bundle of the collaborators a flow runs against."""

    intake: IntakeService
    interview: InterviewService
    assessment: AssessmentService
    workspace: WorkspaceService
    knowledge_base: KnowledgeBaseService
    partners: PartnerService
    progress: ProgressMonitoringService
