"""In-memory collaborators.

These are deterministic, dependency-free implementations of every
collaborator contract. They back the default server and CLI, and they are the
base for test doubles. Real adapters implement the same ABCs.
"""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from vr_business_flow.collaborators.interfaces import (
    AssessmentService,
    Collaborators,
    IntakeService,
    InterviewService,
    KnowledgeBaseService,
    PartnerService,
    ProgressMonitoringService,
    WorkspaceService,
)
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
    StageProgress,
    WorkspaceConfig,
    WorkspaceProject,
)
from vr_business_flow.config import FlowSettings
from vr_business_flow.errors import UnknownClientError, UnsupportedCategoryError, ValidationError
from vr_business_flow.flow.state_machine import STAGE_ORDER, FlowStage

if TYPE_CHECKING:
    from vr_business_flow.flow.context import AssessmentResults, FlowContext

logger = logging.getLogger(__name__)

SERVICE_CATEGORIES: tuple[str, ...] = (
    "exploration_concept_development",
    "feasibility_studies",
    "business_planning",
    "supported_self_employment",
)

DEFAULT_BUSINESS_PARTNERS: tuple[BusinessServicePartner, ...] = (
    BusinessServicePartner(id="legal_services", name="Business Legal Support"),
    BusinessServicePartner(id="accounting", name="Financial Management"),
    BusinessServicePartner(id="marketing", name="Digital Marketing Support"),
)

_WORKSPACE_TEMPLATES: dict[str, list[Milestone]] = {
    "exploration_concept_development": [
        Milestone(name="Initial Assessment", duration="1_week"),
        Milestone(name="Concept Exploration", duration="3_weeks"),
    ],
    "feasibility_studies": [
        Milestone(name="Initial Assessment", duration="1_week"),
        Milestone(name="Market Research", duration="3_weeks"),
        Milestone(name="Feasibility Report", duration="2_weeks"),
    ],
    "business_planning": [
        Milestone(name="Initial Assessment", duration="1_week"),
        Milestone(name="Business Plan Development", duration="4_weeks"),
        Milestone(name="Financial Planning", duration="2_weeks"),
    ],
    "supported_self_employment": [
        Milestone(name="Initial Assessment", duration="1_week"),
        Milestone(name="Business Plan Development", duration="4_weeks"),
        Milestone(name="Financial Planning", duration="2_weeks"),
        Milestone(name="Implementation", duration="8_weeks"),
    ],
}


class InMemoryIntakeService(IntakeService):
    def __init__(self) -> None:
        self.notifications: list[tuple[str | None, str]] = []

    async def collect_client_data(
        self, client_id: str, client_info: ClientInfo, interview: InterviewResult
    ) -> ClientProfile:
        if not client_info.name.strip():
            raise ValidationError("Client name is required")
        accommodations = interview.disability_accommodations.get("accommodations", [])
        return ClientProfile(
            id=client_id,
            name=client_info.name,
            business_type=client_info.business_type,
            assigned_specialist=client_info.assigned_specialist,
            accommodations=list(accommodations),
            learning_style=dict(interview.learning_style),
        )

    async def notify_specialist(self, specialist_id: str | None, context: FlowContext) -> None:
        logger.info(
            "Notifying specialist",
            extra={"specialist_id": specialist_id, "client_id": context.client_id},
        )
        self.notifications.append((specialist_id, context.client_id))


class InMemoryInterviewService(InterviewService):
    async def conduct_initial_interview(
        self, client_id: str, client_info: ClientInfo
    ) -> InterviewResult:
        return InterviewResult(
            disability_accommodations={"type": "assessment", "accommodations": []},
            business_readiness={"stage": "planning", "readiness": 0.7},
            learning_style={"style": "visual", "preferences": ["video", "interactive"]},
            tech_proficiency={"level": "intermediate", "areas": ["basic_software", "web_browsing"]},
        )

    async def assign_ai_agents(
        self, client_id: str, service_category: str, project_id: str
    ) -> AgentAssignment:
        return AgentAssignment(
            primary_agent=f"{service_category}_specialist",
            support_agents=["business_coach", "accessibility_advisor"],
            project_id=project_id,
        )


class InMemoryAssessmentService(AssessmentService):
    """Assessment with a fixed outcome.

    ``eligible`` and ``category`` make the two decision points steerable.
    """

    def __init__(
        self,
        *,
        eligible: bool = True,
        category: str = "supported_self_employment",
        readiness_score: float = 0.8,
    ) -> None:
        self.eligible = eligible
        self.category = category
        self.readiness_score = readiness_score

    async def analyze_client_profile(self, profile: ClientProfile) -> ProfileAnalysis:
        return ProfileAnalysis(
            business_potential=0.75,
            recommended_path="accelerated_planning",
            timeline="12_weeks",
        )

    async def check_vr_eligibility(self, profile: ClientProfile) -> EligibilityResult:
        criteria = ["disability_verification", "employment_goal", "impediment_to_work"]
        if not self.eligible:
            return EligibilityResult(
                eligible=False, criteria=criteria, notes="Eligibility criteria not met"
            )
        return EligibilityResult(
            eligible=True, criteria=criteria, notes="All eligibility criteria met"
        )

    async def assess_business_readiness(
        self, profile: ClientProfile, interview: InterviewResult
    ) -> ReadinessResult:
        return ReadinessResult(
            readiness_score=self.readiness_score,
            strengths=["motivation", "basic_skills"],
            development_areas=["business_knowledge", "financial_planning"],
        )

    async def classify_service_category(self, results: AssessmentResults) -> ServiceClassification:
        return ServiceClassification(
            category=self.category,
            subcategory="business_planning",
            estimated_cost=1500,
            duration="16_weeks",
        )

    async def determine_core_services(self, category: str, results: AssessmentResults) -> list[str]:
        return ["business_planning", "financial_coaching", "mentor_assignment"]

    async def recommend_addon_services(
        self, profile: ClientProfile, core_services: list[str]
    ) -> list[str]:
        return ["assistive_technology", "marketing_support"]

    async def get_available_service_categories(self) -> list[str]:
        return list(SERVICE_CATEGORIES)


class InMemoryWorkspaceService(WorkspaceService):
    def __init__(self, base_url: str = "https://taskade.com/project") -> None:
        self.base_url = base_url.rstrip("/")
        self.deliveries: list[tuple[str, str]] = []

    async def create_workspace_configuration(
        self,
        client_id: str,
        *,
        service_category: str,
        core_services: list[str],
        addon_services: list[str],
        profile: ClientProfile,
    ) -> WorkspaceConfig:
        milestones = _WORKSPACE_TEMPLATES.get(service_category)
        if milestones is None:
            raise UnsupportedCategoryError(service_category)
        return WorkspaceConfig(
            workspace_id=f"workspace_{client_id}",
            template="vr_business_startup",
            service_category=service_category,
            core_services=list(core_services),
            addon_services=list(addon_services),
            milestones=[m.model_copy() for m in milestones],
            assistant_config={
                "assistant_type": "business_coach",
                "accommodations": list(profile.accommodations),
                "preferences": dict(profile.learning_style),
            },
        )

    async def generate_project(self, client_id: str, config: WorkspaceConfig) -> WorkspaceProject:
        return WorkspaceProject(
            project_id=f"project_{client_id}",
            workspace_id=config.workspace_id,
            url=f"{self.base_url}/{client_id}",
        )

    async def send_workspace_access(self, client_id: str, project: WorkspaceProject) -> None:
        logger.info(
            "Sending workspace access",
            extra={"client_id": client_id, "project_id": project.project_id},
        )
        self.deliveries.append((client_id, project.project_id))


class InMemoryKnowledgeBaseService(KnowledgeBaseService):
    def __init__(self, base_url: str = "https://notion.so", database_id: str = "") -> None:
        self.base_url = base_url.rstrip("/")
        self.database_id = database_id
        self.entries: dict[str, dict[str, Any]] = {}
        self.progress: list[tuple[str, str, str]] = []

    async def create_client_entry(
        self, client_id: str, record: dict[str, Any]
    ) -> KnowledgeBaseEntry:
        self.entries[client_id] = record
        return KnowledgeBaseEntry(
            page_id=f"notion_{client_id}",
            database_id=self.database_id,
            url=f"{self.base_url}/vr-client-{client_id}",
        )

    async def update_progress(self, client_id: str, stage: str, status: str) -> None:
        self.progress.append((client_id, stage, status))


class InMemoryPartnerService(PartnerService):
    """Partner integrations keyed by (client, integration) so repeats are no-ops.

    ``fail_integrations`` names integration ids that raise, for exercising the
    settle-all path without a real partner outage.
    """

    def __init__(
        self,
        *,
        partners: tuple[BusinessServicePartner, ...] = DEFAULT_BUSINESS_PARTNERS,
        fail_integrations: set[str] | None = None,
    ) -> None:
        self.partners = partners
        self.fail_integrations = set(fail_integrations or ())
        self.receipts: dict[tuple[str, str], IntegrationReceipt] = {}

    async def process_referral(self, referral: Referral) -> ReferralRecord:
        return ReferralRecord(
            referral_id=uuid.uuid4().hex,
            source=referral.source,
            client_info=referral.client_info,
        )

    async def integrate_insurance(
        self, client_id: str, profile: ClientProfile
    ) -> IntegrationReceipt:
        return self._integrate(
            client_id,
            "insurance",
            external_id=f"mbtq_{client_id}",
            service_type="business_liability",
        )

    async def integrate_tax_services(
        self, client_id: str, profile: ClientProfile
    ) -> IntegrationReceipt:
        return self._integrate(
            client_id,
            "tax_services",
            external_id=f"tax_{client_id}",
            service_type="small_business_filing",
        )

    async def get_business_service_partners(self, category: str) -> list[BusinessServicePartner]:
        return list(self.partners)

    async def integrate_business_service(
        self, client_id: str, partner: BusinessServicePartner, profile: ClientProfile
    ) -> IntegrationReceipt:
        return self._integrate(
            client_id,
            partner.id,
            external_id=f"{partner.id}_{client_id}",
            service_type=partner.name,
        )

    def _integrate(
        self, client_id: str, integration_id: str, *, external_id: str, service_type: str
    ) -> IntegrationReceipt:
        if integration_id in self.fail_integrations:
            raise ConnectionError(f"Partner '{integration_id}' is unavailable")
        key = (client_id, integration_id)
        existing = self.receipts.get(key)
        if existing is not None:
            return existing
        receipt = IntegrationReceipt(
            integration_id=integration_id, external_id=external_id, service_type=service_type
        )
        self.receipts[key] = receipt
        return receipt


class InMemoryProgressMonitoringService(ProgressMonitoringService):
    """Per-client snapshots behind a lock.

    Reads return deep copies, so callers polling a running flow never observe
    a half-applied update and never wait on stage execution.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshots: dict[str, ProgressSnapshot] = {}

    async def initialize_monitoring(
        self,
        client_id: str,
        *,
        milestones: list[Milestone],
        project_id: str,
        knowledge_base_page_id: str,
    ) -> MonitoringHandle:
        monitoring_id = f"monitor_{client_id}"
        with self._lock:
            snap = self._get_or_create_unlocked(client_id)
            snap.monitoring_id = monitoring_id
        return MonitoringHandle(monitoring_id=monitoring_id, checkpoints=list(milestones))

    async def update_stage_progress(
        self, client_id: str, stage: str, status: str, data: dict[str, Any] | None = None
    ) -> None:
        with self._lock:
            snap = self._get_or_create_unlocked(client_id)
            snap.stages[stage] = StageProgress(
                stage=stage,
                status=status,
                updated_at=datetime.now(tz=UTC),
                data=data,
            )
            if status == "completed" and stage not in snap.completed_stages:
                snap.completed_stages.append(stage)
            if not snap.flow_complete and _stage_rank(stage) > _stage_rank(snap.current_stage):
                snap.current_stage = stage
            snap.overall_progress = _overall_progress(snap)

    async def get_client_progress(self, client_id: str) -> ProgressSnapshot:
        with self._lock:
            snap = self._snapshots.get(client_id)
            if snap is None:
                raise UnknownClientError(client_id)
            return snap.model_copy(deep=True)

    async def mark_flow_complete(self, client_id: str) -> None:
        with self._lock:
            snap = self._get_or_create_unlocked(client_id)
            snap.flow_complete = True
            snap.current_stage = FlowStage.COMPLETED.value
            snap.overall_progress = 1.0

    def _get_or_create_unlocked(self, client_id: str) -> ProgressSnapshot:
        snap = self._snapshots.get(client_id)
        if snap is None:
            snap = ProgressSnapshot(
                client_id=client_id, current_stage=FlowStage.INITIAL_CONTACT.value
            )
            self._snapshots[client_id] = snap
        return snap


def _stage_rank(stage: str) -> int:
    order = [s.value for s in STAGE_ORDER]
    return order.index(stage) if stage in order else -1


def _overall_progress(snap: ProgressSnapshot) -> float:
    if snap.flow_complete:
        return 1.0
    known = {s.value for s in STAGE_ORDER}
    done = sum(1 for s in snap.completed_stages if s in known)
    return round(done / len(STAGE_ORDER), 2)


def build_in_memory_collaborators(settings: FlowSettings | None = None) -> Collaborators:
    settings = settings or FlowSettings()
    return Collaborators(
        intake=InMemoryIntakeService(),
        interview=InMemoryInterviewService(),
        assessment=InMemoryAssessmentService(),
        workspace=InMemoryWorkspaceService(base_url=settings.workspace_base_url),
        knowledge_base=InMemoryKnowledgeBaseService(
            base_url=settings.knowledge_base_url,
            database_id=settings.knowledge_base_database_id,
        ),
        partners=InMemoryPartnerService(),
        progress=InMemoryProgressMonitoringService(),
    )
