"""Unit tests for the flow orchestrator.

Covers the full pipeline, the eligibility gate, fail-fast stages 1-4, the
settle-all partner stage, cancellation, timeouts and the concurrency of
partner calls, side effects and status reads.
"""

from __future__ import annotations

import asyncio
import time

import pytest
from flow_doubles import (
    BrokenProgressWrites,
    CancellingIntakeService,
    DuplicatePartnersService,
    FailingKnowledgeBaseService,
    PartnerLookupDownService,
    SlowInterviewService,
    SlowPartnerService,
    StatusPollingPartnerService,
    make_orchestrator,
    run_and_drain,
)

from vr_business_flow.collaborators.in_memory import (
    InMemoryAssessmentService,
    InMemoryPartnerService,
)
from vr_business_flow.collaborators.interfaces import Collaborators
from vr_business_flow.collaborators.models import ClientProfile
from vr_business_flow.config import FlowSettings
from vr_business_flow.errors import (
    EligibilityError,
    FlowCancelledError,
    PartnerListError,
    PermanentError,
    TransientError,
    UnknownClientError,
    UnsupportedCategoryError,
    ValidationError,
)
from vr_business_flow.flow.context import FlowContext
from vr_business_flow.flow.events import FlowEvent, FlowEventType
from vr_business_flow.flow.orchestrator import FlowOrchestrator
from vr_business_flow.flow.state_machine import STAGE_ORDER, FlowStage

FULL_HISTORY = [*STAGE_ORDER, FlowStage.COMPLETED]


def test_complete_flow_for_eligible_client(
    orchestrator: FlowOrchestrator, referral: dict[str, object]
) -> None:
    ctx = run_and_drain(orchestrator, orchestrator.execute_complete_flow(referral))

    assert ctx.current_stage == FlowStage.COMPLETED
    assert ctx.stage_history == FULL_HISTORY
    assert ctx.referral_source == "vr_agency"
    assert ctx.service_category == "supported_self_employment"
    assert ctx.assessment_results.eligibility.eligible is True
    assert ctx.assessment_results.classification.category == "supported_self_employment"
    assert ctx.workspace_config is not None
    assert ctx.client_data.profile.name == "Jane Doe"
    assert ctx.client_data.profile.business_type == "consulting"
    assert len(ctx.partner_integrations) >= 1
    assert ctx.progress_metrics.workspace_project.url.endswith(ctx.client_id)
    assert ctx.progress_metrics.knowledge_base_entry.page_id == f"notion_{ctx.client_id}"
    assert ctx.progress_metrics.monitoring.monitoring_id == f"monitor_{ctx.client_id}"


def test_side_effects_run_after_events(
    orchestrator: FlowOrchestrator,
    collaborators: Collaborators,
    referral: dict[str, object],
) -> None:
    ctx = run_and_drain(orchestrator, orchestrator.execute_complete_flow(referral))

    assert collaborators.intake.notifications == [("specialist-7", ctx.client_id)]
    assert collaborators.workspace.deliveries == [
        (ctx.client_id, ctx.progress_metrics.workspace_project.project_id)
    ]
    recorded_stages = {stage for (_, stage, _) in collaborators.knowledge_base.progress}
    assert recorded_stages == {s.value for s in STAGE_ORDER}

    snapshot = asyncio.run(collaborators.progress.get_client_progress(ctx.client_id))
    assert snapshot.flow_complete is True
    assert snapshot.current_stage == "completed"
    assert set(snapshot.completed_stages) == {s.value for s in STAGE_ORDER}
    assert snapshot.overall_progress == 1.0


def test_ineligible_client_stops_at_assessment(
    collaborators: Collaborators, flow_settings: FlowSettings, referral: dict[str, object]
) -> None:
    orchestrator = make_orchestrator(
        collaborators, flow_settings, assessment=InMemoryAssessmentService(eligible=False)
    )

    with pytest.raises(EligibilityError) as exc_info:
        run_and_drain(orchestrator, orchestrator.execute_complete_flow(referral))

    ctx = exc_info.value.context
    assert ctx is not None
    assert ctx.current_stage == FlowStage.FAILED
    assert ctx.failed_stage == FlowStage.ASSESSMENT
    assert ctx.assessment_results.eligibility.eligible is False
    assert ctx.service_category is None
    assert ctx.workspace_config is None
    assert ctx.partner_integrations == []


def test_knowledge_base_failure_fails_the_flow(
    collaborators: Collaborators, flow_settings: FlowSettings, referral: dict[str, object]
) -> None:
    orchestrator = make_orchestrator(
        collaborators, flow_settings, knowledge_base=FailingKnowledgeBaseService()
    )

    with pytest.raises(PermanentError) as exc_info:
        run_and_drain(orchestrator, orchestrator.execute_complete_flow(referral))

    err = exc_info.value
    assert err.collaborator == "knowledge_base"
    assert err.operation == "create_client_entry"
    ctx = err.context
    assert ctx is not None
    assert ctx.current_stage == FlowStage.FAILED
    assert FlowStage.COMPLETED not in ctx.stage_history
    assert ctx.failed_stage == FlowStage.IMPLEMENTATION
    # workspace_ready is only published once the whole stage succeeded.
    assert collaborators.workspace.deliveries == []


def test_unsupported_category_fails_at_service_planning(
    collaborators: Collaborators, flow_settings: FlowSettings, referral: dict[str, object]
) -> None:
    orchestrator = make_orchestrator(
        collaborators,
        flow_settings,
        assessment=InMemoryAssessmentService(category="space_tourism"),
    )

    with pytest.raises(UnsupportedCategoryError) as exc_info:
        run_and_drain(orchestrator, orchestrator.execute_complete_flow(referral))

    assert exc_info.value.category == "space_tourism"
    ctx = exc_info.value.context
    assert ctx.failed_stage == FlowStage.SERVICE_PLANNING
    assert ctx.workspace_config is None


def test_stage_one_timeout_is_transient_and_creates_no_context(
    collaborators: Collaborators, referral: dict[str, object]
) -> None:
    settings = FlowSettings(_env_file=None, collaborator_timeout_seconds=0.01)
    orchestrator = make_orchestrator(collaborators, settings, interview=SlowInterviewService())

    with pytest.raises(TransientError) as exc_info:
        run_and_drain(orchestrator, orchestrator.execute_complete_flow(referral))

    assert exc_info.value.retryable is True
    assert exc_info.value.operation == "conduct_initial_interview"
    assert exc_info.value.context is None


def test_malformed_referral_is_rejected_before_any_call(
    orchestrator: FlowOrchestrator, collaborators: Collaborators
) -> None:
    with pytest.raises(ValidationError, match="clientInfo"):
        run_and_drain(orchestrator, orchestrator.execute_complete_flow({"source": "vr_agency"}))

    assert collaborators.partners.receipts == {}


def test_partner_failures_are_settled_not_raised(
    collaborators: Collaborators, flow_settings: FlowSettings, referral: dict[str, object]
) -> None:
    orchestrator = make_orchestrator(
        collaborators,
        flow_settings,
        partners=InMemoryPartnerService(fail_integrations={"accounting"}),
    )

    ctx = run_and_drain(orchestrator, orchestrator.execute_complete_flow(referral))

    assert ctx.current_stage == FlowStage.COMPLETED
    assert ctx.partner_integrations == ["legal_services", "accounting", "marketing"]
    metrics = ctx.progress_metrics
    assert len(metrics.partner_integrations) == 3
    assert {r.integration_id for r in metrics.fulfilled()} == {"legal_services", "marketing"}
    rejected = metrics.rejected()
    assert [r.integration_id for r in rejected] == ["accounting"]
    assert rejected[0].error_type == "PermanentError"
    assert "unavailable" in (rejected[0].reason or "")


def test_insurance_and_tax_integrations_follow_category(
    collaborators: Collaborators, flow_settings: FlowSettings
) -> None:
    orchestrator = make_orchestrator(
        collaborators,
        flow_settings,
        partners=InMemoryPartnerService(fail_integrations={"insurance", "marketing"}),
    )
    ctx = FlowContext(
        client_id="c1",
        referral_source="vr_agency",
        stage_history=[
            FlowStage.INITIAL_CONTACT,
            FlowStage.ASSESSMENT,
            FlowStage.SERVICE_PLANNING,
            FlowStage.IMPLEMENTATION,
        ],
    )
    ctx.service_category = "business_insurance_and_tax_setup"
    ctx.client_data.profile = ClientProfile(id="c1", name="Jane Doe")

    ctx = run_and_drain(orchestrator, orchestrator.integrate_partners(ctx))

    assert ctx.current_stage == FlowStage.PARTNER_INTEGRATION
    assert ctx.partner_integrations == [
        "insurance",
        "tax_services",
        "legal_services",
        "accounting",
        "marketing",
    ]
    statuses = {r.integration_id: r.status for r in ctx.progress_metrics.partner_integrations}
    assert statuses == {
        "insurance": "rejected",
        "tax_services": "fulfilled",
        "legal_services": "fulfilled",
        "accounting": "fulfilled",
        "marketing": "rejected",
    }


def test_partner_lookup_failure_is_tolerated(
    collaborators: Collaborators, flow_settings: FlowSettings, referral: dict[str, object]
) -> None:
    orchestrator = make_orchestrator(
        collaborators, flow_settings, partners=PartnerLookupDownService()
    )

    ctx = run_and_drain(orchestrator, orchestrator.execute_complete_flow(referral))

    assert ctx.current_stage == FlowStage.COMPLETED
    assert ctx.partner_integrations == []
    assert "partner directory unavailable" in (ctx.progress_metrics.partner_lookup_error or "")


def test_malformed_partner_list_is_a_programming_error(
    collaborators: Collaborators, flow_settings: FlowSettings, referral: dict[str, object]
) -> None:
    orchestrator = make_orchestrator(
        collaborators, flow_settings, partners=DuplicatePartnersService()
    )

    with pytest.raises(ValueError, match="Duplicate partner integration id") as exc_info:
        run_and_drain(orchestrator, orchestrator.execute_complete_flow(referral))

    assert isinstance(exc_info.value, PartnerListError)
    ctx = exc_info.value.context
    assert ctx is not None
    assert ctx.current_stage == FlowStage.FAILED
    assert ctx.failed_stage == FlowStage.PARTNER_INTEGRATION
    assert "Duplicate partner integration id" in (ctx.failure_reason or "")


def test_cancel_before_start_creates_no_flow(
    orchestrator: FlowOrchestrator, collaborators: Collaborators, referral: dict[str, object]
) -> None:
    async def scenario() -> None:
        cancel = asyncio.Event()
        cancel.set()
        await orchestrator.execute_complete_flow(referral, cancel_event=cancel)

    with pytest.raises(FlowCancelledError) as exc_info:
        asyncio.run(scenario())

    assert exc_info.value.next_stage == "initial_contact"
    assert exc_info.value.context is None


def test_cancel_between_stages_leaves_context_consistent(
    collaborators: Collaborators, flow_settings: FlowSettings, referral: dict[str, object]
) -> None:
    async def scenario() -> None:
        cancel = asyncio.Event()
        orchestrator = make_orchestrator(
            collaborators, flow_settings, intake=CancellingIntakeService(cancel)
        )
        try:
            await orchestrator.execute_complete_flow(referral, cancel_event=cancel)
        finally:
            await orchestrator.events.drain()

    with pytest.raises(FlowCancelledError) as exc_info:
        asyncio.run(scenario())

    err = exc_info.value
    assert err.next_stage == "assessment"
    ctx = err.context
    assert ctx.current_stage == FlowStage.FAILED
    assert ctx.failed_stage == FlowStage.INITIAL_CONTACT
    # Stage 1 finished completely; nothing from stage 2 was written.
    assert ctx.client_data.analysis is not None
    assert ctx.assessment_results.eligibility is None


def test_failed_side_effects_do_not_affect_the_flow(
    collaborators: Collaborators, flow_settings: FlowSettings, referral: dict[str, object]
) -> None:
    orchestrator = make_orchestrator(collaborators, flow_settings, progress=BrokenProgressWrites())

    ctx = run_and_drain(orchestrator, orchestrator.execute_complete_flow(referral))

    assert ctx.current_stage == FlowStage.COMPLETED
    assert ctx.stage_history == FULL_HISTORY


def test_independent_flows_run_concurrently(
    orchestrator: FlowOrchestrator, referral: dict[str, object]
) -> None:
    async def scenario() -> list[FlowContext]:
        try:
            return list(
                await asyncio.gather(
                    orchestrator.execute_complete_flow(referral),
                    orchestrator.execute_complete_flow(referral),
                )
            )
        finally:
            await orchestrator.events.drain()

    first, second = asyncio.run(scenario())
    assert first.client_id != second.client_id
    assert first.current_stage == second.current_stage == FlowStage.COMPLETED


def test_flow_status_is_idempotent(
    orchestrator: FlowOrchestrator, referral: dict[str, object]
) -> None:
    async def scenario() -> tuple[object, object]:
        ctx = await orchestrator.execute_complete_flow(referral)
        await orchestrator.events.drain()
        return (
            await orchestrator.get_flow_status(ctx.client_id),
            await orchestrator.get_flow_status(ctx.client_id),
        )

    first, second = asyncio.run(scenario())
    assert first == second
    assert first is not second


def test_flow_status_for_unknown_client(orchestrator: FlowOrchestrator) -> None:
    with pytest.raises(UnknownClientError):
        asyncio.run(orchestrator.get_flow_status("nobody"))


def test_update_flow_stage_records_in_progress(orchestrator: FlowOrchestrator) -> None:
    async def scenario() -> object:
        await orchestrator.update_flow_stage(
            "c1", "implementation", {"note": "workspace still provisioning"}
        )
        return await orchestrator.get_flow_status("c1")

    snapshot = asyncio.run(scenario())
    stage = snapshot.stages["implementation"]
    assert stage.status == "in_progress"
    assert stage.data == {"note": "workspace still provisioning"}
    assert snapshot.current_stage == "implementation"


def test_update_flow_stage_rejects_unknown_stage(orchestrator: FlowOrchestrator) -> None:
    with pytest.raises(ValidationError, match="Unknown stage"):
        asyncio.run(orchestrator.update_flow_stage("c1", "launch", None))


def test_available_services(orchestrator: FlowOrchestrator) -> None:
    services = asyncio.run(orchestrator.get_available_services())
    assert "supported_self_employment" in services
    assert len(services) == 4


def test_partner_integrations_run_concurrently(
    collaborators: Collaborators, flow_settings: FlowSettings, referral: dict[str, object]
) -> None:
    # Three partners at 0.3s each would take 0.9s one after another.
    orchestrator = make_orchestrator(
        collaborators, flow_settings, partners=SlowPartnerService(delay=0.3)
    )

    started = time.perf_counter()
    ctx = run_and_drain(orchestrator, orchestrator.execute_complete_flow(referral))
    elapsed = time.perf_counter() - started

    assert ctx.current_stage == FlowStage.COMPLETED
    assert len(ctx.progress_metrics.fulfilled()) == 3
    assert elapsed < 0.75


def test_slow_side_effects_do_not_delay_stages(
    orchestrator: FlowOrchestrator, referral: dict[str, object]
) -> None:
    handled: list[FlowStage | None] = []

    async def slow_handler(event: FlowEvent) -> None:
        await asyncio.sleep(1)
        handled.append(event.stage)

    orchestrator.events.subscribe(FlowEventType.STAGE_COMPLETE, slow_handler)

    async def scenario() -> tuple[FlowContext, float]:
        started = time.perf_counter()
        try:
            ctx = await orchestrator.execute_complete_flow(referral)
            return ctx, time.perf_counter() - started
        finally:
            await orchestrator.events.drain()

    ctx, elapsed = asyncio.run(scenario())

    assert ctx.current_stage == FlowStage.COMPLETED
    assert elapsed < 0.5
    assert sorted(handled) == sorted(STAGE_ORDER)


def test_status_can_be_read_while_flow_is_running(
    collaborators: Collaborators, flow_settings: FlowSettings, referral: dict[str, object]
) -> None:
    partners = StatusPollingPartnerService()
    orchestrator = make_orchestrator(collaborators, flow_settings, partners=partners)
    partners.orchestrator = orchestrator

    ctx = run_and_drain(orchestrator, orchestrator.execute_complete_flow(referral))

    assert ctx.current_stage == FlowStage.COMPLETED
    assert len(partners.snapshots) == 3
    during = partners.snapshots[0]
    assert during.client_id == ctx.client_id
    assert during.monitoring_id == f"monitor_{ctx.client_id}"
    assert during.flow_complete is False
    assert during.current_stage != FlowStage.COMPLETED.value


def test_progress_stage_never_moves_backward(orchestrator: FlowOrchestrator) -> None:
    async def scenario() -> object:
        await orchestrator.update_flow_stage("c1", "implementation", None)
        await orchestrator.update_flow_stage("c1", "assessment", {"note": "late write"})
        return await orchestrator.get_flow_status("c1")

    snapshot = asyncio.run(scenario())

    assert snapshot.current_stage == "implementation"
    assert snapshot.stages["assessment"].data == {"note": "late write"}
