"""Client flow orchestrator.

Sequences the five stages of one client's flow:

    initial_contact -> assessment -> service_planning -> implementation
        -> partner_integration -> completed

Stages 1-4 are fail-fast: the first error moves the context to ``failed`` and
propagates. Stage 5 issues its partner integrations concurrently and records
each outcome as a settlement record instead of failing the flow.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from functools import partial
from typing import Any, TypeVar

from pydantic import ValidationError as PydanticValidationError

from vr_business_flow.collaborators.guard import call_collaborator
from vr_business_flow.collaborators.interfaces import Collaborators
from vr_business_flow.collaborators.models import (
    BusinessServicePartner,
    IntegrationReceipt,
    ProgressSnapshot,
    Referral,
)
from vr_business_flow.config import FlowSettings
from vr_business_flow.errors import (
    EligibilityError,
    FlowCancelledError,
    FlowError,
    IntegrationError,
    PartnerListError,
    ValidationError,
)
from vr_business_flow.flow.context import FlowContext, SettlementRecord, new_client_id
from vr_business_flow.flow.events import EventChannel, FlowEvent, FlowEventType
from vr_business_flow.flow.handlers import register_default_handlers
from vr_business_flow.flow.state_machine import FlowStage, is_terminal, parse_stage

logger = logging.getLogger(__name__)

T = TypeVar("T")

INSURANCE_INTEGRATION = "insurance"
TAX_INTEGRATION = "tax_services"


def parse_referral(referral: Referral | Mapping[str, Any]) -> Referral:
    """Validate an incoming referral payload.

    Raises:
        ValidationError: If required fields are missing or malformed.
    """

    if isinstance(referral, Referral):
        return referral
    if not isinstance(referral, Mapping):
        raise ValidationError("Referral payload must be a JSON object")
    try:
        return Referral.model_validate(dict(referral))
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ValidationError(f"Invalid referral: {problems}") from e


class FlowOrchestrator:
    """Drives clients through the business-formation flow.

    Collaborators are injected explicitly; side effects (notifications,
    persistence) hang off ``events`` and never block stage progression.
    """

    def __init__(
        self,
        collaborators: Collaborators,
        *,
        settings: FlowSettings | None = None,
        events: EventChannel | None = None,
        register_handlers: bool = True,
    ) -> None:
        self.collaborators = collaborators
        self.settings = settings or FlowSettings()
        self.events = events if events is not None else EventChannel()
        if register_handlers:
            register_default_handlers(
                self.events,
                collaborators,
                timeout_seconds=self.settings.collaborator_timeout_seconds,
            )

    async def execute_complete_flow(
        self,
        referral: Referral | Mapping[str, Any],
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> FlowContext:
        """Run all five stages in order and return the completed context.

        Raises:
            ValidationError: If the referral is malformed (no flow is created).
            EligibilityError: If the client fails the eligibility gate.
            IntegrationError: If a stage 1-4 collaborator call fails.
            FlowCancelledError: If ``cancel_event`` is set at a stage boundary.
        """

        parsed = parse_referral(referral)
        self._check_cancelled(cancel_event, None, FlowStage.INITIAL_CONTACT)

        context: FlowContext | None = None
        try:
            context = await self.process_partner_referral(parsed)

            steps: tuple[tuple[FlowStage, Callable[[FlowContext], Awaitable[FlowContext]]], ...] = (
                (FlowStage.ASSESSMENT, self.process_assessment),
                (FlowStage.SERVICE_PLANNING, self.plan_services),
                (FlowStage.IMPLEMENTATION, self.implement_services),
                (FlowStage.PARTNER_INTEGRATION, self.integrate_partners),
            )
            for next_stage, step in steps:
                self._check_cancelled(cancel_event, context, next_stage)
                context = await step(context)

            context.advance(FlowStage.COMPLETED)
        except Exception as e:
            self._abort(context, e)
            raise

        logger.info(
            "Flow completed",
            extra={
                "client_id": context.client_id,
                "service_category": context.service_category,
                "partner_integrations": len(context.partner_integrations),
                "partner_failures": len(context.progress_metrics.rejected()),
            },
        )
        self.events.publish(FlowEvent(type=FlowEventType.FLOW_COMPLETE, context=context))
        return context

    async def process_partner_referral(self, referral: Referral | Mapping[str, Any]) -> FlowContext:
        """Stage 1: referral intake, interview, data collection, profile analysis."""

        parsed = parse_referral(referral)
        context = FlowContext(client_id=new_client_id(), referral_source=parsed.source)
        self._log_stage_start(context)

        record = await self._call(
            self.collaborators.partners.process_referral(parsed),
            collaborator="partners",
            operation="process_referral",
            context=context,
        )
        context.client_data.referral = record

        interview = await self._call(
            self.collaborators.interview.conduct_initial_interview(
                context.client_id, record.client_info
            ),
            collaborator="interview",
            operation="conduct_initial_interview",
            context=context,
        )
        context.client_data.interview = interview

        profile = await self._call(
            self.collaborators.intake.collect_client_data(
                context.client_id, record.client_info, interview
            ),
            collaborator="intake",
            operation="collect_client_data",
            context=context,
        )
        context.client_data.profile = profile

        analysis = await self._call(
            self.collaborators.assessment.analyze_client_profile(profile),
            collaborator="assessment",
            operation="analyze_client_profile",
            context=context,
        )
        context.client_data.analysis = analysis

        self._stage_complete(context)
        return context

    async def process_assessment(self, context: FlowContext) -> FlowContext:
        """Stage 2: eligibility gate, readiness, service category."""

        context.advance(FlowStage.ASSESSMENT)
        self._log_stage_start(context)
        profile = _require(context.client_data.profile, "client_data.profile")
        interview = _require(context.client_data.interview, "client_data.interview")
        assessment = self.collaborators.assessment

        eligibility = await self._call(
            assessment.check_vr_eligibility(profile),
            collaborator="assessment",
            operation="check_vr_eligibility",
            context=context,
        )
        context.assessment_results.eligibility = eligibility
        if not eligibility.eligible:
            raise EligibilityError(context.client_id, eligibility.criteria)

        context.assessment_results.readiness = await self._call(
            assessment.assess_business_readiness(profile, interview),
            collaborator="assessment",
            operation="assess_business_readiness",
            context=context,
        )

        classification = await self._call(
            assessment.classify_service_category(context.assessment_results),
            collaborator="assessment",
            operation="classify_service_category",
            context=context,
        )
        context.assessment_results.classification = classification
        context.service_category = classification.category

        self.events.publish(FlowEvent(type=FlowEventType.ASSESSMENT_COMPLETE, context=context))
        self._stage_complete(context)
        return context

    async def plan_services(self, context: FlowContext) -> FlowContext:
        """Stage 3: core and add-on services, workspace configuration."""

        context.advance(FlowStage.SERVICE_PLANNING)
        self._log_stage_start(context)
        category = _require(context.service_category, "service_category")
        profile = _require(context.client_data.profile, "client_data.profile")
        assessment = self.collaborators.assessment

        core_services = await self._call(
            assessment.determine_core_services(category, context.assessment_results),
            collaborator="assessment",
            operation="determine_core_services",
            context=context,
        )
        addon_services = await self._call(
            assessment.recommend_addon_services(profile, core_services),
            collaborator="assessment",
            operation="recommend_addon_services",
            context=context,
        )
        context.workspace_config = await self._call(
            self.collaborators.workspace.create_workspace_configuration(
                context.client_id,
                service_category=category,
                core_services=core_services,
                addon_services=addon_services,
                profile=profile,
            ),
            collaborator="workspace",
            operation="create_workspace_configuration",
            context=context,
        )

        self._stage_complete(context)
        return context

    async def implement_services(self, context: FlowContext) -> FlowContext:
        """Stage 4: project, agents, knowledge-base entry, monitoring."""

        context.advance(FlowStage.IMPLEMENTATION)
        self._log_stage_start(context)
        config = _require(context.workspace_config, "workspace_config")
        category = _require(context.service_category, "service_category")
        metrics = context.progress_metrics

        project = await self._call(
            self.collaborators.workspace.generate_project(context.client_id, config),
            collaborator="workspace",
            operation="generate_project",
            context=context,
        )
        metrics.workspace_project = project

        metrics.agent_assignment = await self._call(
            self.collaborators.interview.assign_ai_agents(
                context.client_id, category, project.project_id
            ),
            collaborator="interview",
            operation="assign_ai_agents",
            context=context,
        )

        entry = await self._call(
            self.collaborators.knowledge_base.create_client_entry(
                context.client_id,
                {
                    "client_data": context.client_data.to_json(),
                    "assessment_results": context.assessment_results.to_json(),
                    "service_category": category,
                    "workspace_config": config.model_dump(mode="json"),
                    "workspace_project": project.model_dump(mode="json"),
                    "agent_assignment": metrics.agent_assignment.model_dump(mode="json"),
                },
            ),
            collaborator="knowledge_base",
            operation="create_client_entry",
            context=context,
        )
        metrics.knowledge_base_entry = entry

        metrics.monitoring = await self._call(
            self.collaborators.progress.initialize_monitoring(
                context.client_id,
                milestones=config.milestones,
                project_id=project.project_id,
                knowledge_base_page_id=entry.page_id,
            ),
            collaborator="progress",
            operation="initialize_monitoring",
            context=context,
        )

        self.events.publish(FlowEvent(type=FlowEventType.WORKSPACE_READY, context=context))
        self._stage_complete(context)
        return context

    async def integrate_partners(self, context: FlowContext) -> FlowContext:
        """Stage 5: concurrent partner integrations, settled individually.

        Never raises because a partner failed. Raises PartnerListError (a
        ValueError) only for a malformed partner list.
        """

        context.advance(FlowStage.PARTNER_INTEGRATION)
        self._log_stage_start(context)
        category = _require(context.service_category, "service_category")
        profile = _require(context.client_data.profile, "client_data.profile")
        partners = self.collaborators.partners

        planned: list[tuple[str, Callable[[], Awaitable[IntegrationReceipt]]]] = []
        if INSURANCE_INTEGRATION in category:
            planned.append(
                (
                    INSURANCE_INTEGRATION,
                    partial(partners.integrate_insurance, context.client_id, profile),
                )
            )
        if "tax" in category:
            planned.append(
                (
                    TAX_INTEGRATION,
                    partial(partners.integrate_tax_services, context.client_id, profile),
                )
            )

        try:
            business_partners = await self._call(
                partners.get_business_service_partners(category),
                collaborator="partners",
                operation="get_business_service_partners",
                context=context,
            )
        except IntegrationError as e:
            logger.warning(
                "Business-service partner lookup failed; continuing without them",
                extra={"client_id": context.client_id, "error": str(e)},
            )
            context.progress_metrics.partner_lookup_error = str(e)
            business_partners = []

        _check_partner_list(business_partners, reserved={i for i, _ in planned})
        for partner in business_partners:
            planned.append(
                (
                    partner.id,
                    partial(
                        partners.integrate_business_service, context.client_id, partner, profile
                    ),
                )
            )

        for integration_id, _ in planned:
            context.partner_integrations.append(integration_id)

        results = await asyncio.gather(
            *(
                call_collaborator(
                    start(),
                    collaborator="partners",
                    operation=integration_id,
                    timeout_seconds=self.settings.collaborator_timeout_seconds,
                    client_id=context.client_id,
                )
                for integration_id, start in planned
            ),
            return_exceptions=True,
        )

        for (integration_id, _), result in zip(planned, results, strict=True):
            record = _settle(integration_id, result)
            if not record.fulfilled:
                logger.warning(
                    "Partner integration failed",
                    extra={
                        "client_id": context.client_id,
                        "integration_id": integration_id,
                        "reason": record.reason,
                    },
                )
            context.progress_metrics.partner_integrations.append(record)

        self._stage_complete(context)
        self.events.publish(FlowEvent(type=FlowEventType.PARTNER_INTEGRATION, context=context))
        return context

    async def get_flow_status(self, client_id: str) -> ProgressSnapshot:
        """Return the progress snapshot kept by progress monitoring."""

        return await call_collaborator(
            self.collaborators.progress.get_client_progress(client_id),
            collaborator="progress",
            operation="get_client_progress",
            timeout_seconds=self.settings.collaborator_timeout_seconds,
            client_id=client_id,
        )

    async def update_flow_stage(
        self, client_id: str, stage: str | FlowStage, data: Mapping[str, Any] | None = None
    ) -> None:
        """Record out-of-band progress for a stage that is still running."""

        if not client_id or not client_id.strip():
            raise ValidationError("client_id is required")
        try:
            parsed = stage if isinstance(stage, FlowStage) else parse_stage(stage)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        if data is not None and not isinstance(data, Mapping):
            raise ValidationError("data must be a JSON object")

        await call_collaborator(
            self.collaborators.progress.update_stage_progress(
                client_id, parsed.value, "in_progress", dict(data) if data is not None else None
            ),
            collaborator="progress",
            operation="update_stage_progress",
            timeout_seconds=self.settings.collaborator_timeout_seconds,
            client_id=client_id,
        )

    async def get_available_services(self) -> list[str]:
        return await call_collaborator(
            self.collaborators.assessment.get_available_service_categories(),
            collaborator="assessment",
            operation="get_available_service_categories",
            timeout_seconds=self.settings.collaborator_timeout_seconds,
        )

    async def _call(
        self, call: Awaitable[T], *, collaborator: str, operation: str, context: FlowContext
    ) -> T:
        return await call_collaborator(
            call,
            collaborator=collaborator,
            operation=operation,
            timeout_seconds=self.settings.collaborator_timeout_seconds,
            client_id=context.client_id,
        )

    def _check_cancelled(
        self, cancel_event: asyncio.Event | None, context: FlowContext | None, next_stage: FlowStage
    ) -> None:
        if cancel_event is None or not cancel_event.is_set():
            return
        client_id = context.client_id if context is not None else "<unassigned>"
        raise FlowCancelledError(client_id, next_stage.value)

    def _abort(self, context: FlowContext | None, error: Exception) -> None:
        if context is not None:
            if not is_terminal(context.current_stage):
                context.fail(f"{type(error).__name__}: {error}")
            if isinstance(error, FlowError) and error.context is None:
                error.context = context

        logger.error(
            "Flow aborted",
            extra={
                "client_id": context.client_id if context is not None else None,
                "stage": context.failed_stage.value
                if context is not None and context.failed_stage
                else None,
                "error_type": type(error).__name__,
                "error": str(error),
            },
        )
        self.events.publish(FlowEvent(type=FlowEventType.FLOW_ERROR, context=context, error=error))

    def _log_stage_start(self, context: FlowContext) -> None:
        logger.info(
            "Stage started",
            extra={"client_id": context.client_id, "stage": context.current_stage.value},
        )

    def _stage_complete(self, context: FlowContext) -> None:
        stage = context.current_stage
        logger.info("Stage completed", extra={"client_id": context.client_id, "stage": stage.value})
        self.events.publish(
            FlowEvent(type=FlowEventType.STAGE_COMPLETE, context=context, stage=stage)
        )


def _require(value: T | None, name: str) -> T:
    if value is None:
        raise ValueError(f"Flow context is missing {name}")
    return value


def _check_partner_list(
    partners: list[BusinessServicePartner], *, reserved: set[str]
) -> None:
    seen: set[str] = set(reserved)
    for partner in partners:
        if not isinstance(partner, BusinessServicePartner):
            raise PartnerListError(f"Malformed business-service partner entry: {partner!r}")
        if partner.id in seen:
            raise PartnerListError(f"Duplicate partner integration id: {partner.id}")
        seen.add(partner.id)


def _settle(integration_id: str, result: object) -> SettlementRecord:
    if isinstance(result, BaseException):
        if not isinstance(result, Exception):
            raise result
        return SettlementRecord(
            integration_id=integration_id,
            status="rejected",
            reason=str(result),
            error_type=type(result).__name__,
        )
    if isinstance(result, IntegrationReceipt):
        value: dict[str, object] = result.model_dump(mode="json")
    else:
        value = {"result": result}
    return SettlementRecord(integration_id=integration_id, status="fulfilled", value=value)

