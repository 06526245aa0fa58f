"""Side effects bound to flow events.

Each handler reads the published context and calls exactly the collaborators
its event is responsible for. Handlers never write to the context.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from vr_business_flow.collaborators.guard import call_collaborator
from vr_business_flow.collaborators.interfaces import Collaborators
from vr_business_flow.flow.events import EventChannel, FlowEvent, FlowEventType

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SideEffectHandlers:
    collaborators: Collaborators
    timeout_seconds: float

    async def on_stage_complete(self, event: FlowEvent) -> None:
        """Persist stage completion to progress monitoring and the knowledge base."""

        if event.context is None or event.stage is None:
            return
        client_id = event.context.client_id
        stage = event.stage.value
        await call_collaborator(
            self.collaborators.progress.update_stage_progress(client_id, stage, "completed"),
            collaborator="progress",
            operation="update_stage_progress",
            timeout_seconds=self.timeout_seconds,
            client_id=client_id,
        )
        await call_collaborator(
            self.collaborators.knowledge_base.update_progress(client_id, stage, "completed"),
            collaborator="knowledge_base",
            operation="update_progress",
            timeout_seconds=self.timeout_seconds,
            client_id=client_id,
        )

    async def on_assessment_complete(self, event: FlowEvent) -> None:
        """Notify the assigned human specialist."""

        context = event.context
        if context is None:
            return
        profile = context.client_data.profile
        specialist = profile.assigned_specialist if profile is not None else None
        await call_collaborator(
            self.collaborators.intake.notify_specialist(specialist, context),
            collaborator="intake",
            operation="notify_specialist",
            timeout_seconds=self.timeout_seconds,
            client_id=context.client_id,
        )

    async def on_workspace_ready(self, event: FlowEvent) -> None:
        """Deliver workspace access to the client."""

        context = event.context
        if context is None:
            return
        project = context.progress_metrics.workspace_project
        if project is None:
            logger.warning(
                "Workspace ready without a project", extra={"client_id": context.client_id}
            )
            return
        await call_collaborator(
            self.collaborators.workspace.send_workspace_access(context.client_id, project),
            collaborator="workspace",
            operation="send_workspace_access",
            timeout_seconds=self.timeout_seconds,
            client_id=context.client_id,
        )

    async def on_partner_integration(self, event: FlowEvent) -> None:
        """Mark the flow complete in progress monitoring."""

        if event.context is None:
            return
        await call_collaborator(
            self.collaborators.progress.mark_flow_complete(event.context.client_id),
            collaborator="progress",
            operation="mark_flow_complete",
            timeout_seconds=self.timeout_seconds,
            client_id=event.context.client_id,
        )

    async def on_flow_error(self, event: FlowEvent) -> None:
        logger.warning(
            "Flow aborted",
            extra={
                "client_id": event.client_id,
                "error_type": type(event.error).__name__ if event.error else None,
                "error": str(event.error) if event.error else None,
            },
        )


def register_default_handlers(
    channel: EventChannel, collaborators: Collaborators, *, timeout_seconds: float
) -> SideEffectHandlers:
    handlers = SideEffectHandlers(collaborators=collaborators, timeout_seconds=timeout_seconds)
    channel.subscribe(FlowEventType.STAGE_COMPLETE, handlers.on_stage_complete)
    channel.subscribe(FlowEventType.ASSESSMENT_COMPLETE, handlers.on_assessment_complete)
    channel.subscribe(FlowEventType.WORKSPACE_READY, handlers.on_workspace_ready)
    channel.subscribe(FlowEventType.PARTNER_INTEGRATION, handlers.on_partner_integration)
    channel.subscribe(FlowEventType.FLOW_ERROR, handlers.on_flow_error)
    return handlers
