"""In-process event channel for flow side effects.

Publishing never waits on handlers: each handler runs as its own asyncio task.
A failing handler is logged and dropped; it cannot touch the flow that
published the event.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum

from vr_business_flow.flow.context import FlowContext
from vr_business_flow.flow.state_machine import FlowStage

logger = logging.getLogger(__name__)


class FlowEventType(str, Enum):
    STAGE_COMPLETE = "stage_complete"
    ASSESSMENT_COMPLETE = "assessment_complete"
    WORKSPACE_READY = "workspace_ready"
    PARTNER_INTEGRATION = "partner_integration"
    FLOW_COMPLETE = "flow_complete"
    FLOW_ERROR = "flow_error"


@dataclass(frozen=True, slots=True)
class FlowEvent:
    """A signal emitted by the orchestrator.

    ``stage`` is set for STAGE_COMPLETE; ``error`` for FLOW_ERROR.
    """

    type: FlowEventType
    context: FlowContext | None
    stage: FlowStage | None = None
    error: BaseException | None = None

    @property
    def client_id(self) -> str | None:
        return self.context.client_id if self.context is not None else None


EventHandler = Callable[[FlowEvent], Awaitable[None]]


class EventChannel:
    """Typed publish/subscribe over asyncio tasks."""

    def __init__(self) -> None:
        self._handlers: dict[FlowEventType, list[EventHandler]] = {}
        self._pending: set[asyncio.Task[None]] = set()

    def subscribe(self, event_type: FlowEventType, handler: EventHandler) -> None:
        self._handlers.setdefault(event_type, []).append(handler)

    def handlers_for(self, event_type: FlowEventType) -> list[EventHandler]:
        return list(self._handlers.get(event_type, []))

    def publish(self, event: FlowEvent) -> None:
        """Schedule every subscribed handler and return immediately.

        Must be called from inside a running event loop.
        """

        loop = asyncio.get_running_loop()
        for handler in self.handlers_for(event.type):
            name = getattr(handler, "__name__", type(handler).__name__)
            task = loop.create_task(
                self._run(handler, event, name),
                name=f"flow-event-{event.type.value}-{name}",
            )
            # The loop only keeps weak references to tasks.
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait until every scheduled side effect has finished."""

        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _run(self, handler: EventHandler, event: FlowEvent, name: str) -> None:
        try:
            await handler(event)
        except Exception:
            logger.exception(
                "Event handler failed",
                extra={
                    "event_type": event.type.value,
                    "handler": name,
                    "client_id": event.client_id,
                    "stage": event.stage.value if event.stage else None,
                },
            )
