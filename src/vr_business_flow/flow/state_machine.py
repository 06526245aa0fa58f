from __future__ import annotations

from enum import Enum


class FlowStage(str, Enum):
    INITIAL_CONTACT = "initial_contact"
    ASSESSMENT = "assessment"
    SERVICE_PLANNING = "service_planning"
    IMPLEMENTATION = "implementation"
    PARTNER_INTEGRATION = "partner_integration"
    COMPLETED = "completed"
    FAILED = "failed"


# Order of the work-performing stages; COMPLETED follows the last one.
STAGE_ORDER: tuple[FlowStage, ...] = (
    FlowStage.INITIAL_CONTACT,
    FlowStage.ASSESSMENT,
    FlowStage.SERVICE_PLANNING,
    FlowStage.IMPLEMENTATION,
    FlowStage.PARTNER_INTEGRATION,
)

TERMINAL_STAGES: frozenset[FlowStage] = frozenset({FlowStage.COMPLETED, FlowStage.FAILED})

# Partner failures never reach FAILED; they are settled inside PARTNER_INTEGRATION.
ALLOWED_TRANSITIONS: dict[FlowStage, set[FlowStage]] = {
    FlowStage.INITIAL_CONTACT: {FlowStage.ASSESSMENT, FlowStage.FAILED},
    FlowStage.ASSESSMENT: {FlowStage.SERVICE_PLANNING, FlowStage.FAILED},
    FlowStage.SERVICE_PLANNING: {FlowStage.IMPLEMENTATION, FlowStage.FAILED},
    FlowStage.IMPLEMENTATION: {FlowStage.PARTNER_INTEGRATION, FlowStage.FAILED},
    FlowStage.PARTNER_INTEGRATION: {FlowStage.COMPLETED, FlowStage.FAILED},
    FlowStage.COMPLETED: set(),
    FlowStage.FAILED: set(),
}


class IllegalTransitionError(ValueError):
    pass


def transition(*, current: FlowStage, to: FlowStage) -> FlowStage:
    allowed = ALLOWED_TRANSITIONS.get(current, set())
    if to not in allowed:
        raise IllegalTransitionError(f"Illegal transition: {current.value} -> {to.value}")
    return to


def is_terminal(stage: FlowStage) -> bool:
    return stage in TERMINAL_STAGES


def parse_stage(value: str) -> FlowStage:
    """Parse a stage name coming from outside (HTTP, CLI).

    Raises:
        ValueError: If the value is not a known stage.
    """

    try:
        return FlowStage(value)
    except ValueError:
        known = ", ".join(s.value for s in FlowStage)
        raise ValueError(f"Unknown stage '{value}' (expected one of: {known})") from None
