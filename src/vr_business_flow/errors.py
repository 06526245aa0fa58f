"""Exception hierarchy for the client flow.

Stages 1-4 are fail-fast: any error below propagates out of
``execute_complete_flow``. Stage 5 partner failures are captured as
settlement records instead and never surface as one of these.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from vr_business_flow.flow.context import FlowContext


class FlowError(Exception):
    """Base class for every error raised by the flow engine."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message
        # Set by the orchestrator when the error aborts a flow that already has a context.
        self.context: FlowContext | None = None


class ValidationError(FlowError):
    """A referral or update payload is malformed. No flow is created."""


class EligibilityError(FlowError):
    """The client failed the VR-eligibility gate. Not retryable."""

    def __init__(self, client_id: str, criteria: list[str] | None = None) -> None:
        super().__init__(f"Client {client_id} is not eligible for VR services")
        self.client_id = client_id
        self.criteria = list(criteria or [])


class IntegrationError(FlowError):
    """A collaborator call failed."""

    retryable: bool = False

    def __init__(self, message: str, *, collaborator: str, operation: str) -> None:
        super().__init__(message)
        self.collaborator = collaborator
        self.operation = operation


class TransientError(IntegrationError):
    """The collaborator did not answer within the configured timeout."""

    retryable = True


class PermanentError(IntegrationError):
    """The collaborator itself raised. Retrying the same input will not help."""

    retryable = False


class UnsupportedCategoryError(FlowError):
    """No workspace template exists for the classified service category."""

    def __init__(self, category: str) -> None:
        super().__init__(f"No workspace template for service category '{category}'")
        self.category = category


class FlowCancelledError(FlowError):
    """The caller cancelled the flow between two stages."""

    def __init__(self, client_id: str, next_stage: str) -> None:
        super().__init__(f"Flow for client {client_id} cancelled before {next_stage}")
        self.client_id = client_id
        self.next_stage = next_stage


class ContextWriteError(FlowError):
    """A write-once context field was written a second time."""


class UnknownClientError(FlowError):
    """Progress monitoring holds no record for the requested client."""

    def __init__(self, client_id: str) -> None:
        super().__init__(f"No flow found for client {client_id}")
        self.client_id = client_id


class PartnerListError(FlowError, ValueError):
    """The partner directory returned a malformed list (bad entry or duplicate id).

    A programming error in the partner adapter, not a partner outage.
    """
