"""Test configuration and fixtures."""

from __future__ import annotations

import pytest

from vr_business_flow.collaborators.in_memory import build_in_memory_collaborators
from vr_business_flow.collaborators.interfaces import Collaborators
from vr_business_flow.config import FlowSettings
from vr_business_flow.flow.orchestrator import FlowOrchestrator


@pytest.fixture
def flow_settings() -> FlowSettings:
    """Provide settings with a short collaborator timeout."""
    return FlowSettings(_env_file=None, collaborator_timeout_seconds=0.5)


@pytest.fixture
def collaborators(flow_settings: FlowSettings) -> Collaborators:
    """Provide a fresh set of in-memory collaborators."""
    return build_in_memory_collaborators(flow_settings)


@pytest.fixture
def orchestrator(collaborators: Collaborators, flow_settings: FlowSettings) -> FlowOrchestrator:
    """Provide an orchestrator wired to the in-memory collaborators."""
    return FlowOrchestrator(collaborators, settings=flow_settings)


@pytest.fixture
def referral() -> dict[str, object]:
    """Provide the canonical referral used across flow tests."""
    return {
        "source": "vr_agency",
        "clientInfo": {
            "name": "Jane Doe",
            "businessType": "consulting",
            "assignedSpecialist": "specialist-7",
        },
    }
