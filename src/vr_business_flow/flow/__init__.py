"""Flow domain concepts.

This package holds first-class types for:
- the forward-only stage machine
- the context threaded through all stages
- the in-process event channel for side effects
- the orchestrator that sequences the five stages
"""

from vr_business_flow.flow.context import FlowContext
from vr_business_flow.flow.orchestrator import FlowOrchestrator
from vr_business_flow.flow.state_machine import FlowStage

__all__ = ["FlowContext", "FlowOrchestrator", "FlowStage"]
