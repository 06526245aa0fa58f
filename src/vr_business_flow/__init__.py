"""VR Business Flow.

Drives a single client through the business-formation assistance pipeline:
- referral intake and initial interview
- eligibility and readiness assessment
- service planning and workspace provisioning
- partner-system integration
"""

__version__ = "0.1.0"

from vr_business_flow.config import FlowSettings

__all__ = ["__version__", "FlowSettings"]
