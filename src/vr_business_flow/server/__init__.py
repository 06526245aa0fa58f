"""FastAPI server adapter for the client flow.

Design intent:
- Keep business logic in `vr_business_flow.flow.*`
- Keep server-specific concerns (routing, CORS, status codes) here
"""

from __future__ import annotations

__all__ = ["create_app"]

from vr_business_flow.server.app import create_app
