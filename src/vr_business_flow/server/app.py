"""FastAPI app factory.

Endpoints are intentionally thin wrappers over :class:`FlowOrchestrator`.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from vr_business_flow import __version__
from vr_business_flow.collaborators.in_memory import build_in_memory_collaborators
from vr_business_flow.config import FlowSettings
from vr_business_flow.flow.orchestrator import FlowOrchestrator
from vr_business_flow.server.config import ServerSettings
from vr_business_flow.server.flow_router import router as flow_router
from vr_business_flow.server.models import ErrorResponse, HealthResponse


SERVICE_NAME = "VR Business Flow System"


def create_app(
    orchestrator: FlowOrchestrator | None = None,
    *,
    settings: ServerSettings | None = None,
) -> FastAPI:
    """Build the API.

    Without an explicit orchestrator the app runs against the in-memory
    collaborators configured from :class:`FlowSettings`.
    """

    settings = settings or ServerSettings()
    if orchestrator is None:
        flow_settings = FlowSettings()
        orchestrator = FlowOrchestrator(
            build_in_memory_collaborators(flow_settings), settings=flow_settings
        )

    flow = orchestrator

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        yield
        # Let in-flight side effects (notifications, progress writes) finish.
        await flow.events.drain()

    app = FastAPI(
        title=SERVICE_NAME,
        lifespan=lifespan,
        version=__version__,
        description="REST API over the client flow orchestrator.",
    )

    app.state.settings = settings
    app.state.orchestrator = orchestrator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.parsed_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(
        _request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg', '')}"
            for err in exc.errors()
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=ErrorResponse(error=f"Invalid request: {problems}").model_dump(by_alias=True),
        )

    app.include_router(flow_router, prefix="/flow")

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(
            status="operational",
            service=SERVICE_NAME,
            version=__version__,
            timestamp=datetime.now(tz=UTC).isoformat(),
        )

    return app
