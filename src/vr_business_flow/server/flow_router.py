"""Flow REST API.

All routes are mounted under `/flow`. Handlers are thin: they translate flow
errors into status codes and nothing else.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, HTTPException, Request, status
from fastapi.responses import JSONResponse

from vr_business_flow.errors import ValidationError
from vr_business_flow.flow.orchestrator import FlowOrchestrator
from vr_business_flow.server.models import (
    ErrorResponse,
    FlowStartResponse,
    FlowStatusResponse,
    FlowUpdateRequest,
    MessageResponse,
    ServicesResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _orchestrator(request: Request) -> FlowOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if not isinstance(orchestrator, FlowOrchestrator):
        raise HTTPException(status_code=500, detail="Flow orchestrator not configured")
    return orchestrator


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=message).model_dump(by_alias=True),
    )


@router.post(
    "/start",
    status_code=status.HTTP_201_CREATED,
    response_model=FlowStartResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def start_flow(
    request: Request, payload: dict[str, Any] = Body(...)
) -> FlowStartResponse | JSONResponse:
    orchestrator = _orchestrator(request)
    try:
        context = await orchestrator.execute_complete_flow(payload)
    except ValidationError as e:
        return _error(status.HTTP_400_BAD_REQUEST, e.message)
    except Exception as e:
        logger.exception("Flow start failed", extra={"source": payload.get("source")})
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(e) or "Flow initialization failed")

    metrics = context.progress_metrics
    return FlowStartResponse(
        client_id=context.client_id,
        current_stage=context.current_stage.value,
        workspace_url=metrics.workspace_project.url if metrics.workspace_project else None,
        notion_url=metrics.knowledge_base_entry.url if metrics.knowledge_base_entry else None,
    )


@router.get(
    "/status/{client_id}",
    response_model=FlowStatusResponse,
    responses={500: {"model": ErrorResponse}},
)
async def flow_status(request: Request, client_id: str) -> FlowStatusResponse | JSONResponse:
    orchestrator = _orchestrator(request)
    try:
        snapshot = await orchestrator.get_flow_status(client_id)
    except Exception as e:
        logger.warning("Status lookup failed", extra={"client_id": client_id, "error": str(e)})
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(e) or "Status retrieval failed")
    return FlowStatusResponse(data=snapshot)


@router.put(
    "/update/{client_id}",
    response_model=MessageResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def update_flow(
    request: Request, client_id: str, body: FlowUpdateRequest
) -> MessageResponse | JSONResponse:
    orchestrator = _orchestrator(request)
    try:
        await orchestrator.update_flow_stage(client_id, body.stage, body.data)
    except ValidationError as e:
        return _error(status.HTTP_400_BAD_REQUEST, e.message)
    except Exception as e:
        logger.exception("Flow update failed", extra={"client_id": client_id})
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(e) or "Update failed")
    return MessageResponse(message="Flow stage updated successfully")


@router.get(
    "/services",
    response_model=ServicesResponse,
    responses={500: {"model": ErrorResponse}},
)
async def available_services(request: Request) -> ServicesResponse | JSONResponse:
    orchestrator = _orchestrator(request)
    try:
        services = await orchestrator.get_available_services()
    except Exception as e:
        logger.exception("Service catalog lookup failed")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(e) or "Service lookup failed")
    return ServicesResponse(data=services)
