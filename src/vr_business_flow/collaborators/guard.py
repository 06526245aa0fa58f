"""Bounded, classified collaborator calls.

Every collaborator call made by the flow goes through :func:`call_collaborator`:
- expiry of the timeout becomes :class:`TransientError` (retryable)
- anything else the collaborator raises becomes :class:`PermanentError`
- flow errors (validation, unsupported category, ...) pass through untouched
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

from vr_business_flow.errors import FlowError, PermanentError, TransientError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def call_collaborator(
    call: Awaitable[T],
    *,
    collaborator: str,
    operation: str,
    timeout_seconds: float,
    client_id: str | None = None,
) -> T:
    try:
        return await asyncio.wait_for(call, timeout=timeout_seconds)
    except TimeoutError as e:
        logger.warning(
            "Collaborator call timed out",
            extra={
                "collaborator": collaborator,
                "operation": operation,
                "timeout_seconds": timeout_seconds,
                "client_id": client_id,
            },
        )
        raise TransientError(
            f"{collaborator}.{operation} timed out after {timeout_seconds:g}s",
            collaborator=collaborator,
            operation=operation,
        ) from e
    except FlowError:
        raise
    except Exception as e:
        raise PermanentError(
            f"{collaborator}.{operation} failed: {e}",
            collaborator=collaborator,
            operation=operation,
        ) from e
