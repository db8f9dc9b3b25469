"""Dependency wiring for routes."""

from __future__ import annotations

import logging
from secrets import compare_digest
from typing import Annotated
from uuid import uuid4

from fastapi import Depends, Request, Security
from fastapi.security import APIKeyHeader

from vidsum.core.context import PipelineContext
from vidsum.core.logging_safety import safe_log_identifier
from vidsum.errors import ApiError
from vidsum.services.dispatcher import WORKER_SECRET_HEADER
from vidsum.services.jobs import JobService

worker_secret_scheme = APIKeyHeader(
    name=WORKER_SECRET_HEADER,
    auto_error=False,
    scheme_name="workerSecret",
)
logger = logging.getLogger(__name__)


def _request_correlation_id(request: Request) -> str:
    existing = getattr(request.state, "correlation_id", None)
    if isinstance(existing, str) and existing:
        return existing

    correlation_id = request.headers.get("X-Correlation-Id")
    if correlation_id:
        request.state.correlation_id = correlation_id
        return correlation_id

    generated = f"req-{uuid4()}"
    request.state.correlation_id = generated
    return generated


def get_context(request: Request) -> PipelineContext:
    return request.app.state.context


async def require_worker_secret(
    request: Request,
    worker_secret: Annotated[str | None, Security(worker_secret_scheme)],
    context: Annotated[PipelineContext, Depends(get_context)],
) -> None:
    """Check the shared worker secret when one is configured."""
    expected = context.settings.worker_secret
    if not expected:
        return
    if worker_secret is None or not compare_digest(worker_secret, expected):
        logger.warning(
            "worker.auth_rejected correlation_id=%s method=%s path=%s reason=invalid_worker_secret",
            safe_log_identifier(_request_correlation_id(request), prefix="cid"),
            request.method,
            request.url.path,
        )
        raise ApiError("Invalid worker authentication", status_code=401, code="UNAUTHORIZED")


def get_job_service(context: Annotated[PipelineContext, Depends(get_context)]) -> JobService:
    return JobService(context)
