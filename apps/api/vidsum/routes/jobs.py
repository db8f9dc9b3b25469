"""Public job routes: ingest, polling and deletion."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response, status
from fastapi.responses import JSONResponse

from vidsum.errors import ValidationError
from vidsum.routes.dependencies import get_job_service
from vidsum.schemas.error import ErrorResponse
from vidsum.schemas.ingest import IngestRequest, IngestResponse
from vidsum.schemas.status import StatusResponse, SummaryResponse
from vidsum.services.jobs import JobService

router = APIRouter(tags=["Jobs"])

JobIdQuery = Annotated[str | None, Query(alias="jobId")]


def _require_job_id(job_id: str | None) -> str:
    if not job_id or not job_id.strip():
        raise ValidationError("Job ID is required")
    return job_id.strip()


@router.post(
    "/ingest",
    response_model=IngestResponse,
    responses={400: {"model": ErrorResponse}},
)
async def ingest(
    payload: IngestRequest,
    service: Annotated[JobService, Depends(get_job_service)],
) -> IngestResponse:
    return await service.ingest(payload.url)


@router.get(
    "/status",
    response_model=StatusResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_status(
    service: Annotated[JobService, Depends(get_job_service)],
    job_id: JobIdQuery = None,
) -> StatusResponse:
    return await service.get_status(_require_job_id(job_id))


@router.get(
    "/summary",
    response_model=SummaryResponse,
    responses={
        202: {"model": SummaryResponse},
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
async def get_summary(
    service: Annotated[JobService, Depends(get_job_service)],
    job_id: JobIdQuery = None,
) -> JSONResponse:
    status_code, payload = await service.get_summary(_require_job_id(job_id))
    content = payload.model_dump(mode="json", by_alias=True, exclude_none=True)
    content.setdefault("summary", None)
    return JSONResponse(status_code=status_code, content=content)


@router.delete(
    "/job",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def delete_job(
    service: Annotated[JobService, Depends(get_job_service)],
    job_id: JobIdQuery = None,
) -> Response:
    await service.delete_job(_require_job_id(job_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
