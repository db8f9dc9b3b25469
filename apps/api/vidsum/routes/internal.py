"""Worker re-entry and health routes."""

from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends

from vidsum.core.context import PipelineContext
from vidsum.routes.dependencies import get_context, require_worker_secret
from vidsum.schemas.error import ErrorResponse
from vidsum.schemas.internal import HealthResponse, WorkerAck
from vidsum.schemas.job import QueueMessage

router = APIRouter(tags=["Internal"])


@router.post(
    "/worker",
    response_model=WorkerAck,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
)
async def run_worker_step(
    message: QueueMessage,
    background_tasks: BackgroundTasks,
    _: Annotated[None, Depends(require_worker_secret)],
    context: Annotated[PipelineContext, Depends(get_context)],
) -> WorkerAck:
    # Acknowledge first; the step runs after the response is sent.
    background_tasks.add_task(context.orchestrator.process_step, message)
    return WorkerAck()


@router.get("/health", response_model=HealthResponse)
async def health(
    context: Annotated[PipelineContext, Depends(get_context)],
) -> HealthResponse:
    return HealthResponse(storage=context.store.mode)
