"""Ingest API schemas."""

from pydantic import BaseModel

from vidsum.schemas.job import CamelModel, JobStatus


class IngestRequest(BaseModel):
    url: str


class IngestResponse(CamelModel):
    job_id: str
    status: JobStatus
