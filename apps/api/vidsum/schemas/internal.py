"""Internal worker re-entry schemas."""

from pydantic import BaseModel


class WorkerAck(BaseModel):
    success: bool = True


class HealthResponse(BaseModel):
    status: str = "ok"
    storage: str
