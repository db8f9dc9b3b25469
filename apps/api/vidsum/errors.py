"""Application exception types."""

from vidsum.schemas.error import ErrorResponse


class ApiError(Exception):
    """Structured error that maps directly to an HTTP error payload."""

    status_code = 500
    code = "UNKNOWN_ERROR"

    def __init__(self, message: str, *, status_code: int | None = None, code: str | None = None) -> None:
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        self.message = message
        self.payload = ErrorResponse(error=message, code=self.code)
        super().__init__(message)


class ValidationError(ApiError):
    """Bad client input; never retried."""

    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(ApiError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str) -> None:
        super().__init__(f"{resource} not found")


class ProcessingError(ApiError):
    """A pipeline step failed; subject to the retry policy."""

    status_code = 500
    code = "PROCESSING_ERROR"

    def __init__(self, message: str, step: str | None = None) -> None:
        self.step = step
        super().__init__(f"Error in {step}: {message}" if step else message)


class ExternalServiceError(ApiError):
    """A collaborator call (provider, blob service, worker) failed."""

    status_code = 502
    code = "EXTERNAL_SERVICE_ERROR"

    def __init__(self, service: str, message: str) -> None:
        self.service = service
        super().__init__(f"{service} error: {message}")


class UnknownError(ApiError):
    status_code = 500
    code = "UNKNOWN_ERROR"

    def __init__(self) -> None:
        super().__init__("An unknown error occurred")


__all__ = [
    "ApiError",
    "ExternalServiceError",
    "NotFoundError",
    "ProcessingError",
    "UnknownError",
    "ValidationError",
]
