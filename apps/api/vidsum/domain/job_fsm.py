"""Job lifecycle transition rules."""

from vidsum.errors import ApiError
from vidsum.schemas.job import JobStatus

TERMINAL_STATES: frozenset[JobStatus] = frozenset({JobStatus.DONE, JobStatus.ERROR})

# Self-transitions let a retried step re-announce the status it runs under.
_ALLOWED_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.QUEUED: {JobStatus.PROCESSING, JobStatus.ERROR},
    JobStatus.PROCESSING: {JobStatus.PROCESSING, JobStatus.SUMMARIZING, JobStatus.ERROR},
    JobStatus.SUMMARIZING: {JobStatus.SUMMARIZING, JobStatus.DONE, JobStatus.ERROR},
    JobStatus.DONE: set(),
    JobStatus.ERROR: set(),
}


def is_terminal(status: JobStatus) -> bool:
    return status in TERMINAL_STATES


def allowed_next_statuses(status: JobStatus) -> list[JobStatus]:
    """Return deterministically ordered allowed successors for a status."""
    return sorted(_ALLOWED_TRANSITIONS.get(status, set()), key=lambda s: s.value)


def ensure_transition(old_status: JobStatus, new_status: JobStatus) -> None:
    """Validate transition according to lifecycle rules."""
    if old_status in TERMINAL_STATES:
        raise ApiError(
            f"Terminal status {old_status.value} cannot move to {new_status.value}",
            status_code=409,
            code="FSM_TERMINAL_IMMUTABLE",
        )

    if new_status not in _ALLOWED_TRANSITIONS.get(old_status, set()):
        allowed = ", ".join(s.value for s in allowed_next_statuses(old_status))
        raise ApiError(
            f"Invalid status transition {old_status.value} -> {new_status.value} (allowed: {allowed})",
            status_code=409,
            code="FSM_TRANSITION_INVALID",
        )
