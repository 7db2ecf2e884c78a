"""Job lifecycle transition rules."""

from app.schemas.job import JobStatus

_TERMINAL_STATES: frozenset[JobStatus] = frozenset(
    {
        JobStatus.COMPLETED,
        JobStatus.ERROR,
    }
)

# Retry -> Completed needs a Retry record that already carries the matching external id.
# Submission never writes one (Processing cannot fall back to Retry), so only
# records written by another writer of the same store can take this edge.
_ALLOWED_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.UPLOADED: {JobStatus.PROCESSING, JobStatus.RETRY, JobStatus.ERROR},
    JobStatus.RETRY: {JobStatus.PROCESSING, JobStatus.RETRY, JobStatus.COMPLETED, JobStatus.ERROR},
    JobStatus.PROCESSING: {JobStatus.COMPLETED, JobStatus.ERROR},
    JobStatus.COMPLETED: set(),
    JobStatus.ERROR: set(),
}


def is_terminal(status: JobStatus) -> bool:
    return status in _TERMINAL_STATES


def allowed_next_statuses(status: JobStatus) -> list[JobStatus]:
    """Return deterministically ordered allowed successors for a status."""
    return sorted(_ALLOWED_TRANSITIONS.get(status, set()), key=lambda s: s.value)


def can_transition(old_status: JobStatus, new_status: JobStatus) -> bool:
    """Check a transition against lifecycle rules; terminal states admit nothing."""
    if old_status in _TERMINAL_STATES:
        return False
    return new_status in _ALLOWED_TRANSITIONS.get(old_status, set())


def legal_predecessors(new_status: JobStatus) -> set[JobStatus]:
    return {old for old, successors in _ALLOWED_TRANSITIONS.items() if new_status in successors}
