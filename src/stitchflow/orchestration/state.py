"""Job lifecycle transition table."""

from stitchflow.models.enums import JobStatus


class IllegalTransition(Exception):
    """Attempted status change that the lifecycle does not allow."""

    def __init__(self, current: JobStatus, target: JobStatus):
        self.current = current
        self.target = target
        super().__init__(f"Illegal job transition {current} -> {target}")


# Forward edges only; FAILED is reachable from every non-terminal state.
_FORWARD: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.DISPATCHED}),
    JobStatus.DISPATCHED: frozenset({JobStatus.AWAITING}),
    JobStatus.AWAITING: frozenset({JobStatus.READY}),
    JobStatus.READY: frozenset({JobStatus.MERGING}),
    JobStatus.MERGING: frozenset({JobStatus.PUBLISHING}),
    JobStatus.PUBLISHING: frozenset({JobStatus.COMPLETED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}

TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    status: targets | ({JobStatus.FAILED} if not status.is_terminal else frozenset())
    for status, targets in _FORWARD.items()
}


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    return target in TRANSITIONS[current]


def check_transition(current: JobStatus, target: JobStatus) -> None:
    """Raise IllegalTransition unless ``current -> target`` is a legal edge."""
    if not can_transition(current, target):
        raise IllegalTransition(current, target)
