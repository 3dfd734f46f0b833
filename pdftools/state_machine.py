"""
Job State Machine
=================
Legal job transitions:

    pending ──▶ processing ──▶ completed
                          └──▶ failed

Terminal jobs never move again. ``advance`` returns the updated record and
applies the bookkeeping that belongs to each target state.
"""

from __future__ import annotations

import logging

from .models import Job, JobStatus, utcnow

logger = logging.getLogger(__name__)

TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING}),
    JobStatus.PROCESSING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


class InvalidTransitionError(Exception):
    """Raised when a job is asked to move along an edge that does not exist."""

    def __init__(self, job_id: str, current: JobStatus, target: JobStatus):
        self.job_id = job_id
        self.current = current
        self.target = target
        super().__init__(
            f"Job {job_id}: cannot transition from {current.value} to {target.value}"
        )


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    return target in TRANSITIONS[current]


def advance(job: Job, target: JobStatus, **updates) -> Job:
    """
    Move ``job`` to ``target``.

    completed: progress 100, completed_at set, error_message cleared.
    failed:    progress 0, completed_at set, error_message required.
    processing: started_at set.
    """
    if not can_transition(job.status, target):
        raise InvalidTransitionError(job.id, job.status, target)

    now = utcnow()
    changes = dict(updates)
    changes["status"] = target

    if target == JobStatus.PROCESSING:
        changes.setdefault("started_at", now)
        changes["progress"] = 0
    elif target == JobStatus.COMPLETED:
        changes["progress"] = 100
        changes["completed_at"] = now
        changes["error_message"] = None
    elif target == JobStatus.FAILED:
        if not changes.get("error_message"):
            changes["error_message"] = "Processing failed"
        changes["progress"] = 0
        changes["completed_at"] = now
        changes["output_file_ids"] = []

    logger.debug(f"Job {job.id}: {job.status.value} -> {target.value}")
    return job.model_copy(update=changes)
