"""
Job state machine.

    draft → submitted → paid → manufacturing → completed
      └───────┴──────────┴──→ cancelled

confirmed / in_progress are manufacturing milestones: they go on the
timeline but never change job.status.

These rules operate on an ORM Job in memory; job_store.py owns persisting
them under compare-and-set.
"""

from datetime import datetime, timedelta
from typing import Optional

from .errors import InvalidTransitionError
from .models import JobTimelineEntry

DRAFT = "draft"
SUBMITTED = "submitted"
PAID = "paid"
MANUFACTURING = "manufacturing"
COMPLETED = "completed"
CANCELLED = "cancelled"

TERMINAL_STATUSES = {COMPLETED, CANCELLED}
MILESTONES = ("confirmed", "in_progress")

TRANSITIONS = {
    DRAFT: {SUBMITTED, CANCELLED},
    SUBMITTED: {PAID, CANCELLED},
    PAID: {MANUFACTURING, CANCELLED},
    MANUFACTURING: {COMPLETED},
    COMPLETED: set(),
    CANCELLED: set(),
}

DEFAULT_NOTES = {
    DRAFT: "Draft created",
    SUBMITTED: "Submitted for manufacturing",
    PAID: "Payment confirmed",
    MANUFACTURING: "Hub acknowledged — manufacturing started",
    COMPLETED: "Manufacturing completed",
    CANCELLED: "Job cancelled",
    "confirmed": "Hub confirmed the build plan",
    "in_progress": "Parts in production",
}


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, set())


def check_transition(current: str, target: str) -> bool:
    """
    Returns False when target == current (already applied — caller no-ops),
    True when the transition is allowed, raises InvalidTransitionError otherwise.
    """
    if target not in TRANSITIONS:
        raise InvalidTransitionError(f"Unknown job status: {target}", {"status": target})
    if current == target:
        return False
    if not can_transition(current, target):
        raise InvalidTransitionError(
            f"Cannot move job from '{current}' to '{target}'",
            {"from": current, "to": target},
        )
    return True


def touch(job, now: Optional[datetime] = None):
    """Bump updated_at. It must really change, otherwise no UPDATE (and no version check) is emitted."""
    now = now or datetime.utcnow()
    if job.updated_at is not None and now <= job.updated_at:
        now = job.updated_at + timedelta(microseconds=1)
    job.updated_at = now


def append_timeline(job, status: str, note: Optional[str] = None, now: Optional[datetime] = None):
    """
    Append a timeline entry. Timestamps never go backwards, and the job row is
    touched so the append is part of the job's compare-and-set.
    """
    now = now or datetime.utcnow()
    if job.timeline and job.timeline[-1].timestamp > now:
        now = job.timeline[-1].timestamp
    job.timeline.append(JobTimelineEntry(
        status=status,
        timestamp=now,
        note=note or DEFAULT_NOTES.get(status),
    ))
    touch(job, now)


def apply_transition(job, target: str, note: Optional[str] = None, now: Optional[datetime] = None) -> bool:
    """Move job to target. Returns False when it was already there (no entry appended)."""
    if not check_transition(job.status, target):
        return False
    job.status = target
    append_timeline(job, target, note, now)
    return True


def record_milestone(job, milestone: str, note: Optional[str] = None, now: Optional[datetime] = None) -> bool:
    """Narrate a manufacturing milestone. Repeats are no-ops."""
    if milestone not in MILESTONES:
        raise InvalidTransitionError(f"Unknown milestone: {milestone}", {"milestone": milestone})
    if job.status != MANUFACTURING:
        raise InvalidTransitionError(
            f"Milestones are only recorded while manufacturing (job is '{job.status}')",
            {"status": job.status, "milestone": milestone},
        )
    if any(entry.status == milestone for entry in job.timeline):
        return False
    append_timeline(job, milestone, note, now)
    return True
