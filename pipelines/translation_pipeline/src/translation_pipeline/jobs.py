from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from transtag_core.db.enums import JobState
from transtag_core.db.models import SyncJob
from transtag_core.errors import ConfigurationError
from transtag_core.translations import TranslationStore

TRANSITIONS: dict[JobState, set[JobState]] = {
    JobState.queued: {JobState.running, JobState.failed},
    JobState.running: {JobState.completed, JobState.failed, JobState.continued},
}


class InvalidTransitionError(ValueError):
    pass


@dataclass(frozen=True)
class JobStatus:
    job_id: str
    total: int
    processed: int
    percentage: float
    status: JobState
    failure_reason: str | None = None


def transition(job: SyncJob, status: JobState, *, reason: str | None = None) -> None:
    if status not in TRANSITIONS.get(job.status, set()):
        raise InvalidTransitionError(f"Job {job.job_id}: cannot move from {job.status.value} to {status.value}")
    job.status = status
    if reason is not None:
        job.failure_reason = reason


def enqueue_job(
    session: Session,
    target_langs: list[str],
    *,
    scope_id: int | None = None,
    limit: int | None = None,
) -> SyncJob | None:
    """
    Snapshot the source records still missing a target language and queue them as one job.
    Returns None when there is nothing to translate. Does not commit.
    """
    if not target_langs:
        raise ConfigurationError("No target languages configured")
    candidates = TranslationStore(session).list_untranslated(target_langs, limit=limit, scope_id=scope_id)
    if not candidates:
        return None
    identifiers = [record.identifier for record in candidates]
    job = SyncJob(
        target_langs=list(target_langs),
        scope_id=scope_id,
        identifiers=identifiers,
        total_entries=len(identifiers),
        processed_entries=0,
        status=JobState.queued,
    )
    session.add(job)
    session.flush()
    return job


def queued_jobs(session: Session, *, limit: int | None = None) -> list[SyncJob]:
    stmt = select(SyncJob).where(SyncJob.status == JobState.queued).order_by(SyncJob.created_at, SyncJob.job_id)
    if limit:
        stmt = stmt.limit(limit)
    return list(session.scalars(stmt))


def job_status(session: Session, job_id: str) -> JobStatus:
    """Status of a job, following its continuation chain to the job currently carrying the work."""
    job = session.get(SyncJob, job_id)
    if job is None:
        raise LookupError(f"No job {job_id}")
    seen = {job.job_id}
    while job.status is JobState.continued and job.continued_by:
        nxt = session.get(SyncJob, job.continued_by)
        if nxt is None or nxt.job_id in seen:
            break
        seen.add(nxt.job_id)
        job = nxt
    total = job.total_entries
    processed = min(job.processed_entries, total)
    percentage = round(processed / total * 100, 2) if total else 100.0
    return JobStatus(
        job_id=job.job_id,
        total=total,
        processed=processed,
        percentage=percentage,
        status=job.status,
        failure_reason=job.failure_reason,
    )
