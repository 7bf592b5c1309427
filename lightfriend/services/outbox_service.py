"""
Outbox for side effects that must not fail the request that caused them.

Callers enqueue a job in the same database as their own writes; the
scheduler drains due jobs, retrying with exponential backoff until
max_attempts, after which the job stays "failed" with its last error.
"""
import json
import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from lightfriend.db.models.outbox import OutboxJob, OUTBOX_PENDING, OUTBOX_DONE, OUTBOX_FAILED

logger = logging.getLogger(__name__)

BASE_BACKOFF_SECONDS = 30
DEFAULT_MAX_ATTEMPTS = 5


class JobKind(str, Enum):
    AUTO_RECHARGE = "auto_recharge"
    SEND_SMS = "send_sms"
    PADDLE_SYNC = "paddle_sync"


# Handlers get the job id so external calls can use it as an idempotency key
JobHandler = Callable[[Session, Dict[str, Any], int], Awaitable[None]]


def enqueue(
    db: Session,
    kind: JobKind,
    payload: Dict[str, Any],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    dedupe_key: Optional[str] = None,
) -> OutboxJob:
    """
    Queue a job.

    When dedupe_key is given and a pending job with the same key exists,
    that job is returned instead of creating a second one.
    """
    if dedupe_key:
        existing = db.query(OutboxJob).filter(
            OutboxJob.dedupe_key == dedupe_key,
            OutboxJob.status == OUTBOX_PENDING,
        ).first()
        if existing:
            logger.debug(f"Outbox job already pending: kind={kind.value}, key={dedupe_key}")
            return existing

    job = OutboxJob(
        kind=kind.value,
        payload=json.dumps(payload),
        dedupe_key=dedupe_key,
        status=OUTBOX_PENDING,
        attempts=0,
        max_attempts=max_attempts,
        next_attempt_at=datetime.utcnow(),
    )
    db.add(job)
    db.commit()
    db.refresh(job)
    logger.info(f"Outbox job queued: id={job.id}, kind={kind.value}")
    return job


def _backoff(attempts: int) -> timedelta:
    return timedelta(seconds=BASE_BACKOFF_SECONDS * (2 ** attempts))


async def run_job(db: Session, job: OutboxJob, handlers: Dict[JobKind, JobHandler]) -> bool:
    """Run one job and record the outcome. Returns True on success."""
    now = datetime.utcnow()
    job.attempts += 1
    db.commit()
    try:
        handler = handlers[JobKind(job.kind)]
        await handler(db, json.loads(job.payload or "{}"), job.id)
    except Exception as e:
        # The handler may have left the session mid-transaction
        db.rollback()
        job.last_error = f"{type(e).__name__}: {e}"
        if job.attempts >= job.max_attempts:
            job.status = OUTBOX_FAILED
            logger.error(f"Outbox job {job.id} ({job.kind}) failed permanently after {job.attempts} attempts: {e}")
        else:
            job.next_attempt_at = now + _backoff(job.attempts)
            logger.warning(f"Outbox job {job.id} ({job.kind}) attempt {job.attempts} failed: {e}")
        db.commit()
        return False

    job.status = OUTBOX_DONE
    job.last_error = None
    db.commit()
    logger.info(f"Outbox job {job.id} ({job.kind}) done")
    return True


async def process_due_jobs(
    db: Session,
    handlers: Dict[JobKind, JobHandler],
    limit: int = 20,
) -> Dict[str, int]:
    """
    Run every pending job whose next_attempt_at has passed.

    Returns:
        Counts of succeeded and failed runs in this pass
    """
    due = db.query(OutboxJob).filter(
        OutboxJob.status == OUTBOX_PENDING,
        OutboxJob.next_attempt_at <= datetime.utcnow(),
    ).order_by(OutboxJob.next_attempt_at).limit(limit).all()

    succeeded = failed = 0
    for job in due:
        job_id = job.id
        try:
            ok = await run_job(db, job, handlers)
        except Exception as e:
            db.rollback()
            logger.error(f"Outbox job {job_id} could not be recorded: {e}")
            ok = False
        if ok:
            succeeded += 1
        else:
            failed += 1
    return {"succeeded": succeeded, "failed": failed}


def list_jobs(db: Session, status: Optional[str] = None, limit: int = 100) -> List[OutboxJob]:
    query = db.query(OutboxJob)
    if status:
        query = query.filter(OutboxJob.status == status)
    return query.order_by(OutboxJob.id.desc()).limit(limit).all()


def retry_job(db: Session, job_id: int) -> Optional[OutboxJob]:
    """Put a failed job back in the queue with a fresh attempt budget."""
    job = db.query(OutboxJob).filter(OutboxJob.id == job_id).first()
    if job is None:
        return None
    job.status = OUTBOX_PENDING
    job.attempts = 0
    job.next_attempt_at = datetime.utcnow()
    db.commit()
    db.refresh(job)
    logger.info(f"Outbox job {job.id} requeued")
    return job
