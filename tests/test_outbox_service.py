"""
Tests for the outbox: dedupe, retries with backoff and permanent failure.
"""
from datetime import datetime, timedelta

from lightfriend.db.models.outbox import OUTBOX_DONE, OUTBOX_FAILED, OUTBOX_PENDING, OutboxJob
from lightfriend.db.models.user import User
from lightfriend.services import outbox_service
from lightfriend.services.outbox_service import JobKind


def _make_due(db, job):
    job.next_attempt_at = datetime.utcnow() - timedelta(seconds=1)
    db.commit()


def test_enqueue_dedupes_pending_jobs(db):
    first = outbox_service.enqueue(db, JobKind.AUTO_RECHARGE, {"user_id": 1}, dedupe_key="auto_recharge:1")
    second = outbox_service.enqueue(db, JobKind.AUTO_RECHARGE, {"user_id": 1}, dedupe_key="auto_recharge:1")
    assert first.id == second.id
    assert db.query(OutboxJob).count() == 1


async def test_successful_job_is_done(db):
    seen = []

    async def handler(session, payload, job_id):
        seen.append(payload)

    outbox_service.enqueue(db, JobKind.SEND_SMS, {"user_id": 7, "body": "hi"})
    counts = await outbox_service.process_due_jobs(db, {JobKind.SEND_SMS: handler})

    assert counts == {"succeeded": 1, "failed": 0}
    assert seen == [{"user_id": 7, "body": "hi"}]
    assert db.query(OutboxJob).one().status == OUTBOX_DONE


async def test_failing_job_retries_then_fails(db):
    async def handler(session, payload, job_id):
        raise RuntimeError("card declined")

    job = outbox_service.enqueue(db, JobKind.AUTO_RECHARGE, {"user_id": 1}, max_attempts=3)
    handlers = {JobKind.AUTO_RECHARGE: handler}

    for attempt in range(1, 4):
        _make_due(db, job)
        before = datetime.utcnow()
        await outbox_service.process_due_jobs(db, handlers)
        after = datetime.utcnow()
        db.refresh(job)
        assert job.attempts == attempt
        if attempt == 1:
            # 30s * 2^attempts
            assert before + timedelta(seconds=60) <= job.next_attempt_at <= after + timedelta(seconds=60)
        if attempt < 3:
            assert job.status == OUTBOX_PENDING
            assert job.next_attempt_at > datetime.utcnow()

    assert job.status == OUTBOX_FAILED
    assert job.last_error == "RuntimeError: card declined"

    # Failed jobs are no longer picked up
    _make_due(db, job)
    counts = await outbox_service.process_due_jobs(db, handlers)
    assert counts == {"succeeded": 0, "failed": 0}


async def test_jobs_not_yet_due_are_skipped(db):
    async def handler(session, payload, job_id):
        raise AssertionError("should not run")

    job = outbox_service.enqueue(db, JobKind.SEND_SMS, {"user_id": 1, "body": "x"})
    job.next_attempt_at = datetime.utcnow() + timedelta(minutes=5)
    db.commit()
    counts = await outbox_service.process_due_jobs(db, {JobKind.SEND_SMS: handler})
    assert counts == {"succeeded": 0, "failed": 0}


async def test_retry_job_resets_failed_job(db):
    async def handler(session, payload, job_id):
        raise RuntimeError("boom")

    job = outbox_service.enqueue(db, JobKind.PADDLE_SYNC, {"subscription_id": "sub_1", "iq_quantity": 3}, max_attempts=1)
    await outbox_service.process_due_jobs(db, {JobKind.PADDLE_SYNC: handler})
    db.refresh(job)
    assert job.status == OUTBOX_FAILED

    retried = outbox_service.retry_job(db, job.id)
    assert retried.status == OUTBOX_PENDING
    assert retried.attempts == 0
    assert outbox_service.retry_job(db, 9999) is None


async def test_handler_database_error_still_counts_attempt(db, make_user):
    taken = make_user(email="taken@example.com")

    async def handler(session, payload, job_id):
        session.add(User(
            email=taken.email,
            password_hash="x",
            phone_number="+358409999999",
        ))
        session.commit()

    job = outbox_service.enqueue(db, JobKind.SEND_SMS, {"user_id": taken.id, "body": "x"}, max_attempts=1)
    other = outbox_service.enqueue(db, JobKind.PADDLE_SYNC, {"subscription_id": "sub_1", "iq_quantity": 1})
    ran = []

    async def paddle_handler(session, payload, job_id):
        ran.append(job_id)

    counts = await outbox_service.process_due_jobs(db, {JobKind.SEND_SMS: handler, JobKind.PADDLE_SYNC: paddle_handler})

    assert counts == {"succeeded": 1, "failed": 1}
    assert ran == [other.id]
    db.expire_all()
    failed = db.get(OutboxJob, job.id)
    assert failed.status == OUTBOX_FAILED
    assert failed.attempts == 1
    assert failed.last_error.startswith("IntegrityError")
    assert db.query(User).count() == 1


async def test_handler_receives_job_id(db):
    seen = []

    async def handler(session, payload, job_id):
        seen.append(job_id)

    job = outbox_service.enqueue(db, JobKind.AUTO_RECHARGE, {"user_id": 1})
    await outbox_service.process_due_jobs(db, {JobKind.AUTO_RECHARGE: handler})
    assert seen == [job.id]
