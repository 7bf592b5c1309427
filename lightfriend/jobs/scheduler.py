"""
Scheduled jobs:
1. Voice reconciliation - bill finished ElevenLabs conversations, then delete them
2. Outbox - run queued side effects (recharges, notices, Paddle sync)
3. Paddle usage - queue a daily usage sync per active subscription

Uses APScheduler's AsyncIOScheduler inside the API process.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from lightfriend.core import config
from lightfriend.core.context import AppContext
from lightfriend.repositories import subscription_repository, user_repository
from lightfriend.services import billing_service, outbox_service, paddle_service, usage_service
from lightfriend.services.elevenlabs_service import ElevenLabsClient
from lightfriend.services.outbox_service import JobKind
from lightfriend.services.usage_service import EVENT_VOICE, InsufficientCreditsError

logger = logging.getLogger(__name__)

VOICE_INTERVAL_SECONDS = 30
OUTBOX_INTERVAL_SECONDS = 15
PADDLE_SYNC_INTERVAL_HOURS = 24


def _conversation_user_id(details: Dict[str, Any]) -> Optional[int]:
    variables = ((details.get("conversation_initiation_client_data") or {}).get("dynamic_variables") or {})
    try:
        return int(variables["user_id"])
    except (KeyError, TypeError, ValueError):
        return None


async def reconcile_voice_conversations(db: Session, client: ElevenLabsClient) -> int:
    """
    Bill every finished voice conversation and delete it remotely.

    Conversations without a known user are deleted without billing.
    Errors on one conversation are logged and the rest still run.

    Returns:
        Number of conversations deleted
    """
    processed = 0
    for summary in await client.list_conversations():
        conversation_id = summary.get("conversation_id")
        if not conversation_id:
            continue
        try:
            details = await client.get_conversation(conversation_id)
            if details.get("status") != "done":
                continue

            user_id = _conversation_user_id(details)
            user = user_repository.find_by_id(db, user_id) if user_id is not None else None
            if user is None:
                logger.warning(f"Voice conversation {conversation_id} has no known user, deleting unbilled")
                await client.delete_conversation(conversation_id)
                processed += 1
                continue

            duration = (details.get("metadata") or {}).get("call_duration_secs") or 0
            credits_used = usage_service.compute_cost(user, EVENT_VOICE, duration)
            success = (details.get("analysis") or {}).get("call_successful") == "success"

            try:
                charged = usage_service.deduct_user_credits(db, user.id, EVENT_VOICE, duration)
            except InsufficientCreditsError:
                charged = 0.0
                logger.warning(
                    f"Insufficient balance to bill voice call {conversation_id} for user {user.id} "
                    f"({credits_used:.4f} credits)"
                )
            usage_service.log_usage(
                db,
                user.id,
                "call",
                charged,
                success,
                reason="voice call",
                sid=conversation_id,
                time_consumed=int(duration),
            )
            usage_service.check_threshold(db, user.id)

            await client.delete_conversation(conversation_id)
            processed += 1
        except Exception as e:
            db.rollback()
            logger.error(f"Error reconciling voice conversation {conversation_id}: {e}")
    if processed:
        logger.info(f"Reconciled {processed} voice conversations")
    return processed


def build_outbox_handlers(app: AppContext) -> Dict[JobKind, outbox_service.JobHandler]:
    async def auto_recharge(db: Session, payload: Dict[str, Any], job_id: int) -> None:
        await asyncio.to_thread(
            billing_service.automatic_charge,
            db,
            int(payload["user_id"]),
            idempotency_key=f"auto_recharge:{job_id}",
        )

    async def send_sms(db: Session, payload: Dict[str, Any], job_id: int) -> None:
        user = user_repository.find_by_id(db, int(payload["user_id"]))
        if user is None:
            logger.warning(f"Dropping SMS job for missing user {payload['user_id']}")
            return
        await asyncio.to_thread(app.messenger.notify_user, db, user, payload["body"])

    async def paddle_sync(db: Session, payload: Dict[str, Any], job_id: int) -> None:
        await paddle_service.sync_subscription_items(
            payload["subscription_id"], int(payload["iq_quantity"]), transport=app.http_transport
        )

    return {
        JobKind.AUTO_RECHARGE: auto_recharge,
        JobKind.SEND_SMS: send_sms,
        JobKind.PADDLE_SYNC: paddle_sync,
    }


async def run_voice_reconciliation(app: AppContext) -> None:
    if not config.ELEVENLABS_API_KEY:
        return
    db = app.session_factory()
    try:
        await reconcile_voice_conversations(db, ElevenLabsClient(transport=app.http_transport))
    except Exception as e:
        logger.error(f"Voice reconciliation run failed: {e}")
    finally:
        db.close()


async def run_outbox(app: AppContext) -> None:
    db = app.session_factory()
    try:
        counts = await outbox_service.process_due_jobs(db, build_outbox_handlers(app))
        if counts["succeeded"] or counts["failed"]:
            logger.info(f"Outbox pass: {counts['succeeded']} succeeded, {counts['failed']} failed")
    except Exception as e:
        logger.error(f"Outbox run failed: {e}")
    finally:
        db.close()


async def run_paddle_usage_sync(app: AppContext) -> None:
    """Queue a usage sync for every active Paddle subscription."""
    if not config.PADDLE_API_KEY:
        return
    db = app.session_factory()
    try:
        queued = 0
        for subscription in subscription_repository.list_active(db):
            if paddle_service.queue_usage_sync(db, subscription.user_id) is not None:
                queued += 1
        logger.info(f"Queued Paddle usage sync for {queued} subscriptions")
    finally:
        db.close()


def setup_scheduler(app: AppContext) -> AsyncIOScheduler:
    """
    Set up the scheduler with every recurring job.

    Args:
        app: Application context handed to every job

    Returns:
        Configured, not yet started scheduler
    """
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        run_voice_reconciliation,
        trigger=IntervalTrigger(seconds=VOICE_INTERVAL_SECONDS),
        args=[app],
        id="voice_reconciliation",
        name="ElevenLabs conversation billing",
        replace_existing=True,
        max_instances=1,
    )
    scheduler.add_job(
        run_outbox,
        trigger=IntervalTrigger(seconds=OUTBOX_INTERVAL_SECONDS),
        args=[app],
        id="outbox",
        name="Outbox processing",
        replace_existing=True,
        max_instances=1,
    )
    scheduler.add_job(
        run_paddle_usage_sync,
        trigger=IntervalTrigger(hours=PADDLE_SYNC_INTERVAL_HOURS),
        args=[app],
        id="paddle_usage_sync",
        name="Paddle usage sync",
        replace_existing=True,
        max_instances=1,
    )
    logger.info(
        f"Scheduler configured: voice reconciliation every {VOICE_INTERVAL_SECONDS}s, "
        f"outbox every {OUTBOX_INTERVAL_SECONDS}s, Paddle usage every {PADDLE_SYNC_INTERVAL_HOURS}h"
    )
    return scheduler
