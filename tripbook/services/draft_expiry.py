"""
Draft Expiry Scheduler

Periodically moves open drafts whose offer or draft lifetime has elapsed to
``expired``. Drafts are also expired lazily when touched, so the sweep only
keeps listings and "active draft for trip" lookups tidy.

Uses APScheduler's AsyncIOScheduler with an interval trigger.
"""

import logging
from datetime import datetime
from typing import Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.exc import SQLAlchemyError

from ..config import settings
from ..database import SessionLocal
from ..utils.security import utcnow
from .draft_service import DraftService

logger = logging.getLogger(__name__)

_scheduler: Optional[AsyncIOScheduler] = None
_last_run_time: Optional[datetime] = None
_last_run_result: Optional[Dict] = None

JOB_ID = "draft_expiry_sweep"


def sweep_expired_drafts(session_factory=SessionLocal) -> Dict:
    """
    Expire stale drafts in one pass.

    Returns:
        Dict with keys: expired, run_at, error
    """
    global _last_run_time, _last_run_result

    now = utcnow()
    result = {"expired": 0, "run_at": now.isoformat(), "error": None}

    db = session_factory()
    try:
        result["expired"] = DraftService(db).expire_stale_drafts(now)
        if result["expired"]:
            logger.info(f"Draft expiry sweep: {result['expired']} draft(s) expired")
    except SQLAlchemyError as e:
        db.rollback()
        result["error"] = str(e)
        logger.error(f"Draft expiry sweep failed: {e}")
    finally:
        db.close()

    _last_run_time = now
    _last_run_result = result
    return result


async def run_draft_expiry_job():
    """Async job function called by the scheduler."""
    sweep_expired_drafts()


def start_draft_expiry_scheduler(interval_seconds: Optional[int] = None) -> bool:
    """
    Start the interval job.

    Returns:
        True if the scheduler is running afterwards
    """
    global _scheduler

    if _scheduler is not None and _scheduler.running:
        logger.warning("Draft expiry scheduler is already running")
        return True

    interval = interval_seconds or settings.draft_expiry_sweep_seconds
    _scheduler = AsyncIOScheduler(timezone="UTC")
    _scheduler.add_job(
        run_draft_expiry_job,
        IntervalTrigger(seconds=interval),
        id=JOB_ID,
        name=f"Expire stale booking drafts every {interval}s",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    _scheduler.start()
    logger.info(f"Draft expiry scheduler started (every {interval}s)")
    return True


def stop_draft_expiry_scheduler() -> bool:
    global _scheduler

    if _scheduler is None:
        return True

    _scheduler.shutdown(wait=False)
    _scheduler = None
    logger.info("Draft expiry scheduler stopped")
    return True


def get_scheduler_status() -> Dict:
    status = {
        "running": False,
        "next_run": None,
        "last_run": _last_run_time.isoformat() if _last_run_time else None,
        "last_run_result": _last_run_result,
    }
    if _scheduler is not None and _scheduler.running:
        status["running"] = True
        job = _scheduler.get_job(JOB_ID)
        if job and job.next_run_time:
            status["next_run"] = job.next_run_time.isoformat()
    return status
