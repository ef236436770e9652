"""
In-process scheduler for the nightly billing status sweep.

A single cron job moves sent quotations past their validity date to
expired and unpaid invoices past their due date to overdue.
"""

import logging

from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from agency_billing.config import settings

logger = logging.getLogger(__name__)

STATUS_JOB_ID = 'billing_status'


def _build_scheduler() -> AsyncIOScheduler:
    return AsyncIOScheduler(
        jobstores={'default': MemoryJobStore()},
        executors={'default': AsyncIOExecutor()},
        job_defaults={
            # Missed runs collapse into one; a sweep several hours late still helps
            'coalesce': True,
            'max_instances': 1,
            'misfire_grace_time': 3600,
        },
        timezone=settings.SCHEDULER_TIMEZONE,
    )


scheduler = _build_scheduler()


async def run_status_job():
    from agency_billing.jobs.billing_status_jobs import run_billing_status_job

    try:
        counts = await run_billing_status_job()
    except Exception:
        logger.exception("Billing status sweep failed")
        return
    logger.info(f"Billing status sweep finished: {counts}")


def start_scheduler():
    if scheduler.running:
        return

    scheduler.add_job(
        run_status_job,
        CronTrigger(hour=settings.STATUS_JOB_HOUR, minute=0),
        id=STATUS_JOB_ID,
        name='Expire quotations and flag overdue invoices',
        replace_existing=True,
    )
    scheduler.start()
    logger.info(f"Billing status sweep scheduled daily at {settings.STATUS_JOB_HOUR:02d}:00 {settings.SCHEDULER_TIMEZONE}")


def shutdown_scheduler():
    if not scheduler.running:
        return
    scheduler.shutdown(wait=False)
    logger.info("Scheduler stopped")


def get_scheduler_status() -> dict:
    """Whether the scheduler is running, plus each job's next fire time."""
    return {
        'running': scheduler.running,
        'jobs': [
            {
                'id': job.id,
                'name': job.name,
                'next_run': job.next_run_time.isoformat() if job.next_run_time else None,
            }
            for job in scheduler.get_jobs()
        ],
    }
