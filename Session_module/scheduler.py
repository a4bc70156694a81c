"""
Scheduler setup for background tasks.
Uses APScheduler to run periodic maintenance jobs.
"""
import logging
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import settings
from .session_cleanup import close_stale_sessions_job, purge_expired_otps_job

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = None


def start_scheduler():
    """
    Start the background scheduler.
    - Stale session sweep: every SESSION_SWEEP_INTERVAL_MINUTES
    - Expired OTP purge: hourly
    """
    global scheduler

    if not settings.SCHEDULER_ENABLED:
        logger.info("Background scheduler disabled by configuration")
        return None

    if scheduler is not None:
        logger.warning("Scheduler is already running")
        return scheduler

    scheduler = BackgroundScheduler()

    scheduler.add_job(
        close_stale_sessions_job,
        trigger=IntervalTrigger(minutes=settings.SESSION_SWEEP_INTERVAL_MINUTES),
        id='stale_session_sweep',
        name='Close stale tracking sessions',
        replace_existing=True
    )
    scheduler.add_job(
        purge_expired_otps_job,
        trigger=IntervalTrigger(hours=1),
        id='otp_purge',
        name='Purge expired OTP codes',
        replace_existing=True
    )

    scheduler.start()
    logger.info(
        f"Background scheduler started. Stale session sweep every "
        f"{settings.SESSION_SWEEP_INTERVAL_MINUTES} minutes, OTP purge hourly."
    )

    return scheduler


def shutdown_scheduler():
    global scheduler

    if scheduler is not None:
        scheduler.shutdown()
        scheduler = None
        logger.info("Background scheduler stopped.")
