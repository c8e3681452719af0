"""Daily survey scheduler built on APScheduler."""

import logging
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from apscheduler.schedulers.background import BackgroundScheduler

logger = logging.getLogger(__name__)

DAILY_JOB_ID = 'daily_surveys'
CLEANUP_JOB_ID = 'weekly_cleanup'


# SCHEDULER SERVICE

class SchedulerService:
    def __init__(self, app, engine, timezone_name='America/New_York', hour=7, minute=0,
                 log_retention_days=90, clock=None):
        self.app = app
        self.engine = engine
        self.timezone_name = timezone_name
        self.timezone = ZoneInfo(timezone_name)
        self.hour = hour
        self.minute = minute
        self.log_retention_days = log_retention_days
        self.clock = clock or (lambda: datetime.now(self.timezone))
        self.scheduler = None

    @property
    def is_armed(self):
        return self.scheduler is not None and self.scheduler.running

    def start_scheduler(self):
        if self.is_armed:
            return

        self.scheduler = BackgroundScheduler(timezone=self.timezone_name)

        # Schedule daily surveys
        self.scheduler.add_job(
            func=self.send_daily_surveys,
            trigger='cron',
            hour=self.hour,
            minute=self.minute,
            id=DAILY_JOB_ID,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=3600
        )

        # Schedule weekly cleanup
        self.scheduler.add_job(
            func=self.cleanup_old_data,
            trigger='cron',
            day_of_week='sun',
            hour=2,
            minute=0,
            id=CLEANUP_JOB_ID
        )

        self.scheduler.start()
        logger.info(
            f"Daily SMS scheduler started - will send surveys at "
            f"{self.hour:02d}:{self.minute:02d} {self.timezone_name}"
        )

    def stop_scheduler(self):
        """Disarm future fires. A pass already running finishes on its own."""
        if not self.is_armed:
            return
        self.scheduler.shutdown(wait=False)
        self.scheduler = None
        logger.info("Scheduler stopped")

    def send_daily_surveys(self):
        with self.app.app_context():
            try:
                return self.engine.send_daily_surveys()
            except Exception as e:
                # the next day's fire must still happen
                logger.exception(f"Error in daily survey distribution: {e}")
                self.engine.database.rollback()
                return None

    def cleanup_old_data(self):
        with self.app.app_context():
            try:
                return self.engine.cleanup_old_logs(self.log_retention_days)
            except Exception as e:
                logger.exception(f"Error cleaning up old SMS logs: {e}")
                self.engine.database.rollback()
                return None

    def send_test_survey(self, user_id, campaign_id):
        return self.engine.send_test_survey(user_id, campaign_id)

    def next_run_time(self, now=None):
        now = (now or self.clock()).astimezone(self.timezone)
        next_run = now.replace(hour=self.hour, minute=self.minute, second=0, microsecond=0)
        if now >= next_run:
            next_run = next_run + timedelta(days=1)
        return next_run

    def next_scheduled_time(self):
        now = self.clock().astimezone(self.timezone)
        next_run = self.next_run_time(now)
        remaining = next_run.astimezone(timezone.utc) - now.astimezone(timezone.utc)
        return {
            'nextRun': next_run.isoformat(),
            'timezone': self.timezone_name,
            'timeUntilNext': int(remaining.total_seconds() // 60),
            'armed': self.is_armed,
        }
