"""
CFB Pick'em Scoring Scheduler Service

Runs pick settlement in the background with APScheduler: an interval job that
scores picks as their games go final, and a daily job that audits cached user
totals and logs what it finds. The audit job never repairs anything; resync is
an explicit admin action.
"""

import atexit
import logging
from datetime import datetime, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from app.services.reconciliation_service import reconciliation_service
from app.services.scoring_service import (
    ScoringInProgressError,
    ScoringRunError,
    scoring_service,
)

logger = logging.getLogger(__name__)

SETTLE_JOB_ID = "settle_picks"
AUDIT_JOB_ID = "audit_scores"


class SchedulerService:
    """Manages background scoring jobs"""

    def __init__(self, app=None):
        self.scheduler = None
        self.app = app
        self.is_running = False
        self.run_stats = {
            "last_run": None,
            "total_runs": 0,
            "successful_runs": 0,
            "failed_runs": 0,
            "last_error": None,
            "picks_scored": 0,
        }

        if app:
            self.init_app(app)

    def init_app(self, app):
        """Initialize scheduler with Flask app"""
        self.app = app
        self.scheduler = BackgroundScheduler(daemon=True, timezone="UTC")

        atexit.register(self.shutdown)

        if app.config.get("SCHEDULER_ENABLED", True):
            self.start()

    def start(self):
        """Start the background scheduler"""
        if self.is_running:
            return
        if self.scheduler is None:
            logger.warning("Scheduler was never initialized, not starting")
            return

        try:
            self.scheduler.remove_all_jobs()
            self._add_core_jobs()
            self.scheduler.start()
            self.is_running = True
            logger.info("Scheduler started successfully")

        except Exception as e:
            logger.error(f"Failed to start scheduler: {e}")
            raise

    def stop(self):
        """Stop the background scheduler"""
        if not self.is_running:
            return

        try:
            self.scheduler.shutdown(wait=False)
            self.is_running = False
            logger.info("Scheduler stopped")

        except Exception as e:
            logger.error(f"Error stopping scheduler: {e}")

    def shutdown(self):
        """Graceful shutdown"""
        self.stop()

    def _add_core_jobs(self):
        interval = self.app.config.get("SCORING_INTERVAL_MINUTES", 5)
        audit_hour = self.app.config.get("AUDIT_HOUR_UTC", 3)

        # One settlement run at a time; missed runs collapse into one
        self.scheduler.add_job(
            func=self._settle_picks,
            trigger=IntervalTrigger(minutes=interval),
            id=SETTLE_JOB_ID,
            name="Settle Unscored Picks",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=60,
        )

        self.scheduler.add_job(
            func=self._audit_scores,
            trigger=CronTrigger(hour=audit_hour, minute=0),
            id=AUDIT_JOB_ID,
            name="Daily Score Audit",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=3600,
        )

        logger.info(
            f"Core scheduled jobs added (settle every {interval} min, "
            f"audit daily at {audit_hour:02d}:00 UTC)"
        )

    def _settle_picks(self):
        with self.app.app_context():
            try:
                summary = scoring_service.settle_unscored_picks()
            except ScoringInProgressError:
                logger.info("Settlement already running, skipping scheduled run")
                return
            except ScoringRunError as e:
                logger.error(f"Scheduled settlement stopped: {e} ({e.progress()})")
                self._update_stats(False, e.updated, error=str(e))
                return

            self._update_stats(True, summary["updated"])
            if summary["failed"]:
                logger.warning(
                    f"Scheduled settlement could not score {summary['failed']} picks"
                )

    def _audit_scores(self):
        with self.app.app_context():
            report = reconciliation_service.audit()
            for row in report["users"]:
                if not row["has_discrepancy"]:
                    break
                logger.warning(
                    f"User {row['id']} ({row['name']}): stored {row['stored_total']}, "
                    f"calculated {row['calculated_total']}"
                )
            return report["summary"]

    def _update_stats(self, success, picks_scored=0, error=None):
        self.run_stats["last_run"] = datetime.now(timezone.utc)
        self.run_stats["total_runs"] += 1
        self.run_stats["picks_scored"] += picks_scored

        if success:
            self.run_stats["successful_runs"] += 1
            self.run_stats["last_error"] = None
        else:
            self.run_stats["failed_runs"] += 1
            self.run_stats["last_error"] = error

    def get_status(self):
        """Get scheduler status information"""
        jobs = []
        if self.scheduler:
            for job in self.scheduler.get_jobs():
                next_run = job.next_run_time
                jobs.append(
                    {
                        "id": job.id,
                        "name": job.name,
                        "next_run": next_run.isoformat() if next_run else None,
                        "trigger": str(job.trigger),
                    }
                )

        stats = dict(self.run_stats)
        if stats["last_run"]:
            stats["last_run"] = stats["last_run"].isoformat()
        return {"is_running": self.is_running, "jobs": jobs, "stats": stats}

    def force_run(self, job="settle"):
        """Manually trigger a job in the calling thread"""
        if job == "settle":
            self._settle_picks()
        elif job == "audit":
            self._audit_scores()
        else:
            return False, f"Unknown job: {job}"
        return True, f"Manual {job} run completed"

    def pause_job(self, job_id):
        try:
            self.scheduler.pause_job(job_id)
            return True, f"Job {job_id} paused"
        except Exception as e:
            return False, f"Failed to pause job: {e}"

    def resume_job(self, job_id):
        try:
            self.scheduler.resume_job(job_id)
            return True, f"Job {job_id} resumed"
        except Exception as e:
            return False, f"Failed to resume job: {e}"


# Global scheduler instance
scheduler_service = SchedulerService()
