# cardsync/scheduler.py
import threading
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from .errors import SyncCancelledError
from .schemas import RunStatus, SyncReport
from .utils import logger, utc_now

SYNC_JOB_ID = "card-sync"
STARTUP_JOB_ID = "card-sync-startup"

class SyncScheduler:
    """Fires sync runs from a cron expression and serializes them.

    Every run, whether cron, startup or manual, goes through `run_now`, which
    skips the call when another run holds the guard and turns any error into
    a failed report.
    """

    def __init__(self, service, cron_schedule, timezone="UTC", sync_on_startup=False,
                 scheduler=None, clock=utc_now):
        self.service = service
        self.cron_schedule = cron_schedule
        self.timezone = timezone
        self.sync_on_startup = sync_on_startup
        self.scheduler = scheduler or BackgroundScheduler(timezone=timezone)
        self._guard = threading.Lock()
        self._clock = clock

    @property
    def sync_in_progress(self) -> bool:
        return self._guard.locked()

    def register_jobs(self):
        logger.info("Scheduling card sync job: %s", self.cron_schedule)
        self.scheduler.add_job(
            self.run_now,
            CronTrigger.from_crontab(self.cron_schedule, timezone=self.timezone),
            kwargs={"trigger": "cron"},
            id=SYNC_JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        if self.sync_on_startup:
            logger.info("Initial sync on startup enabled")
            # date trigger without run_date fires as soon as the scheduler starts
            self.scheduler.add_job(
                self.run_now,
                "date",
                kwargs={"trigger": "startup"},
                id=STARTUP_JOB_ID,
                replace_existing=True,
            )

    def start(self):
        self.register_jobs()
        self.scheduler.start()
        logger.info("Scheduler started")

    def shutdown(self):
        # stop an in-flight run at its next checkpoint, even before start()
        cancel = getattr(self.service, "cancel", None)
        if cancel is not None:
            cancel()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")

    def run_now(self, trigger="manual") -> SyncReport:
        if not self._guard.acquire(blocking=False):
            logger.warning("Skipping %s sync: previous run still in progress", trigger)
            now = self._clock()
            return SyncReport(status=RunStatus.SKIPPED, trigger=trigger, started_at=now, finished_at=now)
        started_at = self._clock()
        try:
            logger.info("Sync job triggered (%s) at %s", trigger, started_at.isoformat())
            report = self.service.run(trigger=trigger)
            logger.info("Sync job completed successfully")
            return report
        except SyncCancelledError as e:
            logger.warning("Sync job cancelled (%s): %s", trigger, e)
            return SyncReport(
                status=RunStatus.CANCELLED,
                trigger=trigger,
                started_at=started_at,
                finished_at=self._clock(),
                error=str(e),
                stage=getattr(self.service, "failed_stage", None),
            )
        except Exception as e:
            stage = getattr(self.service, "failed_stage", None)
            logger.exception("Sync job failed (%s) during %s", trigger, stage.value if stage else "unknown stage")
            return SyncReport(
                status=RunStatus.FAILED,
                trigger=trigger,
                started_at=started_at,
                finished_at=self._clock(),
                error=f"{type(e).__name__}: {e}",
                stage=stage,
            )
        finally:
            self._guard.release()
