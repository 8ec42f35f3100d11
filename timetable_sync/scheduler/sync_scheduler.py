import datetime
from typing import Callable, Optional

from apscheduler.events import EVENT_JOB_ERROR, JobExecutionEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from timetable_sync.utils.logging_config import get_sync_logger
from timetable_sync.utils.time_utils import utc_now

logger = get_sync_logger()


def init_scheduler() -> AsyncIOScheduler:
    """
    Create the scheduler that runs the sync engine's one-shot timers.
    Must be started from inside the running event loop.
    """
    scheduler = AsyncIOScheduler(
        timezone=datetime.timezone.utc,
        job_defaults={
            'max_instances': 1,
            'misfire_grace_time': None,
            'coalesce': True
        }
    )

    def job_listener(event: JobExecutionEvent):
        logger.error(f"Job {event.job_id} crashed: {event.exception}", exc_info=event.exception)

    scheduler.add_listener(job_listener, EVENT_JOB_ERROR)
    return scheduler


class SyncScheduler:
    """One-shot delayed jobs keyed by id; arming an id again replaces the pending run."""

    def __init__(self, scheduler: Optional[AsyncIOScheduler] = None):
        self.scheduler = scheduler or init_scheduler()

    def start(self):
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Sync scheduler started")

    def arm(self, job_id: str, delay: float, func: Callable, *args):
        run_date = utc_now() + datetime.timedelta(seconds=delay)
        self.scheduler.add_job(
            func,
            trigger=DateTrigger(run_date=run_date),
            args=list(args),
            id=job_id,
            replace_existing=True,
        )
        logger.debug(f"Armed {job_id} in {delay:.2f}s")

    def cancel(self, job_id: str):
        if self.scheduler.get_job(job_id) is not None:
            self.scheduler.remove_job(job_id)

    def is_armed(self, job_id: str) -> bool:
        return self.scheduler.get_job(job_id) is not None

    def shutdown(self):
        if self.scheduler.running:
            self.scheduler.remove_all_jobs()
            self.scheduler.shutdown(wait=False)
            logger.info("Sync scheduler stopped")
