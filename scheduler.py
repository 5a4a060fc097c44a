import logging
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from config import get_settings
from database import session_scope
from recurrence import IncomeScheduler
from repository import SqlLedgerRepository


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class SchedulerManager:
    def __init__(self) -> None:
        self.settings = get_settings()
        self.scheduler = BackgroundScheduler(timezone=self.settings.timezone)

    def _run_job(self, source: str = "manual") -> None:
        logger.info(f"scheduler_run: source={source}")
        with session_scope() as session:
            result = IncomeScheduler(SqlLedgerRepository(session)).run_daily_check()
        logger.info(
            f"scheduler_run: source={source} postings_created={len(result.created)} "
            f"sources_failed={len(result.errors)}"
        )

    def start(self) -> None:
        self._run_job("startup")

        hour = self.settings.daily_run_hour
        minute = self.settings.daily_run_minute
        trigger = CronTrigger(hour=hour, minute=minute)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=[f"daily_{hour:02d}:{minute:02d}"],
            id="income_daily",
            replace_existing=True,
            misfire_grace_time=3600,
        )

        trigger = IntervalTrigger(hours=self.settings.safety_net_hours)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=["safety_net"],
            id="income_safety_net",
            replace_existing=True,
            misfire_grace_time=300,
        )

        self.scheduler.start()
        logger.info(
            f"Scheduler started with daily {hour:02d}:{minute:02d} run and "
            f"{self.settings.safety_net_hours}h safety net"
        )

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
