"""
Reconciliation Scheduler
Owns the background timers that drive the minute tick and the daily reset
"""

import logging
from typing import Any, Dict, Optional
from datetime import datetime, timedelta

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from config import settings, reconciliation_config
from services.reconciliation_service import ReconciliationService, ResetResult, TickResult
from tools.clock import ReferenceClock, parse_time_of_day


logger = logging.getLogger(__name__)


class ReconciliationScheduler:
    """
    Long-lived driver for the reconciliation passes.

    Construct once at process start, call start(), and shutdown() on exit.
    Both jobs read the current instant from the injected clock when they
    fire, so timer drift never shifts the instant being reconciled.
    """

    def __init__(
        self,
        service: ReconciliationService,
        clock: Optional[ReferenceClock] = None,
        tick_interval_seconds: Optional[int] = None,
        daily_reset_time: Optional[str] = None
    ):
        self.service = service
        self.clock = clock or service.clock
        self.tick_interval_seconds = tick_interval_seconds or settings.MINUTE_TICK_INTERVAL_SECONDS
        self.daily_reset_time = parse_time_of_day(daily_reset_time or settings.DAILY_RESET_TIME)

        self._scheduler: Optional[BackgroundScheduler] = None
        self.last_tick: Optional[TickResult] = None
        self.last_reset: Optional[ResetResult] = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def _first_tick_at(self) -> datetime:
        """Next whole minute, so ticks land near the start of each minute"""
        now = self.clock.now()
        return now.replace(second=0, microsecond=0) + timedelta(minutes=1)

    def start(self):
        if self.running:
            logger.warning("Reconciliation scheduler already running")
            return

        hour, minute = (int(part) for part in self.daily_reset_time.split(":"))

        scheduler = BackgroundScheduler(timezone=self.clock.tz)
        scheduler.add_job(
            self.minute_tick,
            IntervalTrigger(
                seconds=self.tick_interval_seconds,
                start_date=self._first_tick_at(),
                timezone=self.clock.tz
            ),
            id=reconciliation_config.MINUTE_TICK_JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
        scheduler.add_job(
            self.daily_reset,
            CronTrigger(hour=hour, minute=minute, timezone=self.clock.tz),
            id=reconciliation_config.DAILY_RESET_JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
        scheduler.start()
        self._scheduler = scheduler

        logger.info(
            f"Reconciliation scheduler started: tick every {self.tick_interval_seconds}s, "
            f"daily reset at {self.daily_reset_time} {self.clock.timezone_name}"
        )

    def shutdown(self, wait: bool = False):
        if self._scheduler is None:
            return
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
        self._scheduler = None
        logger.info("Reconciliation scheduler stopped")

    def get_jobs(self) -> Dict[str, Any]:
        """Registered job ids mapped to their next run time"""
        if self._scheduler is None:
            return {}
        return {job.id: job.next_run_time for job in self._scheduler.get_jobs()}

    def minute_tick(self) -> Optional[TickResult]:
        now = self.clock.now()
        try:
            self.last_tick = self.service.run_minute_tick(now)
        except Exception as e:
            logger.error(f"Minute tick at {now.isoformat()} failed: {e}", exc_info=True)
            return None
        return self.last_tick

    def daily_reset(self) -> Optional[ResetResult]:
        now = self.clock.now()
        logger.info(f"Daily reset triggered at {now.isoformat()}")
        try:
            self.last_reset = self.service.run_daily_reset(now)
        except Exception as e:
            logger.error(f"Daily reset at {now.isoformat()} failed: {e}", exc_info=True)
            return None
        return self.last_reset
