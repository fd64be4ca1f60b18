"""Cron-driven cache warm-up for ``RUN_MODE=scheduled``."""
import logging
import time
from datetime import datetime
from typing import Callable, Optional

from apscheduler.job import Job
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

WARM_UP_JOB_ID = "cache-warm-up"


class WarmUpScheduler:
    """
    Refills the post and media caches on a cron schedule.

    The first warm-up runs at start-up so a freshly started process does not
    wait a whole period with cold caches.
    """

    def __init__(
        self,
        cron_expr: str,
        warm: Callable[[], None],
        logger: logging.Logger,
        scheduler: Optional[BaseScheduler] = None,
    ):
        self.cron_expr = cron_expr
        self.trigger = CronTrigger.from_crontab(cron_expr)
        self.warm = warm
        self.logger = logger
        self.scheduler = scheduler or BlockingScheduler()
        self.succeeded = 0
        self.failed = 0

    def schedule(self) -> Job:
        # a slow data store must not pile up overlapping warm-ups
        return self.scheduler.add_job(
            self.run_once,
            self.trigger,
            id=WARM_UP_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(),
        )

    def run_once(self) -> bool:
        started = time.monotonic()
        try:
            self.warm()
        except Exception as exc:  # noqa: BLE001
            self.failed += 1
            self.logger.exception("Cache warm-up failed (%s failures so far): %s", self.failed, exc)
            return False
        self.succeeded += 1
        self.logger.info("Cache warm-up done in %.2fs", time.monotonic() - started)
        return True

    def start(self) -> None:
        self.schedule()
        self.logger.info("Warming caches on cron %s", self.cron_expr)
        try:
            self.scheduler.start()
        except (KeyboardInterrupt, SystemExit):
            self.logger.info(
                "Warm-up scheduler stopped after %s successful and %s failed runs", self.succeeded, self.failed
            )
