"""Time source and single-deadline timer used by the reset loop."""

import logging
from datetime import date, datetime
from typing import Callable, Optional, Protocol

from apscheduler.jobstores.base import JobLookupError

from brainguard.utils.time import to_epoch_ms

logger = logging.getLogger(__name__)


class Clock(Protocol):
    def now(self) -> datetime:
        """Current local wall-clock time (naive)."""


class SystemClock:
    def now(self) -> datetime:
        return datetime.now()


def today(clock: Clock) -> date:
    return clock.now().date()


def now_ms(clock: Clock) -> int:
    return to_epoch_ms(clock.now())


class DeadlineTimer:
    """One pending one-shot deadline on an APScheduler scheduler.

    Arming always removes the previous job first, so at most one deadline is
    pending at a time.
    """

    def __init__(self, scheduler, job_id: str):
        self._scheduler = scheduler
        self._job_id = job_id
        self.deadline: Optional[datetime] = None

    @property
    def pending(self) -> bool:
        return self.deadline is not None

    def arm(self, run_at: datetime, callback: Callable[[], None]) -> None:
        self.cancel()
        self._scheduler.add_job(
            callback,
            "date",
            run_date=run_at,
            id=self._job_id,
            replace_existing=True,
            misfire_grace_time=None,
        )
        self.deadline = run_at
        logger.debug("Deadline %s armed for %s", self._job_id, run_at.isoformat())

    def cancel(self) -> None:
        if self.deadline is None:
            return
        try:
            self._scheduler.remove_job(self._job_id)
        except JobLookupError:
            # 이미 실행되어 사라진 job
            pass
        self.deadline = None

    def fired(self) -> None:
        """Mark the deadline consumed; called from inside the callback."""
        self.deadline = None
