"""Wall-clock anchored recurring trigger."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable
from zoneinfo import ZoneInfo

from croniter import croniter

from ..config import ScheduleConfig

logger = logging.getLogger(__name__)

# Sleep in bounded chunks so a wall-clock jump is noticed within the hour.
MAX_SLEEP_SECONDS = 3600.0


def cron_expression(config: ScheduleConfig) -> str:
    """Cron expression for ``config``; an explicit ``cron`` wins over run_at."""
    if config.cron:
        return config.cron
    hour, minute = (int(part) for part in config.run_at.split(":"))
    hours = sorted((hour + step) % 24 for step in range(0, 24, config.interval_hours))
    return f"{minute} {','.join(str(h) for h in hours)} * * *"


class DailyScheduler:
    """Fires ``job`` on a cron schedule in the configured time zone.

    The only state is the next fire time. Ticks missed while the process was
    paused are not replayed; after each job the next *future* tick is chosen.
    The job is awaited, so two invocations never overlap.
    """

    def __init__(
        self,
        config: ScheduleConfig,
        job: Callable[[], Awaitable[Any]],
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._job = job
        self._tz = ZoneInfo(config.timezone)
        self.expression = cron_expression(config)
        self._clock = clock or (lambda: datetime.now(self._tz))
        self._sleep = sleep

    def next_fire_time(self, now: datetime) -> datetime:
        """First scheduled instant strictly after ``now``."""
        return croniter(self.expression, now.astimezone(self._tz)).get_next(datetime)

    async def run(self, max_ticks: int | None = None) -> None:
        """Fire the job on schedule until cancelled (or ``max_ticks`` fires)."""
        fired = 0
        while max_ticks is None or fired < max_ticks:
            fire_at = self.next_fire_time(self._clock())
            logger.info("Next reinvestment scheduled for %s", fire_at.isoformat())
            await self._wait_until(fire_at)

            try:
                await self._job()
            except Exception as e:
                logger.error("Scheduled job failed: %s", e)
            fired += 1

    async def _wait_until(self, fire_at: datetime) -> None:
        while True:
            remaining = (fire_at - self._clock()).total_seconds()
            if remaining <= 0:
                return
            await self._sleep(min(remaining, MAX_SLEEP_SECONDS))
