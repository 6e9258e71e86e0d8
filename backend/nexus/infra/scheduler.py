"""APScheduler wrapper for periodic maintenance jobs."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)


class JobScheduler:
	"""Minimal wrapper around AsyncIOScheduler."""

	def __init__(self) -> None:
		self._scheduler = AsyncIOScheduler(timezone="UTC")
		self._started = False

	def start(self) -> None:
		if not self._started:
			self._scheduler.start()
			self._started = True

	def shutdown(self) -> None:
		if self._started:
			self._scheduler.shutdown(wait=False)
			self._started = False

	def schedule_hourly(self, job_id: str, func: Callable[[], Awaitable[object]], *, hours: int = 1) -> None:
		trigger = IntervalTrigger(hours=hours)
		self._scheduler.add_job(func, trigger=trigger, id=job_id, replace_existing=True, max_instances=1, coalesce=True)
		logger.info("job scheduled", extra={"job": job_id, "interval_hours": hours})

	def job_ids(self) -> list[str]:
		return [job.id for job in self._scheduler.get_jobs()]


__all__ = ["JobScheduler"]
