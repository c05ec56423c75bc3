from __future__ import annotations
import asyncio
import logging
from typing import Callable, Dict

logger = logging.getLogger(__name__)


class AdvanceScheduler:
	"""Deferred callbacks keyed by session id; at most one pending per key."""

	def __init__(self) -> None:
		self._tasks: Dict[str, asyncio.Task] = {}

	def schedule(self, key: str, delay_ms: int, callback: Callable[[], None]) -> None:
		self.cancel(key)
		self._tasks[key] = asyncio.create_task(self._run(key, delay_ms, callback))

	async def _run(self, key: str, delay_ms: int, callback: Callable[[], None]) -> None:
		try:
			await asyncio.sleep(max(0, delay_ms) / 1000.0)
		except asyncio.CancelledError:
			return
		# Drop our own entry before the callback so it can schedule again
		if self._tasks.get(key) is asyncio.current_task():
			del self._tasks[key]
		try:
			callback()
		except Exception:
			logger.exception("scheduled advance for %s failed", key)

	def pending(self, key: str) -> bool:
		task = self._tasks.get(key)
		return task is not None and not task.done()

	def cancel(self, key: str) -> bool:
		task = self._tasks.pop(key, None)
		if task is None or task.done():
			return False
		task.cancel()
		return True

	async def aclose(self) -> None:
		tasks = list(self._tasks.values())
		self._tasks.clear()
		for task in tasks:
			task.cancel()
		if tasks:
			await asyncio.gather(*tasks, return_exceptions=True)


advance_scheduler = AdvanceScheduler()
