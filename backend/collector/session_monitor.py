from __future__ import annotations
import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class SessionMonitor:
	"""Periodically re-checks that a session is still the active one.

	The loop runs as an asyncio task between :meth:`start` and :meth:`stop`.
	The first inactive answer fires ``on_invalidated`` and ends the monitor for
	good: a replaced session never becomes active again, the caller has to log
	in afresh. Errors raised by ``check`` are logged and the next tick retries.
	"""

	def __init__(
		self,
		check: Callable[[], Awaitable[bool]],
		interval: float,
		on_invalidated: Optional[Callable[[], Any]] = None,
	) -> None:
		if interval <= 0:
			raise ValueError("interval must be positive")
		self._check = check
		self.interval = interval
		self._on_invalidated = on_invalidated
		self._task: Optional[asyncio.Task] = None
		self.invalidated = False
		self.checks = 0

	@property
	def running(self) -> bool:
		return self._task is not None and not self._task.done()

	def start(self) -> None:
		if self.invalidated:
			raise RuntimeError("session was invalidated; start a new session instead")
		if self.running:
			return
		self._task = asyncio.create_task(self._run())

	async def stop(self) -> None:
		task, self._task = self._task, None
		if task is None or task is asyncio.current_task():
			return
		task.cancel()
		try:
			await task
		except asyncio.CancelledError:
			pass

	async def _run(self) -> None:
		while True:
			await asyncio.sleep(self.interval)
			try:
				active = await self._check()
			except Exception:
				logger.warning("Session check failed; retrying in %ss", self.interval, exc_info=True)
				continue
			finally:
				self.checks += 1
			if not active:
				self.invalidated = True
				logger.warning("Session replaced by another device/tab; stopping session checks")
				if self._on_invalidated is not None:
					result = self._on_invalidated()
					if inspect.isawaitable(result):
						await result
				return
