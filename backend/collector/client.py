from __future__ import annotations
import inspect
import logging
from typing import Any, Callable, Dict, Optional

import httpx

from .errors import SessionInvalidated
from .progress import new_session_id
from .session_monitor import SessionMonitor

logger = logging.getLogger(__name__)


class CollectorClient:
	"""Async client for the collector API, holding one contributor session.

	Mirrors what the recording front-end does: log in with a session id,
	fetch the next script, upload recordings, and poll ``/sessions/check`` in
	the background so a takeover from another device is noticed.
	"""

	def __init__(
		self,
		base_url: str,
		*,
		http: Optional[httpx.AsyncClient] = None,
		session_id: Optional[str] = None,
		check_interval: float = 5.0,
	) -> None:
		self._client = http or httpx.AsyncClient(base_url=base_url, timeout=30)
		self.session_id = session_id or new_session_id()
		self.check_interval = check_interval
		self.user_id: Optional[int] = None
		self.version: Optional[int] = None
		self.current_level = 1
		self.session_valid = True
		self._monitor: Optional[SessionMonitor] = None

	async def _json(self, resp: httpx.Response) -> Dict[str, Any]:
		try:
			data = resp.json()
		except ValueError:
			data = {}
		if resp.status_code >= 400:
			if data.get("error") == SessionInvalidated.code:
				await self._mark_invalidated()
				raise SessionInvalidated(
					data.get("detail") or "session invalidated",
					current_session_id=data.get("current_session_id"),
				)
			resp.raise_for_status()
		return data

	async def _mark_invalidated(self) -> None:
		self.session_valid = False
		await self.stop_watching()

	async def login(self, username: str) -> Dict[str, Any]:
		data = await self._json(
			await self._client.get("/progress", params={"username": username, "session_id": self.session_id})
		)
		self.user_id = data["user_id"]
		self.version = data["version"]
		self.current_level = data["current_level"]
		self.session_valid = True
		return data

	def _require_login(self) -> int:
		if self.user_id is None:
			raise RuntimeError("login() first")
		return self.user_id

	async def check_session(self) -> bool:
		user_id = self._require_login()
		data = await self._json(
			await self._client.get("/sessions/check", params={"user_id": user_id, "session_id": self.session_id})
		)
		return bool(data.get("is_active"))

	async def next_script(self, level: Optional[int] = None) -> Dict[str, Any]:
		user_id = self._require_login()
		data = await self._json(
			await self._client.get("/scripts/next", params={"user_id": user_id, "level": level or self.current_level})
		)
		self.version = data.get("version", self.version)
		return data

	async def record_completion(self, row_index: int) -> Dict[str, Any]:
		user_id = self._require_login()
		data = await self._json(
			await self._client.post(
				"/progress",
				json={
					"user_id": user_id,
					"original_row_index": row_index,
					"session_id": self.session_id,
					"expected_version": self.version,
				},
			)
		)
		self._apply_progress(data)
		return data

	async def upload(
		self,
		audio: bytes,
		*,
		row_index: int,
		script_text: str,
		username: str,
		mime_type: str = "audio/webm",
	) -> Dict[str, Any]:
		user_id = self._require_login()
		form = {
			"original_row_index": str(row_index),
			"script_text": script_text,
			"username": username,
			"mime_type": mime_type,
			"level": str(self.current_level),
			"user_id": str(user_id),
			"session_id": self.session_id,
		}
		if self.version is not None:
			form["expected_version"] = str(self.version)
		data = await self._json(
			await self._client.post("/uploads", data=form, files={"audio": ("recording", audio, mime_type)})
		)
		if data.get("progress_error") == SessionInvalidated.code:
			await self._mark_invalidated()
		elif data.get("progress"):
			self._apply_progress(data["progress"])
		return data

	def _apply_progress(self, data: Dict[str, Any]) -> None:
		if data.get("conflict"):
			logger.warning("Progress was updated by another session; re-sync before continuing")
		if "version" in data:
			self.version = data["version"]
		if "current_level" in data:
			self.current_level = data["current_level"]

	def watch_session(self, on_invalidated: Optional[Callable[[], Any]] = None) -> SessionMonitor:
		"""Start polling the session; returns the running monitor."""
		self._require_login()

		async def _check() -> bool:
			return await self.check_session()

		async def _invalidated() -> None:
			self.session_valid = False
			if on_invalidated is not None:
				result = on_invalidated()
				if inspect.isawaitable(result):
					await result

		if self._monitor is not None and self._monitor.running:
			return self._monitor
		self._monitor = SessionMonitor(_check, self.check_interval, _invalidated)
		self._monitor.start()
		return self._monitor

	async def stop_watching(self) -> None:
		if self._monitor is not None:
			await self._monitor.stop()

	async def aclose(self) -> None:
		await self.stop_watching()
		await self._client.aclose()
