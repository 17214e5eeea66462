from __future__ import annotations
import json
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol
from urllib.parse import quote

import httpx

from .errors import ConfigurationMissing, ExternalStoreFailure
from .settings import Settings

logger = logging.getLogger(__name__)

TOKEN_URL = "https://oauth2.googleapis.com/token"
SHEETS_BASE_URL = "https://sheets.googleapis.com/v4/spreadsheets"
DRIVE_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"

# Refresh the cached access token this many seconds before Google expires it
_TOKEN_SKEW_SECONDS = 60


@dataclass
class StoredObject:
	file_id: str
	file_name: str
	web_view_link: Optional[str] = None
	size: Optional[int] = None


class PromptSource(Protocol):
	async def fetch_range(self, start: int, end: int) -> List[str]:
		"""Column A cells for rows ``start..end`` (1-based, inclusive), in order.

		Blank rows come back as ``""``; trailing blank rows may be missing.
		"""
		...

	async def fetch_row(self, row: int) -> Optional[str]:
		...


class ObjectStore(Protocol):
	async def upload(self, name: str, content: bytes, mime_type: str) -> StoredObject:
		...


class GoogleClient:
	"""Shared OAuth2 (refresh-token grant) and HTTP plumbing for Sheets and Drive."""

	def __init__(self, cfg: Settings, *, http: Optional[httpx.AsyncClient] = None) -> None:
		self.cfg = cfg
		self._client = http or httpx.AsyncClient(timeout=30)
		self._access_token: Optional[str] = None
		self._expires_at: float = 0.0

	async def access_token(self) -> str:
		if self._access_token and time.monotonic() < self._expires_at:
			return self._access_token
		if not self.cfg.google_credentials_configured:
			raise ConfigurationMissing("Google credentials not configured")
		data = {
			"client_id": self.cfg.google_client_id,
			"client_secret": self.cfg.google_client_secret,
			"refresh_token": self.cfg.google_refresh_token,
			"grant_type": "refresh_token",
		}
		payload = await self.request("oauth", "POST", TOKEN_URL, data=data, authorized=False)
		token = payload.get("access_token")
		if not token:
			raise ExternalStoreFailure("Failed to get access token", collaborator="oauth")
		expires_in = int(payload.get("expires_in") or 3600)
		self._access_token = token
		self._expires_at = time.monotonic() + max(0, expires_in - _TOKEN_SKEW_SECONDS)
		return token

	async def request(
		self,
		collaborator: str,
		method: str,
		url: str,
		*,
		authorized: bool = True,
		headers: Optional[Dict[str, str]] = None,
		**kwargs: Any,
	) -> Dict[str, Any]:
		req_headers: Dict[str, str] = dict(headers or {})
		if authorized:
			req_headers["Authorization"] = f"Bearer {await self.access_token()}"
		try:
			resp = await self._client.request(method, url, headers=req_headers, **kwargs)
		except httpx.HTTPError as e:
			raise ExternalStoreFailure(f"{collaborator} request failed: {e}", collaborator=collaborator) from e
		if resp.status_code >= 400:
			raise ExternalStoreFailure(
				f"{collaborator} returned HTTP {resp.status_code}: {resp.text[:300]}",
				collaborator=collaborator,
				status=resp.status_code,
			)
		try:
			return resp.json()
		except ValueError as e:
			raise ExternalStoreFailure(f"{collaborator} returned invalid JSON", collaborator=collaborator) from e

	async def aclose(self) -> None:
		await self._client.aclose()


class SheetsPromptSource:
	"""Scripts live in column A of one tab, one script per row."""

	def __init__(self, google: GoogleClient) -> None:
		self.google = google

	def _range_url(self, start: int, end: int) -> str:
		cfg = self.google.cfg
		if not cfg.google_sheets_id or not cfg.google_sheets_tab:
			raise ConfigurationMissing("Google Sheets ID or Tab name not configured")
		tab = cfg.google_sheets_tab.replace("'", "''")
		a1 = f"'{tab}'!A{start}:A{end}"
		return f"{SHEETS_BASE_URL}/{cfg.google_sheets_id}/values/{quote(a1, safe='')}"

	async def fetch_range(self, start: int, end: int) -> List[str]:
		logger.debug("Fetching sheet rows %d-%d", start, end)
		data = await self.google.request("sheets", "GET", self._range_url(start, end))
		values = data.get("values") or []
		return [str(row[0]) if row else "" for row in values]

	async def fetch_row(self, row: int) -> Optional[str]:
		cells = await self.fetch_range(row, row)
		if not cells or not cells[0]:
			return None
		return cells[0]


class DriveObjectStore:
	def __init__(self, google: GoogleClient) -> None:
		self.google = google

	async def upload(self, name: str, content: bytes, mime_type: str) -> StoredObject:
		folder_id = self.google.cfg.google_drive_folder_id
		if not folder_id:
			raise ConfigurationMissing("Google Drive folder not configured")
		boundary = uuid.uuid4().hex
		metadata = json.dumps({"name": name, "parents": [folder_id]})
		# multipart/related: JSON metadata part followed by the raw media part
		body = (
			f"--{boundary}\r\n"
			"Content-Type: application/json; charset=UTF-8\r\n\r\n"
			f"{metadata}\r\n"
			f"--{boundary}\r\n"
			f"Content-Type: {mime_type}\r\n\r\n"
		).encode("utf-8") + content + f"\r\n--{boundary}--\r\n".encode("utf-8")
		data = await self.google.request(
			"drive",
			"POST",
			DRIVE_UPLOAD_URL,
			params={"uploadType": "multipart", "fields": "id,name,webViewLink,size"},
			headers={"Content-Type": f"multipart/related; boundary={boundary}"},
			content=body,
		)
		file_id = data.get("id")
		if not file_id:
			raise ExternalStoreFailure("Drive response is missing the file id", collaborator="drive")
		size = data.get("size")
		return StoredObject(
			file_id=file_id,
			file_name=data.get("name") or name,
			web_view_link=data.get("webViewLink"),
			size=int(size) if size is not None else len(content),
		)
