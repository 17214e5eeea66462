from __future__ import annotations
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from .errors import CollectorError, EmptyUpload, MissingSession
from .google_client import ObjectStore, StoredObject
from .progress import CompletionResult, ProgressEngine
from .users import UserStore

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "audio/webm"


@dataclass
class UploadRequest:
	audio: bytes
	script_id: int
	script_text: str
	username: str
	mime_type: Optional[str] = None
	file_content_type: Optional[str] = None
	level: Optional[int] = None
	user_id: Optional[int] = None
	session_id: Optional[str] = None
	expected_version: Optional[int] = None


@dataclass
class UploadResult:
	stored: StoredObject
	mime_type: str
	recording_id: Optional[int] = None
	recording_saved: bool = False
	progress: Optional[CompletionResult] = None
	progress_error: Optional[str] = None
	progress_detail: Optional[str] = None


def extension_for(mime_type: str) -> str:
	mime = (mime_type or "").lower()
	if "webm" in mime:
		return "webm"
	if "ogg" in mime:
		return "ogg"
	if "mp4" in mime or "m4a" in mime:
		return "m4a"
	if "wav" in mime:
		return "wav"
	if "mp3" in mime:
		return "mp3"
	return "webm"


def recording_file_name(mime_type: str, now: Optional[datetime] = None) -> str:
	now = now or datetime.now(timezone.utc)
	stamp = now.strftime("%Y-%m-%dT%H-%M-%S-") + f"{now.microsecond // 1000:03d}Z"
	return f"audio-recording-{stamp}-{uuid.uuid4().hex[:8]}.{extension_for(mime_type)}"


class UploadCoordinator:
	"""Store audio, record it, then advance progress.

	The three steps are not atomic. Once the blob is stored the upload counts
	as successful: a failed recordings insert or a rejected progress update is
	reported alongside the stored file, never instead of it.
	"""

	def __init__(self, store: UserStore, objects: ObjectStore, engine: ProgressEngine) -> None:
		self.store = store
		self.objects = objects
		self.engine = engine

	async def handle_upload(self, req: UploadRequest) -> UploadResult:
		if not req.audio:
			raise EmptyUpload("No audio file provided")
		mime_type = req.mime_type or req.file_content_type or DEFAULT_MIME_TYPE
		name = recording_file_name(mime_type)
		stored = await self.objects.upload(name, req.audio, mime_type)
		logger.info("Uploaded %s (%s, %s bytes) as file %s", stored.file_name, mime_type, stored.size, stored.file_id)
		result = UploadResult(stored=stored, mime_type=mime_type)

		try:
			row = self.store.add_recording(
				script_id=req.script_id,
				script_text=req.script_text,
				level=req.level,
				username=(req.username or "").strip().lower() or "default_user",
				user_id=req.user_id,
				file_id=stored.file_id,
				file_name=stored.file_name,
				web_view_link=stored.web_view_link,
				mime_type=mime_type,
				size=stored.size,
			)
			result.recording_id = row.id
			result.recording_saved = True
		except CollectorError:
			logger.exception("Failed to save recording row for file %s", stored.file_id)

		if req.user_id is not None:
			try:
				if not req.session_id:
					raise MissingSession(f"session_id is required to advance progress for user {req.user_id}")
				result.progress = self.engine.record_completion(
					req.user_id,
					req.script_id,
					req.session_id,
					req.expected_version,
				)
			except CollectorError as e:
				logger.warning("Progress not advanced after upload %s: %s", stored.file_id, e.code)
				result.progress_error = e.code
				result.progress_detail = e.message
		return result
