from __future__ import annotations
from dataclasses import asdict
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import BaseModel

from ..deps import get_uploads
from ..uploads import UploadCoordinator, UploadRequest

router = APIRouter(prefix="/uploads", tags=["uploads"])


class UploadResponse(BaseModel):
	success: bool = True
	file_id: str
	file_name: str
	web_view_link: Optional[str] = None
	size: Optional[int] = None
	mime_type: str
	recording_id: Optional[int] = None
	recording_saved: bool
	progress: Optional[Dict[str, Any]] = None
	progress_error: Optional[str] = None
	progress_detail: Optional[str] = None


@router.post("", response_model=UploadResponse)
async def upload_audio(
	audio: UploadFile = File(...),
	original_row_index: int = Form(...),
	script_text: str = Form(...),
	username: str = Form(default="default_user"),
	mime_type: Optional[str] = Form(default=None),
	level: Optional[int] = Form(default=None),
	user_id: Optional[int] = Form(default=None),
	session_id: Optional[str] = Form(default=None),
	expected_version: Optional[int] = Form(default=None),
	coordinator: UploadCoordinator = Depends(get_uploads),
):
	"""Store a recording in Drive, log it, then advance the user's progress.

	A stored recording is always reported as a success. If the progress step
	was rejected (for example SESSION_INVALIDATED), the reason is returned in
	``progress_error`` next to the stored file.
	"""
	content = await audio.read()
	result = await coordinator.handle_upload(
		UploadRequest(
			audio=content,
			script_id=original_row_index,
			script_text=script_text,
			username=username,
			mime_type=mime_type,
			file_content_type=audio.content_type,
			level=level,
			user_id=user_id,
			session_id=session_id,
			expected_version=expected_version,
		)
	)
	return UploadResponse(
		file_id=result.stored.file_id,
		file_name=result.stored.file_name,
		web_view_link=result.stored.web_view_link,
		size=result.stored.size,
		mime_type=result.mime_type,
		recording_id=result.recording_id,
		recording_saved=result.recording_saved,
		progress=asdict(result.progress) if result.progress else None,
		progress_error=result.progress_error,
		progress_detail=result.progress_detail,
	)
