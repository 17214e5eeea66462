from __future__ import annotations
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ..deps import get_progress_engine
from ..progress import ProgressEngine, new_session_id

router = APIRouter(tags=["progress"])


class UserProgressResponse(BaseModel):
	success: bool = True
	user_id: int
	username: str
	current_level: int
	scripts_completed_in_level: int
	version: int
	session_id: str
	is_new_user: bool


class ProgressUpdateRequest(BaseModel):
	user_id: int
	# Sheet row of the script that was just recorded
	original_row_index: int = Field(ge=1)
	session_id: str = Field(min_length=1)
	expected_version: Optional[int] = None


class ProgressUpdateResponse(BaseModel):
	success: bool = True
	user_id: int
	current_level: int
	scripts_completed_in_level: int
	level_complete: bool
	version: int
	conflict: bool = False
	message: Optional[str] = None


class SessionCheckResponse(BaseModel):
	success: bool = True
	is_active: bool
	current_session_id: Optional[str] = None


@router.get("/progress", response_model=UserProgressResponse)
async def get_progress(
	username: str = Query(..., min_length=1),
	session_id: Optional[str] = Query(default=None),
	engine: ProgressEngine = Depends(get_progress_engine),
):
	"""Resolve (or create) the user and make this session the active one."""
	progress = engine.resolve_or_create_user(username, session_id or new_session_id())
	return UserProgressResponse(**asdict(progress))


@router.post("/progress", response_model=ProgressUpdateResponse)
async def update_progress(req: ProgressUpdateRequest, engine: ProgressEngine = Depends(get_progress_engine)):
	"""Count one completed recording; see ProgressEngine.record_completion."""
	result = engine.record_completion(req.user_id, req.original_row_index, req.session_id, req.expected_version)
	message = "Progress was updated by another session. Please refresh." if result.conflict else None
	return ProgressUpdateResponse(**asdict(result), message=message)


@router.get("/sessions/check", response_model=SessionCheckResponse)
async def check_session(
	user_id: int = Query(...),
	session_id: str = Query(..., min_length=1),
	engine: ProgressEngine = Depends(get_progress_engine),
):
	status = engine.check_session(user_id, session_id)
	return SessionCheckResponse(is_active=status.is_active, current_session_id=status.current_session_id)
