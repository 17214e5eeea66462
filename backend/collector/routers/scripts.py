from __future__ import annotations
from dataclasses import asdict
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from ..assignment import LevelAssignmentService
from ..deps import get_assignment, get_store
from ..users import UserStore

router = APIRouter(prefix="/scripts", tags=["scripts"])


class ScriptItem(BaseModel):
	level: int
	text: str
	external_index: int
	index_within_level: int
	total_in_level: int
	remaining_in_level: int


class NextScriptResponse(BaseModel):
	success: bool = True
	level: int
	version: int
	level_complete: bool
	total_in_level: int
	script: Optional[ScriptItem] = None
	message: Optional[str] = None


class ScriptBatchResponse(BaseModel):
	success: bool = True
	level: int
	version: int
	level_complete: bool
	total_in_level: int
	scripts: List[ScriptItem] = []
	batch_start_index: int
	batch_end_index: int
	has_more_in_level: bool
	remaining_in_level: int
	message: Optional[str] = None


class TotalScriptsResponse(BaseModel):
	success: bool = True
	total_scripts: int
	total_levels: int
	scripts_per_level: int


class ScriptRowResponse(BaseModel):
	success: bool = True
	has_more: bool
	text: Optional[str] = None
	row_index: int


def _complete_message(level: int) -> str:
	return f"Level {level} is complete!"


@router.get("/next", response_model=NextScriptResponse)
async def next_script(
	user_id: int = Query(...),
	level: int = Query(default=1, ge=1),
	store: UserStore = Depends(get_store),
	service: LevelAssignmentService = Depends(get_assignment),
):
	"""The script this user should read now, or a level-complete signal."""
	user = store.require(user_id)
	nxt = await service.get_next_prompt(user, level)
	return NextScriptResponse(
		level=nxt.level,
		version=nxt.version,
		level_complete=nxt.level_complete,
		total_in_level=nxt.total_in_level,
		script=ScriptItem(**asdict(nxt.prompt)) if nxt.prompt else None,
		message=_complete_message(level) if nxt.level_complete else None,
	)


@router.get("/batch", response_model=ScriptBatchResponse)
async def script_batch(
	user_id: int = Query(...),
	level: int = Query(default=1, ge=1),
	batch_size: int = Query(default=5, ge=1, le=50),
	store: UserStore = Depends(get_store),
	service: LevelAssignmentService = Depends(get_assignment),
):
	user = store.require(user_id)
	batch = await service.get_prompt_batch(user, level, batch_size)
	return ScriptBatchResponse(
		level=batch.level,
		version=batch.version,
		level_complete=batch.level_complete,
		total_in_level=batch.total_in_level,
		scripts=[ScriptItem(**asdict(item)) for item in batch.scripts],
		batch_start_index=batch.batch_start_index,
		batch_end_index=batch.batch_end_index,
		has_more_in_level=batch.has_more_in_level,
		remaining_in_level=batch.remaining_in_level,
		message=_complete_message(level) if batch.level_complete else None,
	)


@router.get("/total", response_model=TotalScriptsResponse)
async def total_scripts(service: LevelAssignmentService = Depends(get_assignment)):
	totals = await service.count_scripts()
	return TotalScriptsResponse(**asdict(totals))


@router.get("/row", response_model=ScriptRowResponse)
async def script_row(row: int = Query(default=1, ge=1), service: LevelAssignmentService = Depends(get_assignment)):
	text = await service.fetch_row(row)
	return ScriptRowResponse(has_more=text is not None, text=text, row_index=row)
