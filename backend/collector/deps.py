from __future__ import annotations
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from .assignment import LevelAssignmentService
from .db import get_db
from .google_client import DriveObjectStore, GoogleClient, ObjectStore, PromptSource, SheetsPromptSource
from .progress import ProgressEngine
from .settings import Settings, settings
from .uploads import UploadCoordinator
from .users import UserStore


def get_settings() -> Settings:
	return settings


async def get_google(request: Request, cfg: Settings = Depends(get_settings)) -> GoogleClient:
	"""Process-wide client kept on ``app.state``; closed by the shutdown hook."""
	google = getattr(request.app.state, "google", None)
	if google is None:
		google = GoogleClient(cfg)
		request.app.state.google = google
	return google


def get_prompt_source(google: GoogleClient = Depends(get_google)) -> PromptSource:
	return SheetsPromptSource(google)


def get_object_store(google: GoogleClient = Depends(get_google)) -> ObjectStore:
	return DriveObjectStore(google)


def get_store(db: Session = Depends(get_db)) -> UserStore:
	return UserStore(db)


def get_progress_engine(
	store: UserStore = Depends(get_store),
	cfg: Settings = Depends(get_settings),
) -> ProgressEngine:
	return ProgressEngine(store, cfg)


def get_assignment(
	store: UserStore = Depends(get_store),
	source: PromptSource = Depends(get_prompt_source),
	cfg: Settings = Depends(get_settings),
) -> LevelAssignmentService:
	return LevelAssignmentService(store, source, cfg)


def get_uploads(
	store: UserStore = Depends(get_store),
	objects: ObjectStore = Depends(get_object_store),
	engine: ProgressEngine = Depends(get_progress_engine),
) -> UploadCoordinator:
	return UploadCoordinator(store, objects, engine)
