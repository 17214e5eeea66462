from typing import Dict, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from collector import models  # noqa: F401  (registers tables on Base)
from collector.db import Base
from collector.google_client import StoredObject
from collector.settings import Settings


class FakeSheet:
	"""In-memory stand-in for the Sheets prompt source (row -> text)."""

	def __init__(self, rows: Dict[int, str]) -> None:
		self.rows = dict(rows)
		self.range_calls: List[tuple] = []
		self.row_calls: List[int] = []

	async def fetch_range(self, start: int, end: int) -> List[str]:
		self.range_calls.append((start, end))
		cells = [self.rows.get(row, "") for row in range(start, end + 1)]
		# The Sheets API leaves out trailing empty rows
		while cells and not cells[-1]:
			cells.pop()
		return cells

	async def fetch_row(self, row: int) -> Optional[str]:
		self.row_calls.append(row)
		return self.rows.get(row) or None


class FakeDrive:
	def __init__(self) -> None:
		self.uploads: List[dict] = []

	async def upload(self, name: str, content: bytes, mime_type: str) -> StoredObject:
		self.uploads.append({"name": name, "content": content, "mime_type": mime_type})
		n = len(self.uploads)
		return StoredObject(
			file_id=f"file-{n}",
			file_name=name,
			web_view_link=f"https://drive.example/file-{n}",
			size=len(content),
		)


@pytest.fixture
def db_engine():
	eng = create_engine(
		"sqlite://",
		connect_args={"check_same_thread": False},
		poolclass=StaticPool,
		future=True,
	)
	Base.metadata.create_all(eng)
	yield eng
	eng.dispose()


@pytest.fixture
def session_factory(db_engine):
	return sessionmaker(bind=db_engine, autocommit=False, autoflush=False, future=True)


@pytest.fixture
def db_session(session_factory):
	session = session_factory()
	yield session
	session.close()


@pytest.fixture
def cfg():
	return Settings(
		scripts_per_level=3,
		max_script_rows=100,
		google_sheets_id=None,
		google_sheets_tab=None,
		google_drive_folder_id=None,
		google_client_id=None,
		google_client_secret=None,
		google_refresh_token=None,
		strict_script_check=False,
	)


@pytest.fixture
def sheet():
	# Level 1 = rows 1-3, level 2 = rows 4-6 with scripts_per_level=3
	return FakeSheet({
		1: "The quick brown fox.",
		2: "She sells sea shells.",
		3: "Peter Piper picked peppers.",
		4: "Row four.",
		5: "Row five.",
		6: "Row six.",
	})


@pytest.fixture
def drive():
	return FakeDrive()


@pytest.fixture
def app(session_factory, sheet, drive, cfg):
	"""The API wired to the in-memory database and fake Google collaborators."""
	from collector import deps
	from collector.db import get_db
	from collector.main import app as api

	def override_db():
		db = session_factory()
		try:
			yield db
		finally:
			db.close()

	api.dependency_overrides[get_db] = override_db
	api.dependency_overrides[deps.get_settings] = lambda: cfg
	api.dependency_overrides[deps.get_prompt_source] = lambda: sheet
	api.dependency_overrides[deps.get_object_store] = lambda: drive
	yield api
	api.dependency_overrides.clear()
