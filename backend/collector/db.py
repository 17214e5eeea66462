from __future__ import annotations
import logging

from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from .settings import settings


logger = logging.getLogger(__name__)

DATABASE_URL = settings.database_url or "sqlite:///./app.db"

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=_connect_args, future=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
Base = declarative_base()


def get_db():
	db = SessionLocal()
	try:
		yield db
	finally:
		db.close()


# Columns of the leveled progress scheme, added in place to users tables
# created before levels existed (those only carry last_script_id).
_LEVEL_COLUMNS = {
	"current_level": "INTEGER DEFAULT 1 NOT NULL",
	"scripts_completed_in_level": "INTEGER DEFAULT 0 NOT NULL",
	"level_script_order": "JSON",
	"session_id": "VARCHAR(128)",
	"last_activity": "DATETIME",
	"version": "INTEGER DEFAULT 0 NOT NULL",
	"last_script_id": "INTEGER DEFAULT 0 NOT NULL",
}


# Best-effort lightweight migrations for development (SQLite-friendly)
def ensure_schema(bind: Engine | None = None) -> list[str]:
	bind = bind or engine
	added: list[str] = []
	try:
		inspector = inspect(bind)
		tables = set(inspector.get_table_names())
	except Exception:
		logger.warning("Schema inspection failed; skipping migrations", exc_info=True)
		return added
	if "users" in tables:
		cols = {c["name"] for c in inspector.get_columns("users")}
		with bind.begin() as conn:
			for name, ddl in _LEVEL_COLUMNS.items():
				if name not in cols:
					conn.exec_driver_sql(f"ALTER TABLE users ADD COLUMN {name} {ddl}")
					added.append(name)
	if added:
		logger.info("Migrated users table, added columns: %s", ", ".join(added))
	return added
