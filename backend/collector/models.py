from __future__ import annotations
from datetime import datetime
from sqlalchemy import JSON, Column, String, DateTime, Integer, Text
from .db import Base


class User(Base):
	__tablename__ = "users"
	id = Column(Integer, primary_key=True, autoincrement=True)
	# Stored trimmed and lowercased; identity is case-insensitive
	username = Column(String(128), unique=True, index=True, nullable=False)
	current_level = Column(Integer, default=1, nullable=False)
	scripts_completed_in_level = Column(Integer, default=0, nullable=False)
	# Shuffled sheet row indices for current_level; NULL until first requested
	level_script_order = Column(JSON(none_as_null=True), nullable=True)
	session_id = Column(String(128), nullable=True)
	last_activity = Column(DateTime, default=datetime.utcnow, nullable=True)
	version = Column(Integer, default=0, nullable=False)
	# Deprecated flat counter, written as a mirror of the last submitted row and never read
	last_script_id = Column(Integer, default=0, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class Recording(Base):
	__tablename__ = "recordings"
	id = Column(Integer, primary_key=True, autoincrement=True)
	# Sheet row index of the script that was read aloud
	script_id = Column(Integer, nullable=False, index=True)
	script_text = Column(Text, nullable=False)
	level = Column(Integer, nullable=True)
	username = Column(String(128), nullable=False, index=True)
	user_id = Column(Integer, nullable=True)
	file_id = Column(String(256), nullable=False)
	file_name = Column(String(256), nullable=False)
	web_view_link = Column(Text, nullable=True)
	mime_type = Column(String(128), nullable=True)
	size = Column(Integer, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
