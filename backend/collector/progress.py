from __future__ import annotations
import logging
import secrets
import string
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .errors import ExternalStoreFailure, ScriptMismatch, SessionInvalidated
from .models import User
from .settings import Settings
from .users import UserStore, normalize_username

logger = logging.getLogger(__name__)

_SESSION_ALPHABET = string.ascii_lowercase + string.digits


def new_session_id() -> str:
	"""Opaque token of the form session_<epoch ms>_<13 random chars>."""
	suffix = "".join(secrets.choice(_SESSION_ALPHABET) for _ in range(13))
	return f"session_{int(time.time() * 1000)}_{suffix}"


@dataclass
class UserProgress:
	user_id: int
	username: str
	current_level: int
	scripts_completed_in_level: int
	version: int
	session_id: str
	is_new_user: bool


@dataclass
class SessionStatus:
	is_active: bool
	current_session_id: Optional[str]


@dataclass
class CompletionResult:
	user_id: int
	current_level: int
	scripts_completed_in_level: int
	level_complete: bool
	version: int
	conflict: bool = False


class ProgressEngine:
	"""Session activation and level/script advancement for one user row.

	Progress only moves through a conditional update keyed on the version
	(and completed count) read at the start of the call, so two concurrent
	completions for the same user can never both advance it. The session
	takeover on login is the one unconditional write: the newest login wins.
	"""

	def __init__(self, store: UserStore, cfg: Settings) -> None:
		self.store = store
		self.cfg = cfg

	def resolve_or_create_user(self, username_raw: Optional[str], session_id: str) -> UserProgress:
		username = normalize_username(username_raw)
		user = self.store.get_by_username(username)
		if user is None:
			created = self.store.create(username, session_id)
			if created is not None:
				logger.info("Created user %s (id %s) at level 1, session %s", username, created.id, session_id)
				return self._progress(created, is_new_user=True)
			# Lost an insert race for the same username; the other row wins
			user = self.store.get_by_username(username)
			if user is None:
				raise ExternalStoreFailure(f"user {username} vanished after insert conflict", collaborator="database")

		previous = user.session_id
		user = self.store.take_over_session(user, session_id)
		if previous and previous != session_id:
			logger.info("Session %s for %s invalidated by %s", previous, username, session_id)
		logger.info(
			"User %s at level %d, %d scripts completed in level",
			username, user.current_level, user.scripts_completed_in_level,
		)
		return self._progress(user, is_new_user=False)

	def check_session(self, user_id: int, session_id: str) -> SessionStatus:
		user = self.store.require(user_id)
		if user.session_id != session_id:
			return SessionStatus(is_active=False, current_session_id=user.session_id)
		if self.store.touch_if_session(user_id, session_id):
			return SessionStatus(is_active=True, current_session_id=session_id)
		# Taken over between the read and the touch
		user = self.store.require(user_id)
		return SessionStatus(is_active=user.session_id == session_id, current_session_id=user.session_id)

	def record_completion(
		self,
		user_id: int,
		submitted_index: int,
		session_id: str,
		expected_version: Optional[int] = None,
	) -> CompletionResult:
		user = self.store.require(user_id)
		if user.session_id != session_id:
			logger.warning("Rejected completion for user %s from replaced session %s", user_id, session_id)
			raise SessionInvalidated(
				"This session has been replaced by another device/tab. Please refresh the page.",
				current_session_id=user.session_id,
			)
		if expected_version is not None and expected_version != user.version:
			logger.warning(
				"Version conflict for user %s: client has %s, stored %s", user_id, expected_version, user.version
			)
			return self._conflict(user)

		read_version = user.version
		current_level = user.current_level
		completed = user.scripts_completed_in_level or 0
		order = list(user.level_script_order) if user.level_script_order else None

		if self.cfg.strict_script_check:
			expected_row = order[completed] if order and completed < len(order) else None
			if expected_row != submitted_index:
				raise ScriptMismatch(f"Row {submitted_index} is not the next script (expected {expected_row})")

		new_completed = completed + 1
		# Short levels (blank sheet rows) finish at their real length
		scripts_per_level = len(order) if order else self.cfg.scripts_per_level
		level_complete = new_completed >= scripts_per_level

		values = {"last_script_id": submitted_index, "last_activity": datetime.utcnow()}
		if level_complete:
			next_level, next_completed = current_level + 1, 0
			values["level_script_order"] = None
		else:
			next_level, next_completed = current_level, new_completed
		values["current_level"] = next_level
		values["scripts_completed_in_level"] = next_completed

		ok = self.store.conditional_update(
			user_id,
			expected_version=read_version,
			expected_completed=completed,
			values=values,
		)
		if not ok:
			latest = self.store.require(user_id)
			logger.warning(
				"Progress race for user %s: expected version %d, now %d", user_id, read_version, latest.version
			)
			return self._conflict(latest)

		if level_complete:
			logger.info("User %s completed level %d, moving to level %d", user_id, current_level, next_level)
		else:
			logger.info(
				"User %s level %d: %d -> %d of %d scripts",
				user_id, current_level, completed, next_completed, scripts_per_level,
			)
		return CompletionResult(
			user_id=user_id,
			current_level=next_level,
			scripts_completed_in_level=next_completed,
			level_complete=level_complete,
			version=read_version + 1,
		)

	@staticmethod
	def _progress(user: User, *, is_new_user: bool) -> UserProgress:
		return UserProgress(
			user_id=user.id,
			username=user.username,
			current_level=user.current_level or 1,
			scripts_completed_in_level=user.scripts_completed_in_level or 0,
			version=user.version or 0,
			session_id=user.session_id,
			is_new_user=is_new_user,
		)

	@staticmethod
	def _conflict(user: User) -> CompletionResult:
		return CompletionResult(
			user_id=user.id,
			current_level=user.current_level,
			scripts_completed_in_level=user.scripts_completed_in_level,
			level_complete=False,
			version=user.version,
			conflict=True,
		)
