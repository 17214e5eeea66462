from __future__ import annotations
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import ExternalStoreFailure, InvalidUsername, UserNotFound
from .models import Recording, User

logger = logging.getLogger(__name__)


def normalize_username(raw: Optional[str]) -> str:
	username = (raw or "").strip().lower()
	if not username:
		raise InvalidUsername("username is required")
	if len(username) > 128:
		raise InvalidUsername("username must be at most 128 characters")
	return username


class UserStore:
	"""Reads and writes of the ``users`` and ``recordings`` tables.

	All progress writes go through :meth:`conditional_update`; the only
	unconditional write is the session takeover in :meth:`take_over_session`.
	"""

	def __init__(self, db: Session) -> None:
		self.db = db

	@contextmanager
	def _guard(self) -> Iterator[None]:
		try:
			yield
		except SQLAlchemyError as e:
			self.db.rollback()
			raise ExternalStoreFailure(f"database error: {e}", collaborator="database") from e

	def get(self, user_id: int) -> Optional[User]:
		with self._guard():
			return self.db.get(User, user_id, populate_existing=True)

	def require(self, user_id: int) -> User:
		user = self.get(user_id)
		if user is None:
			raise UserNotFound(f"User with ID {user_id} does not exist")
		return user

	def get_by_username(self, username: str) -> Optional[User]:
		with self._guard():
			return self.db.execute(select(User).where(User.username == username)).scalar_one_or_none()

	def create(self, username: str, session_id: str) -> Optional[User]:
		"""Insert a fresh level-1 user; ``None`` if the username was taken meanwhile."""
		now = datetime.utcnow()
		row = User(
			username=username,
			current_level=1,
			scripts_completed_in_level=0,
			level_script_order=None,
			session_id=session_id,
			last_activity=now,
			version=0,
			last_script_id=0,
		)
		try:
			self.db.add(row)
			self.db.commit()
		except IntegrityError:
			self.db.rollback()
			return None
		except SQLAlchemyError as e:
			self.db.rollback()
			raise ExternalStoreFailure(f"database error: {e}", collaborator="database") from e
		self.db.refresh(row)
		return row

	def take_over_session(self, user: User, session_id: str) -> User:
		# Last writer wins
		with self._guard():
			user.session_id = session_id
			user.last_activity = datetime.utcnow()
			self.db.add(user)
			self.db.commit()
			self.db.refresh(user)
		return user

	def touch_if_session(self, user_id: int, session_id: str) -> bool:
		with self._guard():
			res = self.db.execute(
				update(User)
				.where(User.id == user_id, User.session_id == session_id)
				.values(last_activity=datetime.utcnow())
				.execution_options(synchronize_session=False)
			)
			self.db.commit()
		return (res.rowcount or 0) == 1

	def conditional_update(
		self,
		user_id: int,
		*,
		expected_version: int,
		values: Dict[str, Any],
		expected_completed: Optional[int] = None,
		bump_version: bool = True,
	) -> bool:
		"""Apply ``values`` only if the row still has ``expected_version``.

		``expected_completed`` additionally pins ``scripts_completed_in_level``.
		Returns False when another writer got there first; nothing is written.
		"""
		criteria = [User.id == user_id, User.version == expected_version]
		if expected_completed is not None:
			criteria.append(User.scripts_completed_in_level == expected_completed)
		new_values = dict(values)
		if bump_version:
			new_values["version"] = expected_version + 1
		new_values["updated_at"] = datetime.utcnow()
		with self._guard():
			res = self.db.execute(
				update(User).where(*criteria).values(**new_values).execution_options(synchronize_session=False)
			)
			self.db.commit()
		return (res.rowcount or 0) == 1

	def add_recording(self, **fields: Any) -> Recording:
		row = Recording(**fields)
		with self._guard():
			self.db.add(row)
			self.db.commit()
			self.db.refresh(row)
		return row
