from __future__ import annotations

from typing import Any, Dict, Optional


class CollectorError(Exception):
	"""Base class for errors surfaced to API callers.

	Each subclass carries a stable ``code`` that clients switch on and the
	HTTP status the API layer answers with.
	"""

	code = "COLLECTOR_ERROR"
	status_code = 500

	def __init__(self, message: str, **extra: Any) -> None:
		super().__init__(message)
		self.message = message
		self.extra: Dict[str, Any] = extra

	def to_dict(self) -> Dict[str, Any]:
		return {"success": False, "error": self.code, "detail": self.message, **self.extra}


class ConfigurationMissing(CollectorError):
	"""A required collaborator setting is absent. Not retryable."""

	code = "CONFIGURATION_MISSING"
	status_code = 500


class UserNotFound(CollectorError):
	code = "USER_NOT_FOUND"
	status_code = 404


class SessionInvalidated(CollectorError):
	"""The submitted session was replaced by a newer one for the same user."""

	code = "SESSION_INVALIDATED"
	status_code = 409

	def __init__(self, message: str, *, current_session_id: Optional[str] = None) -> None:
		super().__init__(message, current_session_id=current_session_id)
		self.current_session_id = current_session_id


class ProgressConflict(CollectorError):
	"""A concurrent writer changed the user row first; re-sync and try again."""

	code = "PROGRESS_CONFLICT"
	status_code = 409


class NoPromptsInLevel(CollectorError):
	code = "NO_PROMPTS_IN_LEVEL"
	status_code = 404


class PromptTextMissing(CollectorError):
	code = "PROMPT_TEXT_MISSING"
	status_code = 404


class ExternalStoreFailure(CollectorError):
	"""I/O failure talking to a collaborator (database, sheets, drive, oauth)."""

	code = "EXTERNAL_STORE_FAILURE"
	status_code = 502

	def __init__(self, message: str, *, collaborator: str, status: Optional[int] = None) -> None:
		super().__init__(message, collaborator=collaborator, upstream_status=status)
		self.collaborator = collaborator
		self.status = status


class InvalidUsername(CollectorError):
	code = "INVALID_USERNAME"
	status_code = 400


class InvalidLevel(CollectorError):
	code = "INVALID_LEVEL"
	status_code = 400


class ScriptMismatch(CollectorError):
	code = "SCRIPT_MISMATCH"
	status_code = 400


class EmptyUpload(CollectorError):
	code = "EMPTY_UPLOAD"
	status_code = 400


class MissingSession(CollectorError):
	"""Progress cannot advance without the session that holds it."""

	code = "MISSING_SESSION"
	status_code = 400
