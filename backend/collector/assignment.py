from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .errors import InvalidLevel, NoPromptsInLevel, ProgressConflict, PromptTextMissing
from .google_client import PromptSource
from .models import User
from .settings import Settings
from .shuffle import derive_seed, level_range, seeded_shuffle, total_levels
from .users import UserStore

logger = logging.getLogger(__name__)


@dataclass
class PromptAssignment:
	level: int
	text: str
	external_index: int
	index_within_level: int
	total_in_level: int
	remaining_in_level: int


@dataclass
class NextPrompt:
	level: int
	version: int
	level_complete: bool
	total_in_level: int
	prompt: Optional[PromptAssignment] = None


@dataclass
class PromptBatch:
	level: int
	version: int
	level_complete: bool
	total_in_level: int
	scripts: List[PromptAssignment] = field(default_factory=list)
	batch_start_index: int = 0
	batch_end_index: int = -1
	has_more_in_level: bool = False
	remaining_in_level: int = 0


@dataclass
class ScriptTotals:
	total_scripts: int
	total_levels: int
	scripts_per_level: int


class LevelAssignmentService:
	"""Decides which script a user reads next.

	The shuffled order of a level is computed once, on the first request for
	that level, and stored on the user row. Later requests reuse the stored
	order, so a user resuming a level sees the same remaining sequence even if
	the sheet was edited in the meantime.
	"""

	def __init__(self, store: UserStore, source: PromptSource, cfg: Settings) -> None:
		self.store = store
		self.source = source
		self.cfg = cfg

	async def _resolve_order(self, user: User, level: int) -> Tuple[User, List[int]]:
		if level < 1:
			raise InvalidLevel("level must be >= 1")
		if level < user.current_level:
			raise InvalidLevel(f"Level {level} is already completed (current level is {user.current_level})")
		if user.level_script_order and user.current_level == level:
			logger.debug("Using existing shuffled order for user %s level %d", user.username, level)
			return user, list(user.level_script_order)

		start, end = level_range(level, self.cfg.scripts_per_level)
		cells = await self.source.fetch_range(start, end)
		# Blank rows are never assigned
		indices = [start + offset for offset, text in enumerate(cells) if text and text.strip()]
		if not indices:
			raise NoPromptsInLevel(f"No valid scripts found for level {level}")

		seed = derive_seed(user.username, level)
		order = seeded_shuffle(indices, seed)
		values = {"level_script_order": order, "current_level": level}
		# Jumping ahead starts the new level from scratch and counts as progress
		jump = level > user.current_level
		if jump:
			values["scripts_completed_in_level"] = 0
		ok = self.store.conditional_update(
			user.id,
			expected_version=user.version,
			values=values,
			bump_version=jump,
		)
		if not ok:
			raise ProgressConflict("Progress was updated by another session. Please refresh.")
		logger.info(
			"Created shuffled order for user %s level %d (seed %d, %d scripts, rows %d-%d)",
			user.username, level, seed, len(order), start, end,
		)
		return self.store.require(user.id), order

	async def get_next_prompt(self, user: User, level: int) -> NextPrompt:
		user, order = await self._resolve_order(user, level)
		index = user.scripts_completed_in_level or 0
		total = len(order)
		if index >= total:
			return NextPrompt(level=level, version=user.version, level_complete=True, total_in_level=total)

		row = order[index]
		text = await self.source.fetch_row(row)
		if not text or not text.strip():
			raise PromptTextMissing(f"Script text not found for row {row}")
		prompt = PromptAssignment(
			level=level,
			text=text,
			external_index=row,
			index_within_level=index,
			total_in_level=total,
			remaining_in_level=total - index - 1,
		)
		logger.info("Serving script %d/%d of level %d (row %d) to %s", index + 1, total, level, row, user.username)
		return NextPrompt(level=level, version=user.version, level_complete=False, total_in_level=total, prompt=prompt)

	async def get_prompt_batch(self, user: User, level: int, batch_size: int) -> PromptBatch:
		"""Up to ``batch_size`` consecutive scripts starting at the user's position."""
		if batch_size < 1:
			raise ValueError("batch_size must be >= 1")
		user, order = await self._resolve_order(user, level)
		index = user.scripts_completed_in_level or 0
		total = len(order)
		if index >= total:
			return PromptBatch(level=level, version=user.version, level_complete=True, total_in_level=total)

		start, end = level_range(level, self.cfg.scripts_per_level)
		cells = await self.source.fetch_range(start, end)
		picked = order[index:index + batch_size]
		scripts: List[PromptAssignment] = []
		for offset, row in enumerate(picked):
			cell = row - start
			text = cells[cell] if 0 <= cell < len(cells) else ""
			if not text.strip():
				raise PromptTextMissing(f"Script text not found for row {row}")
			position = index + offset
			scripts.append(
				PromptAssignment(
					level=level,
					text=text,
					external_index=row,
					index_within_level=position,
					total_in_level=total,
					remaining_in_level=total - position - 1,
				)
			)
		batch_end = index + len(scripts) - 1
		return PromptBatch(
			level=level,
			version=user.version,
			level_complete=False,
			total_in_level=total,
			scripts=scripts,
			batch_start_index=index,
			batch_end_index=batch_end,
			has_more_in_level=batch_end + 1 < total,
			remaining_in_level=total - index - 1,
		)

	async def count_scripts(self) -> ScriptTotals:
		cells = await self.source.fetch_range(1, self.cfg.max_script_rows)
		count = sum(1 for text in cells if text and text.strip())
		return ScriptTotals(
			total_scripts=count,
			total_levels=total_levels(count, self.cfg.scripts_per_level),
			scripts_per_level=self.cfg.scripts_per_level,
		)

	async def fetch_row(self, row: int) -> Optional[str]:
		if row < 1:
			raise ValueError("row must be >= 1")
		return await self.source.fetch_row(row)
