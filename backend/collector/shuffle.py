"""
Deterministic per-user script ordering.

Every contributor reads the scripts of a level in their own order. The order
is a Fisher-Yates shuffle driven by a small linear congruential generator
seeded from ``(username, level)``, so the same user always gets the same
order for a level while two users almost never share one.

The LCG constants and the seed hash below are part of the stored data's
contract: orders already persisted in ``users.level_script_order`` were
produced with them. Changing any constant only changes orders computed
afterwards, so users who start a level after the change would be shuffled
differently from users whose order was stored before it. Do not change them
once real progress exists.
"""

from __future__ import annotations

import math
from typing import List, Sequence, Tuple, TypeVar

T = TypeVar("T")

# LCG: state = (state * MULTIPLIER + INCREMENT) % MODULUS
LCG_MULTIPLIER = 9301
LCG_INCREMENT = 49297
LCG_MODULUS = 233280

_UINT32 = 0xFFFFFFFF


def _to_int32(value: int) -> int:
	value &= _UINT32
	return value - 0x100000000 if value & 0x80000000 else value


def derive_seed(username: str, level: int) -> int:
	"""Return a non-negative seed for ``(username, level)``.

	Rolling ``h * 31 + unit`` hash over the UTF-16 code units of
	``"<username>_level_<level>"``, wrapped to a signed 32-bit integer at
	every step. Collisions are possible and harmless.
	"""
	key = f"{username}_level_{level}".encode("utf-16-le")
	h = 0
	for i in range(0, len(key), 2):
		unit = key[i] | (key[i + 1] << 8)
		h = _to_int32((h << 5) - h + unit)
	return abs(h)


def seeded_shuffle(items: Sequence[T], seed: int) -> List[T]:
	"""Return a shuffled copy of ``items``; the input is left untouched."""
	if seed < 0:
		raise ValueError("seed must be non-negative")
	shuffled = list(items)
	state = seed
	for i in range(len(shuffled) - 1, 0, -1):
		state = (state * LCG_MULTIPLIER + LCG_INCREMENT) % LCG_MODULUS
		# Float arithmetic on purpose: stored orders were computed this way.
		j = math.floor((state / LCG_MODULUS) * (i + 1))
		shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
	return shuffled


def level_range(level: int, page_size: int) -> Tuple[int, int]:
	"""1-based inclusive sheet row range covered by ``level``."""
	if level < 1:
		raise ValueError("level must be >= 1")
	if page_size < 1:
		raise ValueError("page_size must be >= 1")
	return (level - 1) * page_size + 1, level * page_size


def total_levels(total_scripts: int, page_size: int) -> int:
	if total_scripts <= 0:
		return 0
	return math.ceil(total_scripts / page_size)
