"""Clock abstraction so expiry checks can be driven deterministically."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
	def now(self) -> datetime:
		...


class SystemClock:
	"""Wall clock in UTC."""

	def now(self) -> datetime:
		return datetime.now(timezone.utc)


class FrozenClock:
	"""Clock pinned to an instant; `advance` moves it."""

	def __init__(self, instant: datetime | None = None) -> None:
		self._now = instant or datetime.now(timezone.utc)

	def now(self) -> datetime:
		return self._now

	def advance(self, seconds: float) -> None:
		self._now = self._now + timedelta(seconds=seconds)
