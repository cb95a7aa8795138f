"""Redis-backed storage for pending challenges."""

from __future__ import annotations

import json
import secrets
from typing import Any

from smsotp.domain.otp import policy
from smsotp.domain.otp.models import ChallengeRequest

KEY_TEMPLATE = "otp:stepup:{pending_id}"
DEFAULT_TTL_SECONDS = 3600


def _key(pending_id: str) -> str:
	return KEY_TEMPLATE.format(pending_id=pending_id)


def new_pending_id() -> str:
	return "_" + secrets.token_hex(20)


class ChallengeStore:
	"""Read-modify-write persistence; the last write for a pending id wins."""

	def __init__(self, redis: Any, *, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
		self._redis = redis
		self._ttl = ttl_seconds

	async def create(self, record: ChallengeRequest) -> str:
		pending_id = new_pending_id()
		await self.save(pending_id, record)
		return pending_id

	async def save(self, pending_id: str, record: ChallengeRequest) -> None:
		payload = json.dumps(record.to_payload(), separators=(",", ":"))
		await self._redis.set(_key(pending_id), payload, ex=self._ttl)

	async def load(self, pending_id: str | None) -> ChallengeRequest:
		if not pending_id:
			raise policy.ChallengeNotFound("state_missing", "Missing AuthState parameter.")
		data = await self._redis.get(_key(pending_id))
		if not data:
			raise policy.ChallengeNotFound("state_unknown", "Unknown or expired AuthState.")
		if isinstance(data, bytes):
			data = data.decode("utf-8")
		try:
			return ChallengeRequest.from_payload(json.loads(data))
		except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
			raise policy.ChallengeNotFound("state_corrupt", "Unreadable AuthState.") from exc

	async def delete(self, pending_id: str) -> None:
		await self._redis.delete(_key(pending_id))
