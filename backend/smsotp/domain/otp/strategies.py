"""Verification strategies: provider-delegated or locally hashed codes."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional, Protocol

from smsotp.domain.otp import codes, policy
from smsotp.domain.otp.client import DeliveryClient
from smsotp.domain.otp.models import ChallengeRequest, ChallengeState, SendChallengeRequest
from smsotp.infra.clock import Clock

DELEGATED = "delegated"
LOCAL = "local"


class VerificationStrategy(Protocol):
	name: str

	async def issue(self, record: ChallengeRequest) -> None:
		"""Send a fresh challenge and move the record to ``sent``."""

	def window(self, record: ChallengeRequest) -> tuple[Optional[datetime], Optional[datetime]]:
		"""Validity window of the current challenge."""

	async def check(self, record: ChallengeRequest, candidate: str) -> bool:
		"""Whether ``candidate`` matches the current challenge."""


class DelegatedVerification:
	"""The provider owns the code; only its reference and window are kept."""

	name = DELEGATED

	def __init__(self, client: DeliveryClient) -> None:
		self._client = client

	async def issue(self, record: ChallengeRequest) -> None:
		receipt = await self._client.send_challenge(SendChallengeRequest.for_record(record))
		record.clear_secret()
		record.reference = receipt.reference
		record.not_before = receipt.not_before
		record.not_after = max(receipt.not_after, receipt.not_before)
		record.state = ChallengeState.SENT

	def window(self, record: ChallengeRequest) -> tuple[Optional[datetime], Optional[datetime]]:
		return record.not_before, record.not_after

	async def check(self, record: ChallengeRequest, candidate: str) -> bool:
		if not record.reference:
			return False
		return await self._client.verify_challenge(record.reference, candidate)


class LocalVerification:
	"""A code is generated here, sent as plain SMS, and only its hash is kept."""

	name = LOCAL

	def __init__(self, client: DeliveryClient, clock: Clock, codec: codes.SecretCodec | None = None) -> None:
		self._client = client
		self._clock = clock
		self._codec = codec or codes.SecretCodec()

	async def issue(self, record: ChallengeRequest) -> None:
		code = codes.generate_code(record.code_length)
		content = policy.render_message(record.message_template, code)
		await self._client.send_text(record.recipient, record.originator, content)
		record.clear_secret()
		record.secret_hash = self._codec.hash(code)
		record.created_at = self._clock.now()
		record.state = ChallengeState.SENT

	def window(self, record: ChallengeRequest) -> tuple[Optional[datetime], Optional[datetime]]:
		if record.created_at is None:
			return None, None
		return record.created_at, record.created_at + timedelta(seconds=record.valid_for_seconds)

	async def check(self, record: ChallengeRequest, candidate: str) -> bool:
		if not record.secret_hash:
			return False
		return self._codec.verify(record.secret_hash, candidate)


def build_strategy(name: str, client: DeliveryClient, clock: Clock) -> VerificationStrategy:
	if name == DELEGATED:
		return DelegatedVerification(client)
	if name == LOCAL:
		return LocalVerification(client, clock)
	raise policy.ConfigurationError("verification_unknown", f"Unknown verification strategy '{name}'.")
