"""One-time code generation and at-rest hashing."""

from __future__ import annotations

import random

from smsotp.domain.otp import policy
from smsotp.infra import hashing

_RNG = random.SystemRandom()


def generate_code(length: int = policy.DEFAULT_CODE_LENGTH) -> str:
	"""Generate a zero-padded numeric code using a cryptographically safe RNG."""
	policy.guard_code_length(length)
	return f"{_RNG.randrange(10 ** length):0{length}d}"


class SecretCodec:
	"""Salted Argon2id hashing for locally generated codes."""

	def hash(self, code: str) -> str:
		return hashing.hash_secret(code)

	def verify(self, hashed: str, candidate: str) -> bool:
		if not hashed or not candidate:
			return False
		return hashing.verify_secret(hashed, candidate)
