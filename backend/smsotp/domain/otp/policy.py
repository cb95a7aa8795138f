"""Policy guards, limits, and error types for one-time-passcode challenges."""

from __future__ import annotations

import re
from typing import Optional
from uuid import UUID

CODE_PLACEHOLDER = "{code}"
CODE_LENGTH_MIN = 4
CODE_LENGTH_MAX = 10
DEFAULT_CODE_LENGTH = 6
DEFAULT_VALID_FOR_SECONDS = 600
DEFAULT_REGION = "NL"

RECIPIENT_MAX_DIGITS = 16
NUMERIC_ORIGINATOR_MIN = 3
NUMERIC_ORIGINATOR_MAX = 16
ALNUM_ORIGINATOR_MIN = 3
ALNUM_ORIGINATOR_MAX = 11

EXPIRED_MESSAGE = "Your verification code has expired."

_DIGITS_REGEX = re.compile(r"^[0-9]+$")


class ChallengePolicyError(ValueError):
	"""Raised when a challenge constraint is violated."""

	def __init__(self, reason: str, message: Optional[str] = None):
		super().__init__(message or reason)
		self.reason = reason


class ConfigurationError(ChallengePolicyError):
	"""Raised when the service configuration cannot be used."""


class MissingAttribute(ChallengePolicyError):
	"""Raised when the pipeline supplied no usable phone-number attribute."""


class InvalidPhoneNumber(ChallengePolicyError):
	"""Raised when a phone number cannot be parsed or is not valid."""


class InteractionRequired(ChallengePolicyError):
	"""Raised when no user is present to enter a code."""


class SenderIdTooLong(ChallengePolicyError):
	"""Raised when a numeric originator exceeds the provider limit."""


class SenderIdInvalidLength(ChallengePolicyError):
	"""Raised when an alphanumeric originator is too short or too long."""


class InconsistentState(ChallengePolicyError):
	"""Raised when a pending challenge carries none of the expected reason flags."""


class ChallengeNotFound(ChallengePolicyError):
	"""Raised when a pending challenge id is unknown or has lapsed."""


def is_numeric(value: str) -> bool:
	return bool(_DIGITS_REGEX.fullmatch(value))


def guard_originator(originator: str) -> None:
	"""Validate an SMS sender id against provider rules."""
	if not originator:
		raise SenderIdInvalidLength(
			"originator_length",
			"An alphanumeric originator must contain between 3 and 11 characters.",
		)
	if is_numeric(originator):
		if len(originator) > NUMERIC_ORIGINATOR_MAX:
			raise SenderIdTooLong(
				"originator_too_long",
				"A numeric originator must represent a phone number and can contain a maximum of 16 digits.",
			)
		if len(originator) < NUMERIC_ORIGINATOR_MIN:
			raise SenderIdInvalidLength(
				"originator_length",
				"A numeric originator must contain at least 3 digits.",
			)
		return
	stripped = originator.replace(" ", "")
	if not ALNUM_ORIGINATOR_MIN <= len(stripped) <= ALNUM_ORIGINATOR_MAX:
		raise SenderIdInvalidLength(
			"originator_length",
			"An alphanumeric originator must contain between 3 and 11 characters.",
		)


def guard_recipient(recipient: str) -> None:
	if not is_numeric(recipient) or len(recipient) > RECIPIENT_MAX_DIGITS:
		raise ChallengePolicyError(
			"recipient_invalid",
			"A recipient must represent a phone number and can contain a maximum of 16 digits.",
		)


def guard_code_length(length: int) -> None:
	if isinstance(length, bool) or not isinstance(length, int):
		raise ChallengePolicyError("code_length_invalid")
	if not CODE_LENGTH_MIN <= length <= CODE_LENGTH_MAX:
		raise ChallengePolicyError("code_length_invalid")


def guard_valid_for(seconds: int) -> None:
	if isinstance(seconds, bool) or not isinstance(seconds, int) or seconds <= 0:
		raise ChallengePolicyError("valid_for_invalid", "validFor must be a positive integer.")


def guard_message_template(template: str) -> None:
	if CODE_PLACEHOLDER not in (template or ""):
		raise ChallengePolicyError("message_template_invalid", f"The message must contain {CODE_PLACEHOLDER}.")


def is_identifier(value: Optional[str]) -> bool:
	if not value:
		return False
	try:
		UUID(str(value))
	except ValueError:
		return False
	return True


def guard_identifier(value: Optional[str], reason: str) -> None:
	if not is_identifier(value):
		raise ChallengePolicyError(reason)


def render_message(template: str, code: str) -> str:
	return template.replace(CODE_PLACEHOLDER, code)
