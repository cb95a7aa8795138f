"""Phone number normalisation for the cm.com REST API."""

from __future__ import annotations

import phonenumbers
from phonenumbers import NumberParseException

from smsotp.domain.otp.policy import DEFAULT_REGION, RECIPIENT_MAX_DIGITS, InvalidPhoneNumber


def normalise_phone(raw: str, default_region: str = DEFAULT_REGION) -> str:
	"""Return ``00`` + country calling code + national number, digits only.

	Numbers written with a leading ``+`` carry their own region; anything else is
	parsed against ``default_region``. Raises InvalidPhoneNumber when the string is
	not a viable number, not a valid one for the inferred region, or too long to
	be a provider recipient.
	"""
	text = (raw or "").strip()
	if not text:
		raise InvalidPhoneNumber("phone_invalid", "The string supplied is empty.")
	region = None if text.startswith("+") else default_region
	try:
		parsed = phonenumbers.parse(text, region)
	except NumberParseException as exc:
		raise InvalidPhoneNumber(
			"phone_invalid",
			"The string supplied does not seem to be a valid phone number.",
		) from exc
	if not phonenumbers.is_possible_number(parsed) or not phonenumbers.is_valid_number(parsed):
		raise InvalidPhoneNumber(
			"phone_invalid",
			"The string supplied does not seem to be a valid phone number.",
		)
	normalised = f"00{parsed.country_code}{parsed.national_number}"
	if len(normalised) > RECIPIENT_MAX_DIGITS:
		raise InvalidPhoneNumber(
			"phone_invalid",
			f"The phone number cannot exceed {RECIPIENT_MAX_DIGITS} digits in international form.",
		)
	return normalised
