"""HTTP client for the cm.com OTP and messaging APIs."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from time import perf_counter
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from smsotp.domain.otp import policy, schemas
from smsotp.domain.otp.models import Receipt, SendChallengeRequest
from smsotp.obs import metrics as obs_metrics
from smsotp.obs.logging import mask_number

logger = logging.getLogger(__name__)

API_BASE = "https://api.cmtelecom.com"
GATEWAY_BASE = "https://gw.cmtelecom.com"
HEADER = "X-CM-ProductToken"
GENERATE_PATH = "/v1.0/otp/generate"
VERIFY_PATH = "/v1.0/otp/verify"
MESSAGE_PATH = "/v1.0/message"
DEFAULT_TIMEOUT_SECONDS = 3.0

# user-facing wording when the provider answers with a non-2xx status
_REJECTED_MESSAGES = {
	"generate": "The verification code could not be sent",
	"verify": "The verification code could not be checked",
	"message": "The text message could not be sent",
}


class ProviderError(Exception):
	"""Any failed exchange with the SMS provider."""

	def __init__(
		self,
		reason: str,
		message: str,
		*,
		status_code: Optional[int] = None,
		detail: Optional[str] = None,
	):
		super().__init__(message)
		self.reason = reason
		self.message = message
		self.status_code = status_code
		self.detail = detail


def build_http_client(*, proxy: Optional[str] = None, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> httpx.AsyncClient:
	return httpx.AsyncClient(
		proxy=proxy,
		timeout=httpx.Timeout(timeout),
		headers={"Content-Type": "application/json"},
	)


@dataclass
class DeliveryClient:
	"""Protocol boundary to the provider. Never retries; every failure surfaces as ProviderError."""

	http: httpx.AsyncClient
	product_token: str
	api_base: str = API_BASE
	gateway_base: str = GATEWAY_BASE
	request_timeout: float = DEFAULT_TIMEOUT_SECONDS

	async def send_challenge(self, request: SendChallengeRequest) -> Receipt:
		policy.guard_recipient(request.recipient)
		policy.guard_originator(request.originator)
		policy.guard_code_length(request.code_length)
		policy.guard_valid_for(request.valid_for_seconds)
		policy.guard_message_template(request.message_template)
		if request.allow_push:
			policy.guard_identifier(request.app_key, "app_key_invalid")
		body = schemas.OtpGenerateRequest(
			recipient=request.recipient,
			sender=request.originator,
			length=request.code_length,
			expiry=request.valid_for_seconds,
			message=request.message_template,
			allow_push=True if request.allow_push else None,
			app_key=request.app_key if request.allow_push else None,
		)
		data = await self._post("generate", f"{self.api_base}{GENERATE_PATH}", body.model_dump(by_alias=True, exclude_none=True))
		parsed = self._parse(schemas.OtpGenerateResponse, data, "generate")
		if not policy.is_identifier(parsed.id):
			logger.error("provider_malformed", extra={"endpoint": "generate", "reference": parsed.id})
			raise ProviderError("provider_malformed", "The SMS service sent an unreadable response.")
		logger.info(
			"otp_generated",
			extra={"reference": parsed.id, "recipient": mask_number(request.recipient)},
		)
		return Receipt(reference=parsed.id, not_before=parsed.created_at, not_after=parsed.expire_at)

	async def verify_challenge(self, reference: str, code: str) -> bool:
		policy.guard_identifier(reference, "reference_invalid")
		body = schemas.OtpVerifyRequest(id=reference, code=code)
		data = await self._post("verify", f"{self.api_base}{VERIFY_PATH}", body.model_dump(by_alias=True))
		return self._parse(schemas.OtpVerifyResponse, data, "verify").valid

	async def send_text(self, recipient: str, originator: str, content: str) -> str:
		"""Send a plain SMS through the messaging gateway and return its reference."""
		policy.guard_recipient(recipient)
		policy.guard_originator(originator)
		reference = uuid.uuid4().hex
		body = schemas.TextRequest(
			messages=schemas.TextEnvelope(
				authentication=schemas.TextAuthentication(producttoken=self.product_token),
				msg=[
					schemas.TextMessage(
						sender=originator,
						to=[schemas.TextRecipient(number=recipient)],
						body=schemas.TextBody(content=content),
						reference=reference,
					)
				],
			)
		)
		data = await self._post("message", f"{self.gateway_base}{MESSAGE_PATH}", body.model_dump(by_alias=True, exclude_none=True))
		parsed = self._parse(schemas.TextResponse, data, "message")
		if parsed.error_code != 0 or any(item.message_error_code != 0 for item in parsed.messages):
			logger.warning("sms_rejected", extra={"error_code": parsed.error_code, "details": parsed.details})
			raise ProviderError(
				"provider_rejected",
				"The text message could not be sent.",
				detail=parsed.details,
			)
		sent = next((item.reference for item in parsed.messages if item.reference), reference)
		logger.info("sms_sent", extra={"reference": sent, "recipient": mask_number(recipient)})
		return sent

	def _headers(self) -> dict[str, str]:
		return {"Content-Type": "application/json", HEADER: self.product_token}

	async def _post(self, endpoint: str, url: str, body: dict[str, Any]) -> Any:
		start = perf_counter()
		try:
			response = await self.http.post(url, json=body, headers=self._headers(), timeout=self.request_timeout)
		except httpx.TimeoutException as exc:
			obs_metrics.observe_provider_call(endpoint, "timeout", perf_counter() - start)
			logger.warning("provider_timeout", extra={"endpoint": endpoint})
			raise ProviderError("provider_timeout", "The SMS service did not respond in time.") from exc
		except httpx.HTTPError as exc:
			obs_metrics.observe_provider_call(endpoint, "error", perf_counter() - start)
			logger.warning("provider_unreachable", extra={"endpoint": endpoint, "error": str(exc)})
			raise ProviderError("provider_unreachable", "The SMS service could not be reached.") from exc
		elapsed = perf_counter() - start
		if not response.is_success:
			obs_metrics.observe_provider_call(endpoint, "rejected", elapsed)
			detail = self._failure_detail(response)
			logger.error(
				"provider_rejected",
				extra={"endpoint": endpoint, "status": response.status_code, "detail": detail},
			)
			raise ProviderError(
				"provider_rejected",
				f"{_REJECTED_MESSAGES[endpoint]} (status {response.status_code}).",
				status_code=response.status_code,
				detail=detail,
			)
		obs_metrics.observe_provider_call(endpoint, "ok", elapsed)
		try:
			return response.json()
		except ValueError as exc:
			raise ProviderError("provider_malformed", "The SMS service sent an unreadable response.") from exc

	@staticmethod
	def _failure_detail(response: httpx.Response) -> str:
		try:
			failure = schemas.ProviderFailure.model_validate(response.json())
		except (ValueError, ValidationError):
			return response.reason_phrase or ""
		return failure.summary() or response.reason_phrase or ""

	@staticmethod
	def _parse(model, data: Any, endpoint: str):
		try:
			return model.model_validate(data)
		except ValidationError as exc:
			logger.error("provider_malformed", extra={"endpoint": endpoint})
			raise ProviderError("provider_malformed", "The SMS service sent an unreadable response.") from exc
