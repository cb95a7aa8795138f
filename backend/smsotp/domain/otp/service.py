"""Challenge lifecycle: begin, dispatch, submit, and resend recovery."""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from smsotp.domain.otp import audit, policy
from smsotp.domain.otp.client import DeliveryClient, ProviderError
from smsotp.domain.otp.models import (
	ChallengeRequest,
	ChallengeState,
	Directive,
	PipelineContext,
)
from smsotp.domain.otp.phone import normalise_phone
from smsotp.domain.otp.store import ChallengeStore
from smsotp.domain.otp.strategies import VerificationStrategy, build_strategy
from smsotp.infra.clock import Clock, SystemClock
from smsotp.obs.logging import mask_number
from smsotp.settings import DEFAULT_MESSAGE_TEMPLATE, Settings

logger = logging.getLogger(__name__)

SEND_CODE = "send_code"
ENTER_CODE = "enter_code"
PROMPT_RESEND = "prompt_resend"


class ChallengeService:
	"""Drives a pending challenge through its states, one user request at a time.

	Every operation loads the record for a pending id, applies one transition,
	writes it back, and tells the routing layer where to go next.
	"""

	def __init__(
		self,
		store: ChallengeStore,
		strategy: VerificationStrategy,
		clock: Clock,
		*,
		originator: str,
		mobile_attribute: str = "mobile",
		default_region: str = policy.DEFAULT_REGION,
		code_length: int = policy.DEFAULT_CODE_LENGTH,
		valid_for_seconds: int = policy.DEFAULT_VALID_FOR_SECONDS,
		message_template: str = DEFAULT_MESSAGE_TEMPLATE,
		allow_push: bool = False,
		app_key: Optional[str] = None,
	) -> None:
		policy.guard_originator(originator)
		policy.guard_code_length(code_length)
		policy.guard_valid_for(valid_for_seconds)
		policy.guard_message_template(message_template)
		if not mobile_attribute:
			raise policy.ConfigurationError("mobile_attribute_missing", "A mobile attribute name is required.")
		self.store = store
		self.strategy = strategy
		self.clock = clock
		self.originator = originator
		self.mobile_attribute = mobile_attribute
		self.default_region = default_region
		self.code_length = code_length
		self.valid_for_seconds = valid_for_seconds
		self.message_template = message_template
		self.allow_push = allow_push
		self.app_key = app_key

	@classmethod
	def from_settings(
		cls,
		config: Settings,
		*,
		http: httpx.AsyncClient,
		redis: Any = None,
		clock: Optional[Clock] = None,
	) -> "ChallengeService":
		"""Production wiring. Any unusable setting surfaces as ConfigurationError."""
		if not policy.is_identifier(config.cm_product_token):
			raise policy.ConfigurationError(
				"credential_invalid",
				"CM_PRODUCT_TOKEN must be set to a product token (UUID).",
			)
		app_key = config.otp_push_app_key or None
		if app_key is not None and not policy.is_identifier(app_key):
			raise policy.ConfigurationError("app_key_invalid", "OTP_PUSH_APP_KEY must be a UUID.")
		if redis is None:
			from smsotp.infra.redis import redis_client

			redis = redis_client
		clock = clock or SystemClock()
		client = DeliveryClient(
			http=http,
			product_token=str(config.cm_product_token),
			api_base=config.cm_api_base,
			gateway_base=config.cm_gateway_base,
			request_timeout=config.otp_provider_timeout_seconds,
		)
		strategy = build_strategy(config.otp_verification, client, clock)
		try:
			return cls(
				ChallengeStore(redis, ttl_seconds=config.otp_store_ttl_seconds),
				strategy,
				clock,
				originator=config.otp_originator,
				mobile_attribute=config.otp_mobile_attribute,
				default_region=config.otp_default_region,
				code_length=config.otp_code_length,
				valid_for_seconds=config.otp_valid_for_seconds,
				message_template=config.otp_message_template,
				allow_push=app_key is not None,
				app_key=app_key,
			)
		except policy.ConfigurationError:
			raise
		except policy.ChallengePolicyError as exc:
			raise policy.ConfigurationError(exc.reason, str(exc)) from exc

	async def begin_challenge(self, ctx: PipelineContext) -> Directive:
		if ctx.is_passive:
			audit.inc_transition("begin", "passive")
			raise policy.InteractionRequired(
				"interaction_required",
				"A verification code cannot be entered without user interaction.",
			)
		raw = ctx.first_value(self.mobile_attribute)
		if raw is None:
			audit.inc_transition("begin", "missing_attribute")
			raise policy.MissingAttribute(
				"attribute_missing",
				f"Missing required attribute '{self.mobile_attribute}'.",
			)
		recipient = normalise_phone(raw, self.default_region)
		policy.guard_originator(self.originator)
		record = ChallengeRequest(
			recipient=recipient,
			originator=self.originator,
			resume_id=ctx.resume_id,
			code_length=self.code_length,
			valid_for_seconds=self.valid_for_seconds,
			message_template=self.message_template,
			allow_push=self.allow_push,
			app_key=self.app_key,
		)
		pending_id = await self.store.create(record)
		audit.inc_transition("begin", "ok")
		await audit.log_event("challenge_created", pending_id=pending_id, meta={"recipient": mask_number(recipient)})
		return Directive.redirect(SEND_CODE, pending_id)

	async def dispatch(self, pending_id: str) -> Directive:
		record = await self.store.load(pending_id)
		record.clear_flags()
		try:
			await self.strategy.issue(record)
		except ProviderError as exc:
			record.clear_secret()
			record.state = ChallengeState.SEND_FAILED
			record.last_failure_reason = exc.message
			await self.store.save(pending_id, record)
			audit.inc_transition("dispatch", "failed")
			logger.warning("otp_dispatch_failed", extra={"reason": exc.reason, "status": exc.status_code})
			await audit.log_event("challenge_send_failed", pending_id=pending_id, meta={"reason": exc.reason})
			return Directive.redirect(PROMPT_RESEND, pending_id)
		await self.store.save(pending_id, record)
		audit.inc_transition("dispatch", "ok")
		await audit.log_event("challenge_sent", pending_id=pending_id, meta={"strategy": self.strategy.name})
		return Directive.redirect(ENTER_CODE, pending_id)

	async def submit(self, pending_id: str, code: Optional[str]) -> Directive:
		"""Check the time window first, then the code itself."""
		record = await self.store.load(pending_id)
		start, end = self.strategy.window(record)
		if start is None or end is None:
			# nothing issued yet, or the last send failed
			return Directive.redirect(PROMPT_RESEND if record.last_failure_reason else SEND_CODE, pending_id)
		now = self.clock.now()
		if now < start or now > end:
			record.clear_flags()
			record.expired = True
			record.state = ChallengeState.EXPIRED
			await self.store.save(pending_id, record)
			audit.inc_transition("submit", "expired")
			return Directive.redirect(PROMPT_RESEND, pending_id)
		candidate = (code or "").strip()
		try:
			matched = bool(candidate) and await self.strategy.check(record, candidate)
		except ProviderError as exc:
			record.clear_flags()
			record.state = ChallengeState.SEND_FAILED
			record.last_failure_reason = exc.message
			await self.store.save(pending_id, record)
			audit.inc_transition("submit", "provider_error")
			logger.warning("otp_verify_failed", extra={"reason": exc.reason, "status": exc.status_code})
			return Directive.redirect(PROMPT_RESEND, pending_id)
		if not matched:
			record.clear_flags()
			record.invalid = True
			record.state = ChallengeState.INVALID
			await self.store.save(pending_id, record)
			audit.inc_transition("submit", "invalid")
			await audit.log_event("challenge_invalid", pending_id=pending_id)
			return Directive.redirect(ENTER_CODE, pending_id)
		record.state = ChallengeState.VERIFIED
		await self.store.delete(pending_id)
		audit.inc_transition("submit", "verified")
		await audit.log_event("challenge_verified", pending_id=pending_id)
		return Directive.resume(record.resume_id)

	async def prompt_resend(self, pending_id: str) -> Directive:
		record = await self.store.load(pending_id)
		if record.expired:
			message = policy.EXPIRED_MESSAGE
		elif record.last_failure_reason is not None:
			message = record.last_failure_reason
		elif record.resend_requested:
			message = ""
		else:
			raise policy.InconsistentState(
				"reason_missing",
				"The resend prompt was reached with no reason flag set.",
			)
		return Directive.render(PROMPT_RESEND, pending_id, message=message)

	async def request_resend(self, pending_id: str) -> Directive:
		record = await self.store.load(pending_id)
		record.clear_flags()
		record.resend_requested = True
		record.state = ChallengeState.RESEND_PENDING
		await self.store.save(pending_id, record)
		audit.inc_transition("resend", "requested")
		return Directive.redirect(PROMPT_RESEND, pending_id)

	async def enter_code(self, pending_id: str) -> Directive:
		record = await self.store.load(pending_id)
		return Directive.render(
			ENTER_CODE,
			pending_id,
			invalid=record.invalid,
			code_length=record.code_length,
			recipient=mask_number(record.recipient),
		)
