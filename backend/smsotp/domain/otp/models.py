"""Domain models for the one-time-passcode challenge lifecycle."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional, Sequence

from smsotp.domain.otp import policy

RecordLike = Mapping[str, Any]


def _as_datetime(value: Any) -> Optional[datetime]:
	if value in (None, ""):
		return None
	if isinstance(value, datetime):
		parsed = value
	else:
		parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
	if parsed.tzinfo is None:
		parsed = parsed.replace(tzinfo=timezone.utc)
	return parsed


def _iso(value: Optional[datetime]) -> Optional[str]:
	return value.isoformat() if value is not None else None


class ChallengeState(str, Enum):
	NEW = "new"
	SENT = "sent"
	VERIFIED = "verified"
	EXPIRED = "expired"
	INVALID = "invalid"
	RESEND_PENDING = "resend_pending"
	SEND_FAILED = "send_failed"


@dataclass
class ChallengeRequest:
	"""Pending step-up challenge, persisted between user interactions."""

	recipient: str
	originator: str
	resume_id: str
	code_length: int = policy.DEFAULT_CODE_LENGTH
	valid_for_seconds: int = policy.DEFAULT_VALID_FOR_SECONDS
	message_template: str = policy.CODE_PLACEHOLDER
	state: ChallengeState = ChallengeState.NEW
	allow_push: bool = False
	app_key: Optional[str] = None
	# local verification
	secret_hash: Optional[str] = None
	created_at: Optional[datetime] = None
	# delegated verification
	reference: Optional[str] = None
	not_before: Optional[datetime] = None
	not_after: Optional[datetime] = None
	last_failure_reason: Optional[str] = None
	expired: bool = False
	invalid: bool = False
	resend_requested: bool = False

	def clear_flags(self) -> None:
		self.expired = False
		self.invalid = False
		self.resend_requested = False
		self.last_failure_reason = None

	def clear_secret(self) -> None:
		self.secret_hash = None
		self.created_at = None
		self.reference = None
		self.not_before = None
		self.not_after = None

	def to_payload(self) -> dict[str, Any]:
		payload = asdict(self)
		payload["state"] = self.state.value
		payload["created_at"] = _iso(self.created_at)
		payload["not_before"] = _iso(self.not_before)
		payload["not_after"] = _iso(self.not_after)
		return payload

	@classmethod
	def from_payload(cls, payload: RecordLike) -> "ChallengeRequest":
		return cls(
			recipient=str(payload["recipient"]),
			originator=str(payload["originator"]),
			resume_id=str(payload["resume_id"]),
			code_length=int(payload.get("code_length", policy.DEFAULT_CODE_LENGTH)),
			valid_for_seconds=int(payload.get("valid_for_seconds", policy.DEFAULT_VALID_FOR_SECONDS)),
			message_template=str(payload.get("message_template") or policy.CODE_PLACEHOLDER),
			state=ChallengeState(payload.get("state", ChallengeState.NEW.value)),
			allow_push=bool(payload.get("allow_push", False)),
			app_key=payload.get("app_key"),
			secret_hash=payload.get("secret_hash"),
			created_at=_as_datetime(payload.get("created_at")),
			reference=payload.get("reference"),
			not_before=_as_datetime(payload.get("not_before")),
			not_after=_as_datetime(payload.get("not_after")),
			last_failure_reason=payload.get("last_failure_reason"),
			expired=bool(payload.get("expired", False)),
			invalid=bool(payload.get("invalid", False)),
			resend_requested=bool(payload.get("resend_requested", False)),
		)


@dataclass(frozen=True)
class SendChallengeRequest:
	recipient: str
	originator: str
	code_length: int
	valid_for_seconds: int
	message_template: str
	allow_push: bool = False
	app_key: Optional[str] = None

	@classmethod
	def for_record(cls, record: ChallengeRequest) -> "SendChallengeRequest":
		return cls(
			recipient=record.recipient,
			originator=record.originator,
			code_length=record.code_length,
			valid_for_seconds=record.valid_for_seconds,
			message_template=record.message_template,
			allow_push=record.allow_push,
			app_key=record.app_key,
		)


@dataclass(frozen=True)
class Receipt:
	reference: str
	not_before: datetime
	not_after: datetime


@dataclass(frozen=True)
class PipelineContext:
	"""What the enclosing authentication pipeline hands over at step-up time."""

	resume_id: str
	attributes: Mapping[str, Sequence[str]] = field(default_factory=dict)
	is_passive: bool = False

	def first_value(self, name: str) -> Optional[str]:
		values = self.attributes.get(name)
		if not values:
			return None
		if isinstance(values, str):
			return values or None
		first = values[0]
		return str(first) if first not in (None, "") else None


class DirectiveKind(str, Enum):
	RENDER = "render"
	REDIRECT = "redirect"
	RESUME = "resume"


@dataclass(frozen=True)
class Directive:
	"""Instruction for the routing layer: render a view, redirect, or resume the pipeline."""

	kind: DirectiveKind
	target: str
	pending_id: Optional[str] = None
	data: dict[str, Any] = field(default_factory=dict)

	@classmethod
	def render(cls, view: str, pending_id: str, **data: Any) -> "Directive":
		return cls(DirectiveKind.RENDER, view, pending_id, dict(data))

	@classmethod
	def redirect(cls, step: str, pending_id: str) -> "Directive":
		return cls(DirectiveKind.REDIRECT, step, pending_id)

	@classmethod
	def resume(cls, resume_id: str) -> "Directive":
		return cls(DirectiveKind.RESUME, "resume", resume_id)
