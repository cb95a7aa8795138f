"""Wire models for the cm.com provider and the pipeline-facing HTTP surface."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

_FRACTION = re.compile(r"(\.\d{6})\d+")


def _trim_fraction(value: Any) -> Any:
	# the provider reports 7 fractional digits; datetime holds 6
	if isinstance(value, str):
		return _FRACTION.sub(r"\1", value)
	return value


class _WireModel(BaseModel):
	model_config = ConfigDict(populate_by_name=True, extra="ignore")


class OtpGenerateRequest(_WireModel):
	recipient: str
	sender: str
	length: int
	expiry: int
	message: str
	allow_push: Optional[bool] = Field(default=None, alias="allowPush")
	app_key: Optional[str] = Field(default=None, alias="appKey")


class OtpGenerateResponse(_WireModel):
	id: str
	created_at: datetime = Field(alias="createdAt")
	expire_at: datetime = Field(alias="expireAt")

	@field_validator("created_at", "expire_at", mode="before")
	def _trim(cls, value):  # type: ignore[override]
		return _trim_fraction(value)


class OtpVerifyRequest(_WireModel):
	id: str
	code: str


class OtpVerifyResponse(_WireModel):
	valid: bool


class ProviderFailure(_WireModel):
	message: Optional[str] = None
	status: Optional[Any] = None
	details: Optional[str] = None
	error_code: Optional[int] = Field(default=None, alias="errorCode")

	def summary(self) -> str:
		return self.message or self.details or ""


class TextRecipient(_WireModel):
	number: str


class TextBody(_WireModel):
	type: str = "auto"
	content: str


class TextMessage(_WireModel):
	sender: str = Field(alias="from")
	to: list[TextRecipient]
	body: TextBody
	reference: Optional[str] = None


class TextAuthentication(_WireModel):
	producttoken: str


class TextEnvelope(_WireModel):
	authentication: TextAuthentication
	msg: list[TextMessage]


class TextRequest(_WireModel):
	messages: TextEnvelope


class TextMessageResult(_WireModel):
	to: Optional[str] = None
	status: Optional[str] = None
	reference: Optional[str] = None
	message_error_code: int = Field(default=0, alias="messageErrorCode")


class TextResponse(_WireModel):
	details: Optional[str] = None
	error_code: int = Field(default=0, alias="errorCode")
	messages: list[TextMessageResult] = Field(default_factory=list)


class BeginChallengePayload(_WireModel):
	resume_id: str = Field(alias="resumeId", min_length=1)
	attributes: dict[str, list[str]] = Field(default_factory=dict)
	is_passive: bool = Field(default=False, alias="isPassive")

	@field_validator("attributes", mode="before")
	def _listify(cls, value):  # type: ignore[override]
		if not isinstance(value, dict):
			return value
		return {key: ([item] if isinstance(item, str) else item) for key, item in value.items()}


class RenderOut(BaseModel):
	view: str
	AuthState: str
	data: dict[str, Any] = Field(default_factory=dict)
