"""Structured JSON logging with request-scoped context for the step-up flow."""

from __future__ import annotations

import json
import logging
import random
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from smsotp.settings import settings

_LOGGER_NAME = "smsotp"

# request_id, route, pending challenge id (AuthState) and client ip
_CONTEXT: Dict[str, ContextVar[Optional[str]]] = {
	"request_id": ContextVar("smsotp_request_id", default=None),
	"route": ContextVar("smsotp_route", default=None),
	"pending_id": ContextVar("smsotp_pending_id", default=None),
	"client_ip": ContextVar("smsotp_client_ip", default=None),
}
_CONTEXT_KEYS = {"client_ip": "ip"}

_SECRET_KEYWORDS = ("token", "secret", "authorization", "password", "hash", "otp", "payload", "body")
_PHONE_KEYWORDS = ("recipient", "phone", "mobile", "msisdn")

_MAX_STRING_LENGTH = 256
_MAX_COLLECTION_ITEMS = 10

# everything a bare LogRecord carries, so only `extra=` fields are emitted
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))) | {"message", "asctime"}


def bind_context(
	*,
	request_id: Optional[str] = None,
	route: Optional[str] = None,
	pending_id: Optional[str] = None,
	client_ip: Optional[str] = None,
) -> Dict[str, Token]:
	"""Bind contextual fields for the current request and return reset tokens."""
	values = {"request_id": request_id, "route": route, "pending_id": pending_id, "client_ip": client_ip}
	return {name: _CONTEXT[name].set(value) for name, value in values.items() if value is not None}


def reset_context(tokens: Dict[str, Token]) -> None:
	for name, token in tokens.items():
		_CONTEXT[name].reset(token)


def current_request_id() -> Optional[str]:
	return _CONTEXT["request_id"].get()


def mask_number(number: str) -> str:
	"""Keep the country prefix and the last two digits of a phone number."""
	if len(number) <= 6:
		return "*" * len(number)
	return f"{number[:4]}{'*' * (len(number) - 6)}{number[-2:]}"


def _clip(value: Any) -> Any:
	if isinstance(value, str) and len(value) > _MAX_STRING_LENGTH:
		return f"{value[:_MAX_STRING_LENGTH]}…"
	if isinstance(value, dict):
		items = list(value.items())
		clipped = {key: _scrub(str(key), nested) for key, nested in items[:_MAX_COLLECTION_ITEMS]}
		if len(items) > _MAX_COLLECTION_ITEMS:
			clipped["…"] = f"+{len(items) - _MAX_COLLECTION_ITEMS} keys"
		return clipped
	if isinstance(value, (list, tuple, set)):
		items = [_clip(item) for item in value]
		if len(items) > _MAX_COLLECTION_ITEMS:
			items = items[:_MAX_COLLECTION_ITEMS] + ["…"]
		return items
	return value


def _scrub(key: str, value: Any) -> Any:
	lowered = key.lower()
	if any(word in lowered for word in _SECRET_KEYWORDS):
		return "[redacted]"
	if isinstance(value, str) and value.isdigit() and any(word in lowered for word in _PHONE_KEYWORDS):
		return mask_number(value)
	return _clip(value)


class JSONLogFormatter(logging.Formatter):
	"""One JSON object per line: service identity, bound request context, then `extra` fields."""

	def format(self, record: logging.LogRecord) -> str:  # noqa: A003 (match logging api)
		payload: Dict[str, Any] = {
			"ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
			"level": record.levelname.lower(),
			"msg": record.getMessage(),
			"logger": record.name,
			"service": settings.service_name,
			"env": settings.environment,
			"commit": settings.git_commit,
		}
		for name, var in _CONTEXT.items():
			value = var.get()
			if value:
				payload[_CONTEXT_KEYS.get(name, name)] = value
		if record.exc_info:
			payload["exc_info"] = self.formatException(record.exc_info)
		for key, value in record.__dict__.items():
			if key not in _RECORD_ATTRS:
				payload[key] = _scrub(key, value)
		return json.dumps(payload, separators=(",", ":"), default=str)


class InfoSamplingFilter(logging.Filter):
	"""Drop a share of info records per LOG_SAMPLING_RATE_INFO; other levels always pass."""

	def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
		if record.levelno != logging.INFO:
			return True
		rate = max(0.0, min(1.0, settings.obs_log_sampling_rate_info))
		return rate >= 1.0 or random.random() < rate


def configure_logging() -> logging.Logger:
	root = logging.getLogger()
	root.handlers.clear()
	handler = logging.StreamHandler()
	handler.setFormatter(JSONLogFormatter())
	handler.addFilter(InfoSamplingFilter())
	root.addHandler(handler)
	root.setLevel(settings.obs_log_level)
	return logging.getLogger(_LOGGER_NAME)


def get_logger(name: Optional[str] = None) -> logging.Logger:
	return logging.getLogger(name or _LOGGER_NAME)
