"""Audit helpers for challenge lifecycle events."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from smsotp.infra.redis import redis_client
from smsotp.obs import metrics as obs_metrics

STREAM_KEY = "x:otp.events"
STREAM_MAXLEN = 10000


def _now_iso() -> str:
	return datetime.now(timezone.utc).isoformat()


def _stringify(meta: Dict[str, Any]) -> Dict[str, str]:
	return {key: ("" if value is None else str(value)) for key, value in meta.items()}


async def log_event(event: str, *, pending_id: Optional[str] = None, meta: Optional[Dict[str, Any]] = None) -> None:
	payload: Dict[str, Any] = {"event": event, "ts": _now_iso()}
	if pending_id:
		payload["pending_id"] = pending_id
	if meta:
		payload.update(_stringify(meta))
	await redis_client.xadd(STREAM_KEY, payload, maxlen=STREAM_MAXLEN, approximate=True)


def inc_transition(action: str, result: str) -> None:
	obs_metrics.inc_challenge(action, result)
