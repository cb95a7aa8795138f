"""Liveness and readiness probes for the step-up service."""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any, Dict, Tuple

from redis.exceptions import RedisError

from smsotp.infra.redis import redis_client
from smsotp.obs import metrics

LOGGER = logging.getLogger(__name__)

REDIS_PING_TIMEOUT = 0.2


async def _redis_status(timeout: float = REDIS_PING_TIMEOUT) -> Dict[str, Any]:
	# pending challenges live only in redis; without it no step-up can complete
	start = perf_counter()
	try:
		await asyncio.wait_for(redis_client.ping(), timeout=timeout)
	except (RedisError, OSError, asyncio.TimeoutError) as exc:
		metrics.mark_redis(False)
		LOGGER.warning("redis_unavailable", exc_info=True)
		return {"ok": False, "error": str(exc) or exc.__class__.__name__}
	latency = perf_counter() - start
	metrics.mark_redis(True, latency_seconds=latency)
	return {"ok": True, "latency_ms": round(latency * 1000, 2)}


async def liveness() -> Dict[str, str]:
	return {"status": "ok"}


async def readiness(*, service_configured: bool) -> Tuple[int, Dict[str, Any]]:
	checks = {
		"redis": await _redis_status(),
		"otp_service": {"ok": service_configured},
	}
	ok = all(check["ok"] for check in checks.values())
	return (200 if ok else 503), {"status": "ok" if ok else "degraded", "checks": checks}
