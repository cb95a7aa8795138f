"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from smsotp.api import ops, otp
from smsotp.api.errors import install_error_handlers
from smsotp.domain.otp.client import build_http_client
from smsotp.domain.otp.service import ChallengeService
from smsotp.infra.redis import redis_client
from smsotp.obs import init as obs_init
from smsotp.settings import settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
	http = build_http_client(proxy=settings.otp_http_proxy, timeout=settings.otp_provider_timeout_seconds)
	try:
		# an unusable configuration aborts startup
		app.state.challenge_service = ChallengeService.from_settings(settings, http=http, redis=redis_client)
		logger.info(
			"otp_service_ready",
			extra={"strategy": settings.otp_verification, "env": settings.environment, "commit": settings.git_commit},
		)
		yield
	finally:
		app.state.challenge_service = None
		await http.aclose()


app = FastAPI(title="SMS OTP Step-up", lifespan=lifespan)
install_error_handlers(app)
obs_init(app)

app.include_router(otp.router)
app.include_router(ops.router)
