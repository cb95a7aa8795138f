"""ASGI middleware binding request context and recording HTTP metrics."""

from __future__ import annotations

import time
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from smsotp.obs import logging as obs_logging
from smsotp.obs import metrics
from smsotp.settings import settings

REQUEST_ID_HEADER = "X-Request-Id"


def _route_template(request: Request) -> str:
	# set by the router once the request has been matched
	route = request.scope.get("route")
	return getattr(route, "path", None) or request.url.path


class ObservabilityMiddleware(BaseHTTPMiddleware):
	"""Every log line emitted while serving a request carries its id and AuthState."""

	def __init__(self, app, *, enabled: bool = True) -> None:
		super().__init__(app)
		self._enabled = enabled
		self._logger = obs_logging.get_logger("smsotp.http")

	async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
		if not (settings.obs_enabled and self._enabled):
			return await call_next(request)

		request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
		request.state.request_id = request_id
		tokens = obs_logging.bind_context(
			request_id=request_id,
			route=request.url.path,
			pending_id=request.query_params.get("AuthState"),
			client_ip=request.client.host if request.client else None,
		)
		start = time.perf_counter()
		try:
			try:
				response = await call_next(request)
			except Exception:
				self._finish(request, 500, start, failed=True)
				raise
			self._finish(request, response.status_code, start)
			response.headers.setdefault(REQUEST_ID_HEADER, request_id)
			return response
		finally:
			obs_logging.reset_context(tokens)

	def _finish(self, request: Request, status_code: int, start: float, *, failed: bool = False) -> None:
		elapsed = time.perf_counter() - start
		route = _route_template(request)
		metrics.observe_request(route, request.method, status_code, elapsed)
		extra = {
			"method": request.method,
			"route": route,
			"status": status_code,
			"latency_ms": round(elapsed * 1000, 3),
		}
		if failed:
			self._logger.exception("http_request_error", extra=extra)
		else:
			self._logger.info("http_request", extra=extra)


def install(app, *, enabled: bool = True) -> None:
	app.add_middleware(ObservabilityMiddleware, enabled=enabled)
