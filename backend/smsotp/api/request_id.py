"""Request ID helper for endpoints.

Relies on observability middleware binding the request id into the logging
context. Falls back to the inbound header when the contextvar is unset.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Request

from smsotp.obs import logging as obs_logging


def get_request_id(request: Optional[Request] = None, default: str = "unknown") -> str:
    """Return the current request id if bound, else the header value or a default."""
    rid = obs_logging.current_request_id()
    if rid:
        return rid
    if request is not None:
        rid = getattr(request.state, "request_id", None) or request.headers.get("X-Request-Id")
    return rid or default
