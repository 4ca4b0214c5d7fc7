"""Request id lookup for error paths."""

from __future__ import annotations

from typing import Optional

from fastapi import Request

from socially.obs import logging as obs_logging


def get_request_id(request: Optional[Request] = None, default: str = "unknown") -> str:
	"""Return the id bound by the observability middleware, else the inbound header."""
	rid = obs_logging.current_request_id()
	if rid:
		return rid
	if request is not None:
		rid = getattr(request.state, "request_id", None) or request.headers.get("X-Request-Id")
	return rid or default
