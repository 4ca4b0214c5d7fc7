"""Global error handlers ensuring request_id is included in JSON responses."""

from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from socially.api.request_id import get_request_id
from socially.domain.chat.exceptions import ChatError
from socially.domain.proximity import LocationUnavailable
from socially.infra.rate_limit import RateLimitExceeded


def _error(request: Request, status_code: int, detail, **extra) -> JSONResponse:
	payload = {"detail": detail, **extra, "request_id": get_request_id(request)}
	return JSONResponse(status_code=status_code, content=jsonable_encoder(payload))


def install_error_handlers(app: FastAPI) -> None:
	@app.exception_handler(StarletteHTTPException)
	async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
		response = _error(request, exc.status_code, exc.detail)
		if exc.headers:
			response.headers.update(exc.headers)
		return response

	@app.exception_handler(RequestValidationError)
	async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
		return _error(request, 422, "validation_error", errors=exc.errors())

	@app.exception_handler(ChatError)
	async def chat_exc_handler(request: Request, exc: ChatError):  # type: ignore[override]
		return _error(request, exc.status_code, exc.detail)

	@app.exception_handler(RateLimitExceeded)
	async def rate_limit_handler(request: Request, exc: RateLimitExceeded):  # type: ignore[override]
		response = _error(request, status.HTTP_429_TOO_MANY_REQUESTS, "rate_limited")
		response.headers["Retry-After"] = str(exc.retry_after)
		return response

	@app.exception_handler(LocationUnavailable)
	async def location_handler(request: Request, exc: LocationUnavailable):  # type: ignore[override]
		return _error(request, status.HTTP_404_NOT_FOUND, exc.detail)
