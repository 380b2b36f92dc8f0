import logging
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from inputmax.ai.errors import AuthorizationMismatchError, InsufficientCreditsError, LedgerCorruptionError, RateLimitedError, UpstreamRejectedError
from inputmax.services.redemption import RedemptionError


def _coerce_json_safe(value: Any) -> Any:
  """Convert unsupported values into JSON-safe primitives for error responses."""
  if value is None or isinstance(value, bool | int | float | str):
    return value
  if isinstance(value, dict):
    return {str(key): _coerce_json_safe(item) for key, item in value.items()}
  if isinstance(value, list | tuple | set):
    return [_coerce_json_safe(item) for item in value]
  # Exceptions inside validation contexts are not JSON serializable.
  if isinstance(value, BaseException):
    error_message = str(value)
    if error_message:
      return f"{type(value).__name__}: {error_message}"
    return type(value).__name__
  return str(value)


def _error_payload(detail: Any, *, request_id: str | None = None) -> dict[str, Any]:
  """Build the error envelope shared by every handler."""
  payload: dict[str, Any] = {"detail": detail}
  # Attach a request id so support can correlate client reports to server logs.
  if request_id:
    payload["requestId"] = request_id
  return payload


def _request_id(request: Request) -> str | None:
  return getattr(request.state, "request_id", None)


def _sanitize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
  """Return validation errors without raw input payloads."""
  sanitized: list[dict[str, Any]] = []
  for error in errors:
    scrubbed = {key: value for key, value in error.items() if key != "input"}
    if "ctx" in scrubbed and isinstance(scrubbed["ctx"], dict):
      scrubbed_ctx = dict(scrubbed["ctx"])
      scrubbed_ctx.pop("input", None)
      scrubbed["ctx"] = scrubbed_ctx

    sanitized.append(_coerce_json_safe(scrubbed))

  return sanitized


def _sanitize_http_detail(detail: Any) -> Any:
  """Return an HTTPException detail payload safe for logs."""
  if isinstance(detail, dict):
    return {key: _sanitize_http_detail(value) for key, value in detail.items() if key not in {"input", "body", "payload", "content", "receipt"}}
  if isinstance(detail, list):
    return [_sanitize_http_detail(item) for item in detail]
  return detail


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
  """Global exception handler to catch unhandled errors."""
  logger = logging.getLogger("uvicorn.error")
  request_id = _request_id(request)
  logger.error("Global exception request_id=%s path=%s error_type=%s", request_id, request.url.path, type(exc).__name__, exc_info=True)
  return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=_error_payload("Internal Server Error", request_id=request_id))


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
  """Log request validation errors for debugging without leaking payloads."""
  request_id = _request_id(request)
  sanitized_errors = _sanitize_validation_errors(list(exc.errors()))
  logger = logging.getLogger("uvicorn.error")
  logger.warning("Request validation failed request_id=%s path=%s method=%s errors=%s", request_id, request.url.path, request.method, sanitized_errors)
  return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=_error_payload(sanitized_errors, request_id=request_id))


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
  """Handle HTTPExceptions; 5xx details stay in the logs."""
  from inputmax.config import get_settings

  settings = get_settings()
  request_id = _request_id(request)
  if exc.status_code >= 500:
    logger = logging.getLogger("uvicorn.error")
    logger.error("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail, exc_info=True)
    return JSONResponse(status_code=exc.status_code, content=_error_payload("Internal Server Error", request_id=request_id))

  if settings.log_http_4xx:
    logger = logging.getLogger("uvicorn.error")
    logger.warning("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, _sanitize_http_detail(exc.detail))

  return JSONResponse(status_code=exc.status_code, content=_error_payload(exc.detail, request_id=request_id), headers=exc.headers)


async def insufficient_credits_handler(request: Request, exc: InsufficientCreditsError) -> JSONResponse:
  detail = {"error": "insufficient_credits", "balance": exc.balance, "reserved": exc.reserved}
  return JSONResponse(status_code=status.HTTP_402_PAYMENT_REQUIRED, content=_error_payload(detail, request_id=_request_id(request)))


async def device_mismatch_handler(request: Request, exc: AuthorizationMismatchError) -> JSONResponse:
  logging.getLogger("uvicorn.error").warning("Device mismatch request_id=%s path=%s", _request_id(request), request.url.path)
  detail = {"error": "device_mismatch", "message": str(exc)}
  return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content=_error_payload(detail, request_id=_request_id(request)))


async def rate_limited_handler(request: Request, exc: RateLimitedError) -> JSONResponse:
  detail = {"error": "rate_limited", "retryAfter": exc.retry_after}
  headers = {"Retry-After": str(exc.retry_after)}
  return JSONResponse(status_code=status.HTTP_429_TOO_MANY_REQUESTS, content=_error_payload(detail, request_id=_request_id(request)), headers=headers)


async def ledger_corruption_handler(request: Request, exc: LedgerCorruptionError) -> JSONResponse:
  logging.getLogger("uvicorn.error").error("Bad hold record request_id=%s error=%s", _request_id(request), exc)
  detail = {"error": "bad_hold", "message": str(exc)}
  return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=_error_payload(detail, request_id=_request_id(request)))


async def upstream_rejected_handler(request: Request, exc: UpstreamRejectedError) -> JSONResponse:
  """Preserve the upstream status so clients can tell a bad request from an outage."""
  logging.getLogger("uvicorn.error").warning("Upstream rejected request_id=%s path=%s status_code=%s", _request_id(request), request.url.path, exc.status_code)
  detail = {"error": "upstream_error", "status": exc.status_code, "body": exc.body[:2000]}
  status_code = exc.status_code if exc.status_code >= 400 else status.HTTP_502_BAD_GATEWAY
  return JSONResponse(status_code=status_code, content=_error_payload(detail, request_id=_request_id(request)))


async def redemption_error_handler(request: Request, exc: RedemptionError) -> JSONResponse:
  if exc.status_code >= 500:
    logging.getLogger("uvicorn.error").error("Redemption failure request_id=%s code=%s", _request_id(request), exc.code)
  return JSONResponse(status_code=exc.status_code, content=_error_payload(exc.as_detail(), request_id=_request_id(request)))
