from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from inputmax import __version__
from inputmax.ai.errors import AuthorizationMismatchError, InsufficientCreditsError, LedgerCorruptionError, RateLimitedError, UpstreamRejectedError
from inputmax.api.models import HealthResponse
from inputmax.api.routes import credits, jobs, proxy
from inputmax.config import get_settings
from inputmax.core.exceptions import (
  device_mismatch_handler,
  global_exception_handler,
  http_exception_handler,
  insufficient_credits_handler,
  ledger_corruption_handler,
  rate_limited_handler,
  redemption_error_handler,
  request_validation_exception_handler,
  upstream_rejected_handler,
)
from inputmax.core.lifespan import lifespan
from inputmax.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from inputmax.services.redemption import RedemptionError

settings = get_settings()

app = FastAPI(title="InputMax Edge", version=__version__, lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)

if settings.allowed_origins:
  app.add_middleware(CORSMiddleware, allow_origins=list(settings.allowed_origins), allow_credentials=False, allow_methods=["GET", "POST", "OPTIONS"], allow_headers=["content-type", "x-device-id"])


app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
app.add_exception_handler(InsufficientCreditsError, insufficient_credits_handler)
app.add_exception_handler(AuthorizationMismatchError, device_mismatch_handler)
app.add_exception_handler(RateLimitedError, rate_limited_handler)
app.add_exception_handler(LedgerCorruptionError, ledger_corruption_handler)
app.add_exception_handler(UpstreamRejectedError, upstream_rejected_handler)
app.add_exception_handler(RedemptionError, redemption_error_handler)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(SecurityHeadersMiddleware)


@app.get("/health", include_in_schema=False, response_model=HealthResponse)
async def health_check() -> HealthResponse:
  """Return a simple health status."""
  return HealthResponse(status="ok", version=__version__)


app.include_router(credits.router, prefix="/credits", tags=["credits"])
app.include_router(jobs.router, prefix="/jobs", tags=["jobs"])
app.include_router(proxy.router, tags=["proxy"])
