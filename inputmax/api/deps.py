"""Shared FastAPI dependencies for device identity and service access."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from inputmax.ai.providers.proxy import DEVICE_HEADER
from inputmax.ai.providers.upstream import UpstreamModels
from inputmax.services.ledger import CreditLedger
from inputmax.services.redemption import RedemptionService

MAX_DEVICE_ID_LENGTH = 128


async def require_device_id(request: Request) -> str:
  """Return the caller's device id from the X-Device-Id header."""
  device_id = (request.headers.get(DEVICE_HEADER) or "").strip()
  if not device_id:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail={"error": "missing_device_id"})
  if len(device_id) > MAX_DEVICE_ID_LENGTH:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail={"error": "bad_device_id"})
  return device_id


def _service(request: Request, name: str) -> object:
  service = getattr(request.app.state, name, None)
  if service is None:
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail={"error": "service_unavailable", "service": name})
  return service


async def get_ledger(request: Request) -> CreditLedger:
  return _service(request, "ledger")  # type: ignore[return-value]


async def get_redemption(request: Request) -> RedemptionService:
  return _service(request, "redemption")  # type: ignore[return-value]


async def get_upstream(request: Request) -> UpstreamModels:
  return _service(request, "upstream")  # type: ignore[return-value]
