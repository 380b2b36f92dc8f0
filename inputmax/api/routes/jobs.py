from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from inputmax.api.deps import get_ledger, require_device_id
from inputmax.api.models import JobResolveRequest, JobResolveResponse, JobStartRequest, JobStartResponse
from inputmax.services.ledger import CreditLedger

router = APIRouter()
logger = logging.getLogger(__name__)


def _require_job_id(payload: JobResolveRequest) -> str:
  job_id = (payload.job_id or "").strip()
  if not job_id:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail={"error": "missing_jobId"})
  return job_id


@router.post("/start", response_model=JobStartResponse)
async def start_job(
  payload: JobStartRequest,
  device_id: str = Depends(require_device_id),  # noqa: B008
  ledger: CreditLedger = Depends(get_ledger),  # noqa: B008
) -> JobStartResponse:
  """Reserve credits for a generation job. 402 when available credits are too low."""
  hold = await ledger.start_job(device_id, payload.amount, job_id=payload.job_id, ttl_seconds=payload.ttl_seconds)
  return JobStartResponse(job_id=hold.job_id, amount=hold.amount, reserved=hold.reserved, balance=hold.balance, expires_at=int(hold.expires_at), already=hold.already)


@router.post("/commit", response_model=JobResolveResponse)
async def commit_job(
  payload: JobResolveRequest,
  device_id: str = Depends(require_device_id),  # noqa: B008
  ledger: CreditLedger = Depends(get_ledger),  # noqa: B008
) -> JobResolveResponse:
  """Charge a hold after the lesson was saved. Idempotent."""
  result = await ledger.commit_job(device_id, _require_job_id(payload))
  return JobResolveResponse(job_id=result.job_id, balance=result.balance, reserved=result.reserved, already=result.already)


@router.post("/cancel", response_model=JobResolveResponse)
async def cancel_job(
  payload: JobResolveRequest,
  device_id: str = Depends(require_device_id),  # noqa: B008
  ledger: CreditLedger = Depends(get_ledger),  # noqa: B008
) -> JobResolveResponse:
  """Release a hold without charging. Idempotent."""
  result = await ledger.cancel_job(device_id, _require_job_id(payload))
  return JobResolveResponse(job_id=result.job_id, balance=result.balance, reserved=result.reserved, already=result.already)
