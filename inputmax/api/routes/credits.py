from __future__ import annotations

from fastapi import APIRouter, Depends

from inputmax.api.deps import get_ledger, get_redemption, require_device_id
from inputmax.api.models import BalanceResponse, RedeemRequest, RedeemResponse, RedeemSignedRequest, RedeemSignedResponse, ReviewGrantRequest, ReviewGrantResponse
from inputmax.services.ledger import CreditLedger
from inputmax.services.redemption import RedemptionService

router = APIRouter()


@router.get("/balance", response_model=BalanceResponse)
async def get_balance(
  device_id: str = Depends(require_device_id),  # noqa: B008
  ledger: CreditLedger = Depends(get_ledger),  # noqa: B008
) -> BalanceResponse:
  snapshot = await ledger.balance(device_id)
  return BalanceResponse(balance=snapshot.balance, reserved=snapshot.reserved, available=snapshot.available)


@router.post("/review-grant", response_model=ReviewGrantResponse)
async def review_grant(
  payload: ReviewGrantRequest,
  device_id: str = Depends(require_device_id),  # noqa: B008
  redemption: RedemptionService = Depends(get_redemption),  # noqa: B008
) -> ReviewGrantResponse:
  """One-time credit grant for app review devices holding the review code."""
  result = await redemption.review_grant(device_id, payload.code)
  return ReviewGrantResponse(granted=result.granted, already=result.already, balance=result.balance)


@router.post("/redeem", response_model=RedeemResponse)
async def redeem_receipt(
  payload: RedeemRequest,
  device_id: str = Depends(require_device_id),  # noqa: B008
  redemption: RedemptionService = Depends(get_redemption),  # noqa: B008
) -> RedeemResponse:
  result = await redemption.redeem_receipt(device_id, payload.receipt)
  return RedeemResponse(granted=result.granted, balance=result.balance, environment=result.environment)


@router.post("/redeem-signed", response_model=RedeemSignedResponse)
async def redeem_signed(
  payload: RedeemSignedRequest,
  device_id: str = Depends(require_device_id),  # noqa: B008
  redemption: RedemptionService = Depends(get_redemption),  # noqa: B008
) -> RedeemSignedResponse:
  """Redeem StoreKit 2 signed transactions, each confirmed with the App Store Server API."""
  result = await redemption.redeem_signed(device_id, payload.signed_transactions)
  return RedeemSignedResponse(granted=result.granted, per_tx=result.per_tx, balance=result.balance)
