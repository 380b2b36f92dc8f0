"""Credit redemption: review codes, legacy App Store receipts and StoreKit signed transactions."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import httpx
import jwt

from inputmax.services.ledger import CreditLedger

logger = logging.getLogger(__name__)

RECEIPT_PRODUCTION_URL = "https://buy.itunes.apple.com/verifyReceipt"
RECEIPT_SANDBOX_URL = "https://sandbox.itunes.apple.com/verifyReceipt"
STOREKIT_HOSTS: tuple[tuple[str, str], ...] = (("PROD", "https://api.storekit.itunes.apple.com"), ("SANDBOX", "https://api.storekit-sandbox.itunes.apple.com"))
SANDBOX_RECEIPT_STATUS = 21007
APPSTORE_TOKEN_LIFETIME_SECONDS = 180
MIN_RECEIPT_LENGTH = 100


class RedemptionError(RuntimeError):
  """A redemption request failed with a client-facing error code."""

  def __init__(self, code: str, status_code: int, **extra: Any) -> None:
    self.code = code
    self.status_code = status_code
    self.extra = extra
    super().__init__(f"{code} (status={status_code})")

  def as_detail(self) -> dict[str, Any]:
    return {"error": self.code, **self.extra}


@dataclass(frozen=True)
class ReviewGrantResult:
  granted: int
  balance: int
  already: bool = False


@dataclass(frozen=True)
class ReceiptRedemption:
  granted: int
  balance: int
  environment: str


@dataclass(frozen=True)
class SignedRedemption:
  granted: int
  balance: int
  per_tx: list[dict[str, Any]] = field(default_factory=list)


def _unverified_claims(token: str) -> dict[str, Any] | None:
  """Read a JWS payload without checking its signature."""
  try:
    claims = jwt.decode(token, options={"verify_signature": False})
  except jwt.PyJWTError:
    return None
  return claims if isinstance(claims, dict) else None


def _marker(product_id: str, credits: int) -> str:
  return json.dumps({"productId": product_id, "creditsGranted": credits, "ts": int(time.time() * 1000)})


class RedemptionService:
  """Turn verified purchases into ledger grants, once per transaction."""

  def __init__(
    self,
    ledger: CreditLedger,
    *,
    product_credits: dict[str, int],
    bundle_id: str | None,
    review_code: str | None = None,
    review_grant_amount: int = 20,
    appstore_issuer_id: str | None = None,
    appstore_key_id: str | None = None,
    appstore_private_key: str | None = None,
    http_client: httpx.AsyncClient | None = None,
  ) -> None:
    self._ledger = ledger
    self._product_credits = product_credits
    self._bundle_id = bundle_id
    self._review_code = (review_code or "").strip()
    self._review_grant_amount = review_grant_amount
    self._issuer_id = appstore_issuer_id
    self._key_id = appstore_key_id
    # Secrets copied from consoles often carry literal "\n" sequences.
    self._private_key = appstore_private_key.replace("\\n", "\n").strip() if appstore_private_key else None
    self._http = http_client or httpx.AsyncClient(timeout=20.0, trust_env=False)

  async def aclose(self) -> None:
    await self._http.aclose()

  def credits_for(self, product_id: str) -> int:
    """Resolve credits for a product id, matching either the full id or its last dotted segment."""
    if product_id in self._product_credits:
      return self._product_credits[product_id]
    return self._product_credits.get(product_id.rsplit(".", 1)[-1], 0)

  async def review_grant(self, device_id: str, code: str) -> ReviewGrantResult:
    provided = (code or "").strip()
    if not provided or not self._review_code or provided != self._review_code:
      logger.info("Review grant rejected device=%s", device_id)
      raise RedemptionError("bad_code", 403)

    granted, balance = await self._ledger.grant_once(device_id, f"review_granted:{device_id}", self._review_grant_amount, marker_value=str(int(time.time() * 1000)))
    if not granted:
      return ReviewGrantResult(granted=0, balance=balance, already=True)
    return ReviewGrantResult(granted=self._review_grant_amount, balance=balance)

  async def _verify_receipt(self, receipt: str, *, sandbox: bool) -> dict[str, Any] | None:
    url = RECEIPT_SANDBOX_URL if sandbox else RECEIPT_PRODUCTION_URL
    response = await self._http.post(url, json={"receipt-data": receipt, "exclude-old-transactions": True})
    try:
      data = response.json()
    except ValueError:
      logger.warning("Receipt verification returned non-JSON status=%s", response.status_code)
      return None
    return data if isinstance(data, dict) else None

  async def redeem_receipt(self, device_id: str, receipt: str) -> ReceiptRedemption:
    """Verify a base64 App Store receipt and grant credits for unseen transactions."""
    receipt = (receipt or "").strip()
    if len(receipt) < MIN_RECEIPT_LENGTH:
      raise RedemptionError("missing_receipt", 400)

    data = await self._verify_receipt(receipt, sandbox=False)
    if data is not None and data.get("status") == SANDBOX_RECEIPT_STATUS:
      logger.info("Receipt belongs to sandbox; retrying sandbox endpoint")
      data = await self._verify_receipt(receipt, sandbox=True)

    status = data.get("status") if data else None
    if status != 0:
      raise RedemptionError("verify_failed", 400, status=status if isinstance(status, int) else -1)

    receipt_info = data.get("receipt") or {}
    bundle_in_receipt = receipt_info.get("bundle_id")
    if bundle_in_receipt != self._bundle_id:
      raise RedemptionError("bundle_mismatch", 400, got=bundle_in_receipt, want=self._bundle_id)

    items = [*(data.get("latest_receipt_info") or []), *(receipt_info.get("in_app") or [])]
    granted_total = 0
    for item in items:
      tx_id = str(item.get("transaction_id") or item.get("original_transaction_id") or "").strip()
      product_id = str(item.get("product_id") or "").strip()
      if not tx_id or not product_id:
        continue
      credits = self.credits_for(product_id)
      granted, _ = await self._ledger.grant_once(device_id, f"iap:{tx_id}", credits, marker_value=_marker(product_id, credits))
      if granted:
        granted_total += credits
      else:
        logger.info("Receipt transaction already processed tx_id=%s", tx_id)

    balance = (await self._ledger.balance(device_id)).balance
    environment = str(data.get("environment") or "Unknown")
    logger.info("Receipt redeemed device=%s granted=%d balance=%d env=%s", device_id, granted_total, balance, environment)
    return ReceiptRedemption(granted=granted_total, balance=balance, environment=environment)

  def build_appstore_token(self, *, now: int | None = None) -> str:
    """Sign the short-lived ES256 token required by the App Store Server API."""
    missing = [name for name, value in (("INPUTMAX_APPSTORE_ISSUER_ID", self._issuer_id), ("INPUTMAX_APPSTORE_KEY_ID", self._key_id), ("INPUTMAX_APPSTORE_PRIVATE_KEY", self._private_key)) if not value]
    if missing:
      raise RedemptionError("server_not_configured", 500, missing=missing)

    issued_at = int(now if now is not None else time.time())
    payload = {"iss": self._issuer_id, "iat": issued_at, "exp": issued_at + APPSTORE_TOKEN_LIFETIME_SECONDS, "aud": "appstoreconnect-v1", "bid": self._bundle_id}
    return jwt.encode(payload, self._private_key, algorithm="ES256", headers={"kid": self._key_id, "typ": "JWT"})

  async def _transaction_info(self, tx_id: str) -> tuple[dict[str, Any], str]:
    """Look a transaction up in production, then sandbox."""
    last_status = 0
    last_env = "PROD"
    last_body = ""
    for environment, host in STOREKIT_HOSTS:
      token = self.build_appstore_token()
      url = f"{host}/inApps/v1/transactions/{quote(tx_id, safe='')}"
      response = await self._http.get(url, headers={"Authorization": f"Bearer {token}", "Accept": "application/json"})
      if response.is_success:
        try:
          body = response.json()
        except ValueError:
          body = None
        if isinstance(body, dict) and body.get("signedTransactionInfo"):
          return body, environment
      last_status, last_env, last_body = response.status_code, environment, response.text

    logger.warning("Transaction lookup failed tx_id=%s env=%s status=%s body=%s", tx_id, last_env, last_status, last_body[:400])
    if last_status in {401, 403}:
      raise RedemptionError("apple_jwt_invalid", 502, status=last_status, environmentTried=last_env)
    if last_status == 404:
      raise RedemptionError("transaction_not_found", 404, status=last_status, environmentTried=last_env)
    if last_status == 429:
      raise RedemptionError("apple_rate_limited", 503, status=last_status, environmentTried=last_env)
    raise RedemptionError("apple_verification_unavailable", 503, status=last_status, environmentTried=last_env)

  async def redeem_signed(self, device_id: str, signed_transactions: list[str]) -> SignedRedemption:
    """Redeem StoreKit 2 signed transactions after confirming each with Apple."""
    if not signed_transactions:
      raise RedemptionError("missing_signed_transactions", 400)
    # Fail before any lookups when credentials are absent.
    self.build_appstore_token()

    granted_total = 0
    per_tx: list[dict[str, Any]] = []
    for jws in signed_transactions:
      if jws.count(".") != 2:
        per_tx.append({"error": "bad_jws_parts"})
        continue
      client_claims = _unverified_claims(jws)
      if client_claims is None:
        per_tx.append({"error": "bad_client_payload"})
        continue
      tx_id = str(client_claims.get("transactionId") or "").strip()
      if not tx_id:
        per_tx.append({"error": "missing_txId"})
        continue

      info, environment = await self._transaction_info(tx_id)
      apple_claims = _unverified_claims(str(info["signedTransactionInfo"]))
      if apple_claims is None:
        per_tx.append({"txId": tx_id, "error": "bad_apple_payload"})
        continue

      apple_tx_id = str(apple_claims.get("transactionId") or "").strip()
      product_id = str(apple_claims.get("productId") or "").strip()
      bundle_id = str(apple_claims.get("bundleId") or "").strip()
      if not apple_tx_id or not product_id or not bundle_id:
        per_tx.append({"txId": tx_id, "error": "apple_fields_missing"})
        continue
      if bundle_id != self._bundle_id:
        per_tx.append({"txId": tx_id, "error": "bundle_mismatch", "got": bundle_id, "want": self._bundle_id})
        continue
      if apple_tx_id != tx_id:
        per_tx.append({"txId": tx_id, "error": "tx_mismatch", "appleTxId": apple_tx_id})
        continue

      credits = self.credits_for(product_id)
      granted, _ = await self._ledger.grant_once(device_id, f"iap:{apple_tx_id}", credits, marker_value=_marker(product_id, credits))
      if not granted:
        per_tx.append({"txId": tx_id, "ok": True, "duplicate": True, "productId": product_id, "credits": 0})
        continue
      granted_total += credits
      per_tx.append({"txId": tx_id, "ok": True, "productId": product_id, "credits": credits, "environment": environment})

    balance = (await self._ledger.balance(device_id)).balance
    logger.info("Signed transactions redeemed device=%s granted=%d balance=%d", device_id, granted_total, balance)
    return SignedRedemption(granted=granted_total, balance=balance, per_tx=per_tx)
