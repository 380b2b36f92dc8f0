"""End-to-end tests for the credit, hold and passthrough endpoints."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from inputmax.ai.errors import UpstreamRejectedError
from inputmax.ai.pipeline.contracts import ChatCompletionRequest, SpeechRequest
from inputmax.api.deps import get_ledger, get_redemption, get_upstream
from inputmax.main import app
from inputmax.services.ledger import CreditLedger
from inputmax.services.redemption import RedemptionService

DEVICE = {"X-Device-Id": "device-api"}


class FakeUpstream:
  def __init__(self) -> None:
    self.reject_with: int | None = None

  async def chat(self, request: ChatCompletionRequest) -> dict[str, Any]:
    if self.reject_with is not None:
      raise UpstreamRejectedError(self.reject_with, '{"error": "invalid_api_key"}')
    return {"id": "chatcmpl-1", "model": request.model, "choices": [{"index": 0, "message": {"role": "assistant", "content": "Olá."}}]}

  async def speech(self, request: SpeechRequest) -> bytes:
    return b"ID3" + request.text.encode("utf-8")


@pytest.fixture
def upstream() -> FakeUpstream:
  return FakeUpstream()


@pytest.fixture
async def api_client(ledger: CreditLedger, upstream: FakeUpstream) -> AsyncIterator[AsyncClient]:
  http_client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(500)))
  redemption = RedemptionService(ledger, product_credits={"credits_10": 10}, bundle_id="com.inputmax.app", review_code="letmein", review_grant_amount=5, http_client=http_client)
  app.dependency_overrides[get_ledger] = lambda: ledger
  app.dependency_overrides[get_redemption] = lambda: redemption
  app.dependency_overrides[get_upstream] = lambda: upstream
  try:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
      yield client
  finally:
    app.dependency_overrides.clear()
    await http_client.aclose()


@pytest.mark.anyio
async def test_health(api_client: AsyncClient) -> None:
  response = await api_client.get("/health")
  assert response.status_code == 200
  assert response.json()["status"] == "ok"
  assert response.headers["x-request-id"]


@pytest.mark.anyio
async def test_fresh_device_cannot_start_a_job(api_client: AsyncClient) -> None:
  response = await api_client.post("/jobs/start", json={"amount": 1}, headers=DEVICE)
  assert response.status_code == 402
  body = response.json()
  assert body["detail"] == {"error": "insufficient_credits", "balance": 0, "reserved": 0}
  assert body["requestId"] == response.headers["x-request-id"]


@pytest.mark.anyio
async def test_start_then_commit_charges_once(api_client: AsyncClient, ledger: CreditLedger) -> None:
  await ledger.grant("device-api", 3)

  started = await api_client.post("/jobs/start", json={"amount": 1}, headers=DEVICE)
  assert started.status_code == 200
  job_id = started.json()["jobId"]
  assert started.json()["reserved"] == 1

  committed = await api_client.post("/jobs/commit", json={"jobId": job_id}, headers=DEVICE)
  assert committed.status_code == 200
  assert (committed.json()["balance"], committed.json()["reserved"], committed.json()["already"]) == (2, 0, False)

  again = await api_client.post("/jobs/commit", json={"jobId": job_id}, headers=DEVICE)
  assert (again.json()["balance"], again.json()["already"]) == (2, True)

  balance = await api_client.get("/credits/balance", headers=DEVICE)
  assert balance.json() == {"balance": 2, "reserved": 0, "available": 2}


@pytest.mark.anyio
async def test_start_then_cancel_leaves_balance(api_client: AsyncClient, ledger: CreditLedger) -> None:
  await ledger.grant("device-api", 3)
  started = await api_client.post("/jobs/start", json={"amount": 2, "jobId": "job-c"}, headers=DEVICE)
  assert started.json()["jobId"] == "job-c"

  cancelled = await api_client.post("/jobs/cancel", json={"jobId": "job-c"}, headers=DEVICE)
  assert cancelled.status_code == 200
  assert (cancelled.json()["balance"], cancelled.json()["reserved"]) == (3, 0)


@pytest.mark.anyio
async def test_other_device_cannot_resolve_a_hold(api_client: AsyncClient, ledger: CreditLedger) -> None:
  await ledger.grant("device-api", 1)
  await api_client.post("/jobs/start", json={"amount": 1, "jobId": "job-x"}, headers=DEVICE)
  response = await api_client.post("/jobs/commit", json={"jobId": "job-x"}, headers={"X-Device-Id": "intruder"})
  assert response.status_code == 403
  assert response.json()["detail"]["error"] == "device_mismatch"


@pytest.mark.anyio
async def test_missing_identifiers_are_rejected(api_client: AsyncClient) -> None:
  no_device = await api_client.post("/jobs/start", json={"amount": 1})
  assert no_device.status_code == 400
  assert no_device.json()["detail"] == {"error": "missing_device_id"}

  no_job = await api_client.post("/jobs/commit", json={}, headers=DEVICE)
  assert no_job.status_code == 400
  assert no_job.json()["detail"] == {"error": "missing_jobId"}


@pytest.mark.anyio
async def test_unknown_fields_fail_validation_without_echoing_input(api_client: AsyncClient) -> None:
  response = await api_client.post("/jobs/start", json={"amount": 1, "secret": "hunter2"}, headers=DEVICE)
  assert response.status_code == 422
  assert "hunter2" not in response.text


@pytest.mark.anyio
async def test_review_grant_and_redemption_errors(api_client: AsyncClient) -> None:
  granted = await api_client.post("/credits/review-grant", json={"code": "letmein"}, headers=DEVICE)
  assert granted.json() == {"granted": 5, "already": False, "balance": 5}

  wrong = await api_client.post("/credits/review-grant", json={"code": "guess"}, headers=DEVICE)
  assert wrong.status_code == 403
  assert wrong.json()["detail"]["error"] == "bad_code"

  unsigned = await api_client.post("/credits/redeem-signed", json={"signedTransactions": ["a.b.c"]}, headers=DEVICE)
  assert unsigned.status_code == 500
  assert unsigned.json()["detail"]["error"] == "server_not_configured"


@pytest.mark.anyio
async def test_chat_and_tts_passthrough(api_client: AsyncClient, upstream: FakeUpstream) -> None:
  chat = await api_client.post("/chat", json={"model": "gpt-test", "messages": [{"role": "user", "content": "Oi"}]}, headers=DEVICE)
  assert chat.status_code == 200
  assert chat.json()["choices"][0]["message"]["content"] == "Olá."

  tts = await api_client.post("/tts", json={"text": "Olá.", "speed": "slow"}, headers=DEVICE)
  assert tts.status_code == 200
  assert tts.headers["content-type"] == "audio/mpeg"
  assert tts.content == "ID3Olá.".encode()

  upstream.reject_with = 401
  rejected = await api_client.post("/chat", json={"model": "gpt-test", "messages": [{"role": "user", "content": "Oi"}]}, headers=DEVICE)
  assert rejected.status_code == 401
  assert rejected.json()["detail"]["error"] == "upstream_error"
