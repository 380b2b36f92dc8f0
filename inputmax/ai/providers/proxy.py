"""HTTP client for the InputMax edge service plus chat/speech models routed through it."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx
from pydantic import ValidationError

from inputmax.ai.backoff import RemoteCallPolicy, call_remote
from inputmax.ai.errors import AuthorizationMismatchError, InsufficientCreditsError, TransientNetworkError, UpstreamRejectedError, is_retryable_status
from inputmax.ai.pipeline.contracts import ChatCompletionRequest, ChatCompletionResponse, ChatMessage, SpeechRequest, SpeechSpeed
from inputmax.ai.providers.base import AIModel, ModelResponse, SimpleModelResponse, SpeechModel
from inputmax.utils.ids import generate_job_id

logger = logging.getLogger(__name__)

DEVICE_HEADER = "X-Device-Id"
# Hold start, commit and cancel are small ledger writes; retried like any other remote call.
DEFAULT_HOLD_POLICY = RemoteCallPolicy(timeout=30.0)


@dataclass(frozen=True)
class CreditBalance:
  balance: int
  reserved: int
  available: int


def _error_detail(response: httpx.Response) -> dict[str, Any]:
  """Return the structured error body, unwrapping the {"detail": ...} envelope."""
  try:
    payload = response.json()
  except ValueError:
    return {}
  if isinstance(payload, dict) and isinstance(payload.get("detail"), dict):
    return payload["detail"]
  return payload if isinstance(payload, dict) else {}


def raise_for_edge_status(response: httpx.Response) -> None:
  """Map an edge-service error response onto the error taxonomy."""
  status_code = response.status_code
  if status_code < 400:
    return

  detail = _error_detail(response)
  if status_code == 402:
    raise InsufficientCreditsError(balance=int(detail.get("balance") or 0), reserved=int(detail.get("reserved") or 0))
  if status_code == 403 and detail.get("error") == "device_mismatch":
    raise AuthorizationMismatchError(detail.get("message") or "device_mismatch")
  if is_retryable_status(status_code):
    raise TransientNetworkError(f"Edge service returned {status_code}: {response.text[:200]}")
  raise UpstreamRejectedError(status_code, response.text)


class ProxyClient:
  """Device-scoped client for the ledger, chat and speech endpoints."""

  def __init__(
    self,
    base_url: str,
    device_id: str,
    *,
    http_client: httpx.AsyncClient | None = None,
    timeout: float = 130.0,
    hold_policy: RemoteCallPolicy = DEFAULT_HOLD_POLICY,
  ) -> None:
    if not device_id:
      raise ValueError("device_id is required")
    self.device_id = device_id
    self._hold_policy = hold_policy
    self._http = http_client or httpx.AsyncClient(base_url=base_url, timeout=timeout, trust_env=False)
    self._http.headers[DEVICE_HEADER] = device_id

  async def aclose(self) -> None:
    await self._http.aclose()

  async def __aenter__(self) -> ProxyClient:
    return self

  async def __aexit__(self, *exc_info: object) -> None:
    await self.aclose()

  async def _request(self, method: str, path: str, *, json: dict[str, Any] | None = None) -> httpx.Response:
    try:
      response = await self._http.request(method, path, json=json)
    except httpx.TimeoutException as exc:
      raise TransientNetworkError(f"{method} {path} timed out") from exc
    except httpx.TransportError as exc:
      raise TransientNetworkError(f"{method} {path} failed: {exc}") from exc
    raise_for_edge_status(response)
    return response

  async def balance(self) -> CreditBalance:
    data = (await self._request("GET", "/credits/balance")).json()
    return CreditBalance(balance=int(data.get("balance", 0)), reserved=int(data.get("reserved", 0)), available=int(data.get("available", 0)))

  async def start_job(self, amount: int, *, job_id: str | None = None, ttl_seconds: int | None = None) -> str:
    """Open a hold. The job id is fixed before the first attempt so retried starts are idempotent."""
    payload: dict[str, Any] = {"amount": amount, "jobId": job_id or generate_job_id()}
    if ttl_seconds is not None:
      payload["ttlSeconds"] = ttl_seconds
    response = await call_remote(lambda: self._request("POST", "/jobs/start", json=payload), self._hold_policy)
    return str(response.json()["jobId"])

  async def commit_job(self, job_id: str) -> int | None:
    response = await call_remote(lambda: self._request("POST", "/jobs/commit", json={"jobId": job_id}), self._hold_policy)
    return response.json().get("balance")

  async def cancel_job(self, job_id: str) -> int | None:
    response = await call_remote(lambda: self._request("POST", "/jobs/cancel", json={"jobId": job_id}), self._hold_policy)
    return response.json().get("balance")

  async def chat(self, request: ChatCompletionRequest) -> ChatCompletionResponse:
    response = await self._request("POST", "/chat", json=request.model_dump(mode="json", exclude_none=True))
    try:
      return ChatCompletionResponse.model_validate_json(response.content)
    except ValidationError as exc:
      raise UpstreamRejectedError(response.status_code, f"malformed chat response: {exc}") from exc

  async def tts(self, request: SpeechRequest) -> bytes:
    response = await self._request("POST", "/tts", json=request.model_dump(mode="json", exclude_none=True))
    if not response.content:
      raise UpstreamRejectedError(response.status_code, "empty audio response")
    return response.content


class ProxyChatModel(AIModel):
  """Chat model reached through the edge /chat passthrough."""

  def __init__(self, client: ProxyClient, name: str, policy: RemoteCallPolicy) -> None:
    self.name = name
    self._client = client
    self._policy = policy

  async def generate(self, prompt: str, *, system: str | None = None) -> ModelResponse:
    messages = [ChatMessage(role="system", content=system)] if system else []
    messages.append(ChatMessage(role="user", content=prompt))
    request = ChatCompletionRequest(model=self.name, messages=messages)

    response = await call_remote(lambda: self._client.chat(request), self._policy)
    content = response.content
    if not content:
      raise UpstreamRejectedError(200, "empty completion")
    usage = response.usage.model_dump() if response.usage else None
    logger.debug("Chat completion model=%s chars=%d usage=%s", self.name, len(content), usage)
    return SimpleModelResponse(content=content, usage=usage)


class ProxySpeechModel(SpeechModel):
  """Speech model reached through the edge /tts endpoint."""

  def __init__(self, client: ProxyClient, policy: RemoteCallPolicy, *, voice: str | None = None) -> None:
    self.name = "edge-tts"
    self._client = client
    self._policy = policy
    self._voice = voice

  async def synthesize(self, text: str, *, language: str, speed: SpeechSpeed = "regular") -> bytes:
    request = SpeechRequest(text=text, language=language, speed=speed, voice=self._voice)
    return await call_remote(lambda: self._client.tts(request), self._policy)
