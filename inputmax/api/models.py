from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class HealthResponse(BaseModel):
  status: str
  version: str


class BalanceResponse(BaseModel):
  balance: int
  reserved: int
  available: int


class JobStartRequest(BaseModel):
  """Open a credit hold. Reusing jobId retries the same start."""

  model_config = ConfigDict(extra="forbid", populate_by_name=True)

  amount: float = Field(default=1, ge=0)
  job_id: str | None = Field(default=None, alias="jobId", max_length=128)
  ttl_seconds: int | None = Field(default=None, alias="ttlSeconds")


class JobStartResponse(BaseModel):
  model_config = ConfigDict(populate_by_name=True)

  job_id: str = Field(alias="jobId")
  amount: int
  reserved: int
  balance: int
  expires_at: int = Field(alias="expiresAt")
  already: bool = False


class JobResolveRequest(BaseModel):
  model_config = ConfigDict(extra="forbid", populate_by_name=True)

  job_id: str | None = Field(default=None, alias="jobId")


class JobResolveResponse(BaseModel):
  model_config = ConfigDict(populate_by_name=True)

  job_id: str = Field(alias="jobId")
  balance: int
  reserved: int
  already: bool = False


class ReviewGrantRequest(BaseModel):
  model_config = ConfigDict(extra="forbid")

  code: str = ""


class ReviewGrantResponse(BaseModel):
  granted: int
  already: bool
  balance: int


class RedeemRequest(BaseModel):
  model_config = ConfigDict(extra="forbid")

  receipt: str = ""


class RedeemResponse(BaseModel):
  granted: int
  balance: int
  environment: str


class RedeemSignedRequest(BaseModel):
  model_config = ConfigDict(extra="forbid", populate_by_name=True)

  signed_transactions: list[str] = Field(default_factory=list, alias="signedTransactions", max_length=50)

  @field_validator("signed_transactions")
  @classmethod
  def _drop_blank(cls, value: list[str]) -> list[str]:
    return [token.strip() for token in value if token and token.strip()]


class RedeemSignedResponse(BaseModel):
  model_config = ConfigDict(populate_by_name=True)

  granted: int
  per_tx: list[dict[str, Any]] = Field(alias="perTx")
  balance: int
