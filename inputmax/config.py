"""Application configuration loaded from environment variables."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from functools import lru_cache

from inputmax.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

DEFAULT_PRODUCT_CREDITS: dict[str, int] = {"credits_10": 10, "credits_50": 50}


@dataclass(frozen=True)
class Settings:
  """Typed settings for the InputMax edge service and generation client."""

  environment: str
  debug: bool
  allowed_origins: tuple[str, ...]
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  log_http_bodies: bool
  log_http_body_bytes: int
  kv_dsn: str | None
  openai_api_key: str | None
  chat_model: str
  tts_model: str
  tts_voice: str
  hold_ttl_seconds: int
  job_starts_per_minute: int
  review_code: str | None
  review_grant_amount: int
  appstore_issuer_id: str | None
  appstore_key_id: str | None
  appstore_private_key: str | None
  app_bundle_id: str | None
  product_credits: dict[str, int] = field(hash=False)
  proxy_base_url: str
  device_id: str | None
  lessons_dir: str
  text_timeout_seconds: float
  audio_timeout_seconds: float
  retry_attempts: int
  retry_initial_delay: float
  retry_factor: float
  credits_per_lesson: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    return ()

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if "*" in origins:
    raise ValueError("INPUTMAX_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_product_credits(raw: str | None) -> dict[str, int]:
  if not raw:
    return dict(DEFAULT_PRODUCT_CREDITS)
  try:
    parsed = json.loads(raw)
  except json.JSONDecodeError as exc:
    raise ValueError("INPUTMAX_PRODUCT_CREDITS must be a JSON object.") from exc
  if not isinstance(parsed, dict):
    raise ValueError("INPUTMAX_PRODUCT_CREDITS must be a JSON object.")
  return {str(key): int(value) for key, value in parsed.items()}


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _non_negative_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value < 0:
    raise ValueError(f"{name} must be zero or a positive integer.")
  return value


def _positive_float(name: str, default: str) -> float:
  value = float(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive number.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("INPUTMAX_ENV", "development").lower()
  debug = _parse_bool(os.getenv("INPUTMAX_DEBUG"))

  log_max_bytes = _positive_int("INPUTMAX_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = _non_negative_int("INPUTMAX_LOG_BACKUP_COUNT", "10")
  # Allow opt-in logging of 4xx HTTPExceptions for diagnostics.
  log_http_4xx = _parse_bool(os.getenv("INPUTMAX_LOG_HTTP_4XX"))
  # Allow opt-in logging of HTTP request/response bodies with a size cap.
  log_http_bodies = _parse_bool(os.getenv("INPUTMAX_LOG_HTTP_BODIES"))
  log_http_body_bytes = _positive_int("INPUTMAX_LOG_HTTP_BODY_BYTES", "2048")

  hold_ttl_seconds = _positive_int("INPUTMAX_HOLD_TTL_SECONDS", "1800")
  job_starts_per_minute = _non_negative_int("INPUTMAX_JOB_STARTS_PER_MINUTE", "10")
  review_grant_amount = _positive_int("INPUTMAX_REVIEW_GRANT_AMOUNT", "20")

  retry_attempts = _positive_int("INPUTMAX_RETRY_ATTEMPTS", "3")
  retry_initial_delay = float(os.getenv("INPUTMAX_RETRY_INITIAL_DELAY", "1.0"))
  if retry_initial_delay < 0:
    raise ValueError("INPUTMAX_RETRY_INITIAL_DELAY must be zero or a positive number.")
  retry_factor = _positive_float("INPUTMAX_RETRY_FACTOR", "2.0")

  return Settings(
    environment=environment,
    debug=debug,
    allowed_origins=_parse_origins(os.getenv("INPUTMAX_ALLOWED_ORIGINS")),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=log_http_4xx,
    log_http_bodies=log_http_bodies,
    log_http_body_bytes=log_http_body_bytes,
    kv_dsn=_optional_str(os.getenv("INPUTMAX_KV_DSN")) or _optional_str(os.getenv("DATABASE_URL")),
    openai_api_key=_optional_str(os.getenv("OPENAI_API_KEY")),
    chat_model=os.getenv("INPUTMAX_CHAT_MODEL", "gpt-5-nano"),
    tts_model=os.getenv("INPUTMAX_TTS_MODEL", "gpt-4o-mini-tts"),
    tts_voice=os.getenv("INPUTMAX_TTS_VOICE", "shimmer"),
    hold_ttl_seconds=hold_ttl_seconds,
    job_starts_per_minute=job_starts_per_minute,
    review_code=_optional_str(os.getenv("INPUTMAX_REVIEW_CODE")),
    review_grant_amount=review_grant_amount,
    appstore_issuer_id=_optional_str(os.getenv("INPUTMAX_APPSTORE_ISSUER_ID")),
    appstore_key_id=_optional_str(os.getenv("INPUTMAX_APPSTORE_KEY_ID")),
    appstore_private_key=_optional_str(os.getenv("INPUTMAX_APPSTORE_PRIVATE_KEY")),
    app_bundle_id=_optional_str(os.getenv("INPUTMAX_APP_BUNDLE_ID")),
    product_credits=_parse_product_credits(os.getenv("INPUTMAX_PRODUCT_CREDITS")),
    proxy_base_url=(os.getenv("INPUTMAX_PROXY_BASE_URL") or "http://localhost:8080").strip().rstrip("/"),
    device_id=_optional_str(os.getenv("INPUTMAX_DEVICE_ID")),
    lessons_dir=(os.getenv("INPUTMAX_LESSONS_DIR") or "./lessons").strip(),
    text_timeout_seconds=_positive_float("INPUTMAX_TEXT_TIMEOUT_SECONDS", "60"),
    audio_timeout_seconds=_positive_float("INPUTMAX_AUDIO_TIMEOUT_SECONDS", "120"),
    retry_attempts=retry_attempts,
    retry_initial_delay=retry_initial_delay,
    retry_factor=retry_factor,
    credits_per_lesson=_positive_int("INPUTMAX_CREDITS_PER_LESSON", "1"),
  )
