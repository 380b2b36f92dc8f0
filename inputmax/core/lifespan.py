import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI

from inputmax.ai.providers.upstream import UpstreamModels
from inputmax.core.database import dispose_engine, get_session_factory
from inputmax.core.logging import initialize_logging
from inputmax.services.ledger import CreditLedger
from inputmax.services.redemption import RedemptionService
from inputmax.storage.kv import InMemoryKeyValueStore, KeyValueStore, SqlKeyValueStore


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging, the ledger store and outbound clients for the edge service."""
  from inputmax.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("inputmax.core.lifespan")
  initialize_logging(settings)

  store: KeyValueStore
  session_factory = get_session_factory()
  if session_factory is not None:
    # Schema is managed by alembic (`alembic upgrade head`).
    logger.info("Using SQL key-value store at %s", _redact_dsn(settings.kv_dsn))
    store = SqlKeyValueStore(session_factory)
  else:
    # Balances vanish on restart; acceptable only for local development.
    logger.warning("INPUTMAX_KV_DSN is not set; ledger state is in-memory only.")
    store = InMemoryKeyValueStore()

  ledger = CreditLedger(store, default_ttl_seconds=settings.hold_ttl_seconds, starts_per_minute=settings.job_starts_per_minute)
  app.state.ledger = ledger
  app.state.redemption = RedemptionService(
    ledger,
    product_credits=settings.product_credits,
    bundle_id=settings.app_bundle_id,
    review_code=settings.review_code,
    review_grant_amount=settings.review_grant_amount,
    appstore_issuer_id=settings.appstore_issuer_id,
    appstore_key_id=settings.appstore_key_id,
    appstore_private_key=settings.appstore_private_key,
  )
  app.state.upstream = None
  if settings.openai_api_key:
    app.state.upstream = UpstreamModels(settings.openai_api_key, tts_model=settings.tts_model, tts_voice=settings.tts_voice)
  else:
    logger.warning("OPENAI_API_KEY is not set; /chat and /tts will return 503.")
  logger.info("Startup complete environment=%s", settings.environment)

  try:
    yield
  finally:
    await app.state.redemption.aclose()
    if app.state.upstream is not None:
      await app.state.upstream.aclose()
    await dispose_engine()
    logger.info("Shutdown complete.")


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  if not raw:
    return "<unset>"

  parsed = urlparse(raw)
  if not parsed.scheme:
    return "<invalid>"

  user = parsed.username or ""
  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{user}@{host}{port}" if user else f"{host}{port}"
  database = parsed.path.lstrip("/")
  path = f"/{database}" if database else ""
  return f"{parsed.scheme}://{netloc}{path}"
