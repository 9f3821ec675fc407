import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

from . import constants as C
from .errors import ConfigError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settings:
    rpc_url: str
    throttle_ms: int = C.RPC_THROTTLE_MS
    max_concurrency: int = C.RPC_MAX_CONCURRENCY
    timeout_sec: float = C.RPC_TIMEOUT_SEC
    backfill_max_tx: int = C.BACKFILL_MAX_TX
    backfill_workers: int = 1
    price_cache_seconds: int = C.PRICE_CACHE_SECONDS
    enrich_holdings: bool = True
    enrich_pnl: bool = True
    firebase_database_url: Optional[str] = None
    firebase_credentials_file: Optional[str] = None

    @property
    def throttle_sec(self) -> float:
        return max(0, self.throttle_ms) / 1000.0

    @property
    def firebase_enabled(self) -> bool:
        return bool(self.firebase_database_url)


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or str(raw).strip() == "":
        return default
    try:
        return int(float(raw))
    except (ValueError, OverflowError):
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default


def _bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or str(raw).strip() == "":
        return default
    return str(raw).strip().lower() in ("1", "true", "yes", "on")


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Read settings from `env` (defaults to os.environ after loading .env)."""
    if env is None:
        load_dotenv()
        env = os.environ

    rpc_url = (env.get("HELIUS_RPC_URL") or "").strip()
    if not rpc_url:
        raise ConfigError("HELIUS_RPC_URL not set")

    return Settings(
        rpc_url=rpc_url,
        throttle_ms=max(0, _int(env, "RPC_THROTTLE_MS", C.RPC_THROTTLE_MS)),
        max_concurrency=max(1, _int(env, "RPC_MAX_CONCURRENCY", C.RPC_MAX_CONCURRENCY)),
        timeout_sec=max(1, _int(env, "RPC_TIMEOUT_SEC", C.RPC_TIMEOUT_SEC)),
        backfill_max_tx=max(1, _int(env, "BACKFILL_MAX_TX", C.BACKFILL_MAX_TX)),
        backfill_workers=max(1, _int(env, "BACKFILL_WORKERS", 1)),
        price_cache_seconds=max(C.PRICE_CACHE_MIN_SECONDS,
                                _int(env, "WTRACK_PRICE_CACHE_SECONDS", C.PRICE_CACHE_SECONDS)),
        enrich_holdings=_bool(env, "WTRACK_ENRICH_HOLDINGS", True),
        enrich_pnl=_bool(env, "WTRACK_ENRICH_PNL", True),
        firebase_database_url=(env.get("FIREBASE_DATABASE_URL") or "").strip() or None,
        firebase_credentials_file=(env.get("FIREBASE_SERVICE_ACCOUNT_FILE")
                                   or env.get("GOOGLE_APPLICATION_CREDENTIALS") or None),
    )
