import logging
import threading
import time
from typing import Callable, Dict, Optional, Tuple

import requests

from . import constants as C
from .rpc import sf

logger = logging.getLogger(__name__)

KRAKEN_TICKER_URL = "https://api.kraken.com/0/public/Ticker"
COINGECKO_PRICE_URL = "https://api.coingecko.com/api/v3/simple/price"
DEXSCREENER_TOKENS_URL = "https://api.dexscreener.com/latest/dex/tokens/{mint}"

_LOOKUP_ERRORS = (requests.RequestException, ValueError, KeyError, IndexError, TypeError, AttributeError)


class PriceOracle:
    """Current USD prices. SOL/USD is cached for `ttl_sec`; None means unavailable."""

    def __init__(self, session: Optional[requests.Session] = None,
                 ttl_sec: float = C.PRICE_CACHE_SECONDS, timeout: float = 10,
                 clock: Callable[[], float] = time.monotonic):
        self.session = session or requests.Session()
        self.ttl_sec = max(C.PRICE_CACHE_MIN_SECONDS, ttl_sec)
        self.timeout = timeout
        self.clock = clock
        self._cache: Dict[str, Tuple[float, float]] = {}
        self._lock = threading.Lock()

    def _get_cached(self, key: str) -> Optional[float]:
        with self._lock:
            e = self._cache.get(key)
            if not e:
                return None
            value, ts = e
            if self.clock() - ts < self.ttl_sec:
                return value
            del self._cache[key]
            return None

    def _set_cached(self, key: str, value: float):
        with self._lock:
            self._cache[key] = (value, self.clock())

    def get_native_usd(self) -> Optional[float]:
        cached = self._get_cached("SOL_USD")
        if cached is not None:
            return cached
        for source in (self._kraken_sol, self._coingecko_sol):
            try:
                p = source()
            except _LOOKUP_ERRORS as e:
                logger.warning("SOL price lookup via %s failed: %s", source.__name__, e)
                continue
            if p and p > 0:
                self._set_cached("SOL_USD", p)
                return p
        return None

    def _kraken_sol(self) -> float:
        r = self.session.get(KRAKEN_TICKER_URL, params={"pair": "SOLUSD"}, timeout=self.timeout)
        r.raise_for_status()
        d = r.json()
        if d.get("error"):
            raise ValueError(f"Kraken: {d['error']}")
        rk = list(d["result"].keys())[0]
        return sf(d["result"][rk]["c"][0])

    def _coingecko_sol(self) -> float:
        r = self.session.get(COINGECKO_PRICE_URL, params={"ids": "solana", "vs_currencies": "usd"},
                             timeout=self.timeout)
        r.raise_for_status()
        return sf(r.json()["solana"]["usd"])

    def get_token_usd(self, mint: str) -> Optional[float]:
        """Spot price for any mint; DexScreener's most liquid pair for non-cash tokens."""
        if mint in C.STABLE_MINTS:
            return 1.0
        if mint in (C.SOL_MINT, C.NATIVE_ADDRESS, C.NATIVE_KEY):
            return self.get_native_usd()
        try:
            r = self.session.get(DEXSCREENER_TOKENS_URL.format(mint=mint), timeout=self.timeout)
            if r.status_code != 200:
                return None
            pairs = r.json().get("pairs") or []
        except _LOOKUP_ERRORS as e:
            logger.warning("DexScreener lookup failed for %s: %s", mint, e)
            return None
        if not pairs:
            return None
        best = max(pairs, key=lambda p: sf((p.get("liquidity") or {}).get("usd"), 0))
        p = sf(best.get("priceUsd"), 0)
        return p if p > 0 else None
