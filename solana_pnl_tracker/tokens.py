import logging
import threading
from typing import Dict, Optional, Tuple

from . import constants as C
from .errors import RpcError
from .models import TokenInfo
from .rpc import SolanaRpc

logger = logging.getLogger(__name__)


def placeholder(mint: str) -> TokenInfo:
    return TokenInfo(symbol=mint[:4] + "...", address=mint)


def _clean(s) -> str:
    return str(s or "").replace("\0", "").strip()


class TokenResolver:
    """mint -> symbol/name. Known tokens first, then on-chain metadata via DAS.

    Never raises; an unknown mint comes back as a truncated-address placeholder.
    Placeholders are not cached so a later lookup can still succeed.
    """

    def __init__(self, rpc: Optional[SolanaRpc] = None,
                 known: Optional[Dict[str, Tuple[str, str]]] = None):
        self.rpc = rpc
        self.known = dict(C.KNOWN_TOKENS if known is None else known)
        self._cache: Dict[str, TokenInfo] = {}
        self._lock = threading.Lock()

    def resolve(self, mint: str) -> TokenInfo:
        if mint in self.known:
            symbol, name = self.known[mint]
            return TokenInfo(symbol, mint, name)
        with self._lock:
            hit = self._cache.get(mint)
        if hit:
            return hit

        info = self._lookup(mint)
        if info is None:
            return placeholder(mint)
        with self._lock:
            self._cache[mint] = info
        return info

    def _lookup(self, mint: str) -> Optional[TokenInfo]:
        if self.rpc is None:
            return None
        try:
            asset = self.rpc.get_asset(mint)
        except RpcError as e:
            logger.error("Failed to fetch metadata for mint %s: %s", mint, e)
            return None
        if not isinstance(asset, dict):
            return None
        md = (asset.get("content") or {}).get("metadata") or {}
        symbol = _clean(md.get("symbol")) or _clean((asset.get("token_info") or {}).get("symbol"))
        if not symbol:
            return None
        return TokenInfo(symbol, mint, _clean(md.get("name")) or None)
