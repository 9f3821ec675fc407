"""
Weighted-average cost ledger keyed by (wallet, instrument).

All mutations go through PositionLedger.update. Updates for one key are
serialized; different keys never share state beyond the store.
"""
import logging
import math
import threading
import time
from typing import Callable, Dict, Optional, Set

from . import constants as C
from .errors import RpcError, StoreError
from .models import PnlSnapshot, Position
from .rpc import SolanaRpc
from .store import Key, PositionCache, PositionStore

logger = logging.getLogger(__name__)

DUST_QTY = 1e-12


def instrument_key(address: str, symbol: Optional[str] = None) -> str:
    if symbol == C.NATIVE_SYMBOL or address in (C.NATIVE_ADDRESS, C.NATIVE_KEY):
        return C.NATIVE_KEY
    return address


def _price(p) -> Optional[float]:
    if isinstance(p, bool) or not isinstance(p, (int, float)):
        return None
    if not math.isfinite(p) or p <= 0:
        return None
    return float(p)


def compute_snapshot(pos: Optional[Position], holding_qty: float,
                     current_price_usd: Optional[float] = None) -> PnlSnapshot:
    snap = PnlSnapshot(holding_qty=holding_qty)
    price = _price(current_price_usd)
    if price is not None:
        snap.holding_value_usd = holding_qty * price
    if pos is None:
        return snap

    avg = pos.avg_entry_usd or 0.0
    if avg > 0:
        snap.avg_entry_usd = avg
        if price is not None:
            diff = price - avg
            snap.unrealized_pnl_usd = holding_qty * diff
            snap.unrealized_pnl_pct = diff / avg * 100
    snap.realized_pnl_usd = pos.realized_pnl_usd
    return snap


class PositionLedger:
    def __init__(self, store: PositionStore, cache: Optional[PositionCache] = None,
                 rpc: Optional[SolanaRpc] = None, clock: Callable[[], float] = time.time):
        self.store = store
        self.cache = cache if cache is not None else PositionCache()
        self.rpc = rpc
        self.clock = clock
        self._locks: Dict[Key, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock(self, key: Key) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(key, threading.Lock())

    # =========================
    # Reads
    # =========================

    def _read_position(self, key: Key) -> Optional[Position]:
        hit = self.cache.get(key)
        if hit is not None:
            return hit
        pos = self.store.get_position(*key)
        if pos is not None:
            self.cache.put(key, pos)
        return pos

    def _read_applied(self, key: Key) -> Set[str]:
        sigs = self.cache.applied(key)
        if sigs is not None:
            return sigs
        sigs = self.store.get_applied(*key)
        self.cache.set_applied(key, sigs)
        return sigs

    def get_position(self, wallet: str, token_address: str,
                     symbol: Optional[str] = None) -> Optional[Position]:
        try:
            return self._read_position((wallet, instrument_key(token_address, symbol)))
        except StoreError as e:
            logger.warning("Position store read failed, using cache only: %s", e)
            return None

    def is_applied(self, wallet: str, token_address: str, signature: str,
                   symbol: Optional[str] = None) -> bool:
        try:
            return signature in self._read_applied((wallet, instrument_key(token_address, symbol)))
        except StoreError as e:
            logger.warning("Applied-signature read failed: %s", e)
            return False

    def holding_qty(self, wallet: str, token_address: str, symbol: Optional[str] = None) -> float:
        """On-chain balance; 0 when it cannot be read."""
        if self.rpc is None:
            return 0.0
        try:
            if instrument_key(token_address, symbol) == C.NATIVE_KEY:
                return self.rpc.get_balance(wallet)
            return sum(a.amount for a in self.rpc.get_token_accounts(wallet, token_address))
        except RpcError as e:
            logger.error("Failed to get holdings of %s for %s: %s", token_address, wallet, e)
            return 0.0

    snapshot = staticmethod(compute_snapshot)

    # =========================
    # Writes
    # =========================

    def update(self, wallet: str, token_address: str, side: str, token_amount: float,
               ref_price_usd: Optional[float] = None, symbol: Optional[str] = None,
               signature: Optional[str] = None) -> Position:
        """Apply one trade leg. A signature already applied to this key is a no-op.

        Raises StoreError, writing nothing, when the stored position or its
        applied signatures cannot be read: a rebuild from zero would overwrite
        the durable record and forget which signatures it already holds.
        """
        key = (wallet, instrument_key(token_address, symbol))
        with self._lock(key):
            if signature and signature in self._read_applied(key):
                logger.debug("Skipping already applied %s for %s/%s", signature, *key)
                return self._read_position(key) or Position()

            pos = self._read_position(key)
            if pos is None:
                pos = Position(updated_at=int(self.clock()))
            apply_trade(pos, side, token_amount, ref_price_usd)
            pos.updated_at = int(self.clock())

            self._save(key, pos)
            if signature:
                self._mark_applied(key, signature)
            return pos

    def reset(self, wallet: str, token_address: str, symbol: Optional[str] = None) -> None:
        key = (wallet, instrument_key(token_address, symbol))
        with self._lock(key):
            self.cache.drop(key)
            self.cache.set_applied(key, set())
            try:
                self.store.reset(*key)
            except StoreError as e:
                logger.warning("Position store reset failed: %s", e)

    def _save(self, key: Key, pos: Position) -> None:
        self.cache.put(key, pos)
        try:
            self.store.set_position(*key, pos)
        except StoreError as e:
            logger.warning("Position store write failed, kept in memory only: %s", e)

    def _mark_applied(self, key: Key, signature: str) -> None:
        self.cache.add_applied(key, signature)
        try:
            self.store.add_applied(*key, signature)
        except StoreError as e:
            logger.warning("Applied-signature write failed, kept in memory only: %s", e)


def apply_trade(pos: Position, side: str, token_amount: float, ref_price_usd=None) -> Position:
    price = _price(ref_price_usd)
    amount = max(0.0, float(token_amount or 0))

    if side == C.BUY:
        pos.qty += amount
        pos.cost_usd += amount * price if price is not None else 0.0
    elif side == C.SELL:
        # Cost relief is capped at what we hold; proceeds use the full amount
        # so sells of pre-tracking inventory still count.
        cost_portion = min(amount, pos.qty) * (pos.avg_entry_usd or 0.0)
        pos.qty = max(0.0, pos.qty - amount)
        pos.cost_usd = max(0.0, pos.cost_usd - cost_portion)
        if price is not None:
            pos.realized_pnl_usd += amount * price - cost_portion
    else:
        return pos

    if pos.qty <= DUST_QTY:
        pos.qty = 0.0
        pos.cost_usd = 0.0
    if pos.qty > 0 and pos.cost_usd > 0:
        pos.avg_entry_usd = pos.cost_usd / pos.qty
    return pos
