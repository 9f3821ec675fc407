"""
Historical PnL reconstruction for one (wallet, mint) at a time.

Replay order is oldest-first by block time: weighted-average cost is order
dependent, so discovery order must never leak into the ledger.
"""
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple, TypeVar

from . import constants as C
from .classifier import analyze_trade, resolve_trade_price
from .errors import FatalRpcError, ScanCancelled, StoreError, TrackerError
from .ledger import PositionLedger
from .models import SignatureRecord
from .prices import PriceOracle
from .retry import DEFAULT_POLICY, RetryPolicy, check_cancelled, pause, with_retry
from .rpc import SolanaRpc
from .tokens import TokenResolver

T = TypeVar("T")
logger = logging.getLogger(__name__)


@dataclass
class BackfillResult:
    wallet: str
    mint: str
    signatures: int = 0
    applied: int = 0
    skipped: int = 0
    failed: int = 0


class BackfillReconciler:
    def __init__(self, rpc: SolanaRpc, resolver: TokenResolver, oracle: PriceOracle,
                 ledger: PositionLedger, throttle_sec: float = C.RPC_THROTTLE_MS / 1000.0,
                 max_tx: int = C.BACKFILL_MAX_TX, policy: RetryPolicy = DEFAULT_POLICY,
                 sleep: Callable[[float], None] = time.sleep,
                 cancel: Optional[threading.Event] = None):
        self.rpc = rpc
        self.resolver = resolver
        self.oracle = oracle
        self.ledger = ledger
        self.throttle_sec = throttle_sec
        self.max_tx = max_tx
        self.policy = policy
        self.sleep = sleep
        self.cancel = cancel

    @classmethod
    def from_settings(cls, settings, ledger: PositionLedger, **kw) -> "BackfillReconciler":
        rpc = ledger.rpc or SolanaRpc(settings.rpc_url, timeout=settings.timeout_sec,
                                      max_concurrency=settings.max_concurrency)
        return cls(rpc, TokenResolver(rpc), PriceOracle(ttl_sec=settings.price_cache_seconds),
                   ledger, throttle_sec=settings.throttle_sec, max_tx=settings.backfill_max_tx, **kw)

    def _fetch(self, label: str, fn: Callable[[], T]) -> T:
        check_cancelled(self.cancel)
        try:
            return with_retry(fn, label, self.policy, sleep=self.sleep, cancel=self.cancel)
        finally:
            pause(self.throttle_sec, self.cancel, self.sleep)

    # =========================
    # Discovery
    # =========================

    def list_token_accounts(self, wallet: str, mint: str) -> List[str]:
        accounts = self._fetch("getTokenAccountsByOwner",
                               lambda: self.rpc.get_token_accounts(wallet, mint))
        return [a.pubkey for a in accounts]

    def collect_signatures(self, token_accounts: List[str], max_tx: int) -> List[SignatureRecord]:
        """Page each account newest-first until `max_tx` unique signatures are
        known, dedup across accounts (earliest block time wins), then sort
        oldest first."""
        seen: Dict[str, Optional[int]] = {}
        for ta in token_accounts:
            before = None
            while len(seen) < max_tx:
                limit = min(max_tx - len(seen), C.RPC_SIGNATURE_PAGE_MAX)
                page = self._fetch("getSignaturesForAddress",
                                   lambda ta=ta, limit=limit, before=before:
                                   self.rpc.get_signatures_for_address(ta, limit, before))
                for s in page:
                    if s.signature not in seen:
                        if len(seen) >= max_tx:
                            break
                        seen[s.signature] = s.block_time
                    elif s.block_time is not None:
                        prev = seen[s.signature]
                        seen[s.signature] = s.block_time if prev is None else min(prev, s.block_time)
                # A short page is the end of this account's history
                if len(page) < limit:
                    break
                before = page[-1].signature
            if len(seen) >= max_tx:
                break
        recs = [SignatureRecord(sig, bt) for sig, bt in seen.items()]
        recs.sort(key=lambda r: r.block_time or 0)
        return recs

    # =========================
    # Replay
    # =========================

    def reconstruct_for_token(self, wallet: str, mint: str, max_tx: Optional[int] = None,
                              reset: bool = False) -> BackfillResult:
        """Rebuild the (wallet, mint) position from chain history.

        Signatures already applied to the position are skipped, so re-running
        is safe. `reset=True` wipes the position first and replays everything.
        """
        cap = max(1, max_tx or self.max_tx)
        result = BackfillResult(wallet, mint)
        symbol = self.resolver.resolve(mint).symbol
        if reset:
            self.ledger.reset(wallet, mint, symbol)

        accounts = self.list_token_accounts(wallet, mint)
        if not accounts:
            logger.warning("No token accounts found for wallet/mint %s/%s", wallet, mint)
            return result

        records = self.collect_signatures(accounts, cap)
        result.signatures = len(records)
        if not records:
            logger.info("No transactions found for token accounts of %s/%s", wallet, mint)
            return result

        for rec in records:
            try:
                applied = self._replay_one(wallet, mint, symbol, rec.signature)
            except (FatalRpcError, StoreError) as e:
                result.failed += 1
                logger.warning("Skipping %s during backfill of %s/%s: %s", rec.signature, wallet, mint, e,
                               exc_info=True)
                continue
            if applied:
                result.applied += 1
            else:
                result.skipped += 1

        logger.info("PnL reconstruction completed wallet=%s mint=%s processed=%d applied=%d failed=%d",
                    wallet, mint, result.signatures, result.applied, result.failed)
        return result

    def _replay_one(self, wallet: str, mint: str, symbol: str, signature: str) -> bool:
        if self.ledger.is_applied(wallet, mint, signature, symbol):
            return False
        tx = self._fetch("getTransaction", lambda: self.rpc.get_transaction(signature))
        if tx is None or tx.failed:
            return False

        mint_delta = tx.mint_delta(wallet, mint)
        if not mint_delta:
            return False

        # The target mint is the asset leg; the classifier only finds the cash leg.
        trade = analyze_trade(tx, wallet, self.resolver)
        side = C.BUY if mint_delta > 0 else C.SELL
        price = resolve_trade_price(side, trade, self.oracle.get_native_usd)

        self.ledger.update(wallet, mint, side, abs(mint_delta), price,
                           symbol=symbol, signature=signature)
        return True

    # =========================
    # Whole wallet
    # =========================

    def backfill_wallet(self, wallet: str, max_tx: Optional[int] = None,
                        workers: int = 1) -> Tuple[int, int]:
        """Backfill every SPL mint the wallet currently holds. Returns (done, total)."""
        accounts = self._fetch("getTokenAccountsByOwner",
                               lambda: self.rpc.get_token_accounts_by_program(wallet))
        mints = sorted({a.mint for a in accounts if a.mint and a.amount > 0})
        logger.info("Found %d tokens with non-zero balance for %s", len(mints), wallet)
        if not mints:
            return 0, 0

        def run(mint: str) -> bool:
            try:
                self.reconstruct_for_token(wallet, mint, max_tx=max_tx)
                return True
            except ScanCancelled:
                raise
            except TrackerError as e:
                logger.warning("Backfill failed for mint %s: %s", mint, e)
                return False

        if workers <= 1:
            done = sum(1 for m in mints if run(m))
        else:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                done = sum(1 for ok in pool.map(run, mints) if ok)
        logger.info("Backfilled %d/%d tokens for wallet %s", done, len(mints), wallet)
        return done, len(mints)
