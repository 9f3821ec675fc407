"""
Per-signature live processing: classify, price, book into the ledger and hand
an enriched TradeEvent to a sink. Subscribing to wallet logs is left to the
caller; it only needs to call process_signature for each new signature.
"""
import json
import logging
import threading
import time
from typing import Callable, Dict, Iterable, List, Optional

from . import constants as C
from .classifier import analyze_trade, determine_mode, is_cash, resolve_trade_price
from .errors import RpcError, StoreError
from .ledger import PositionLedger
from .models import TradeEvent, WalletConfig
from .prices import PriceOracle
from .retry import DEFAULT_POLICY, RetryPolicy, with_retry
from .rpc import SolanaRpc
from .tokens import TokenResolver

logger = logging.getLogger(__name__)


def load_wallets(path: str) -> List[WalletConfig]:
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    out = []
    for w in data.get("wallets") or []:
        extra = {k: v for k, v in w.items() if k not in ("address", "name")}
        out.append(WalletConfig(address=w["address"], name=w.get("name", ""), extra=extra))
    logger.info("Loaded %d wallet configurations from %s", len(out), path)
    return out


class WalletTracker:
    def __init__(self, rpc: SolanaRpc, resolver: TokenResolver, oracle: PriceOracle,
                 ledger: PositionLedger, sink: Callable[[TradeEvent], None],
                 wallets: Iterable[WalletConfig] = (), enrich_holdings: bool = True,
                 enrich_pnl: bool = True, policy: RetryPolicy = DEFAULT_POLICY,
                 sleep: Callable[[float], None] = time.sleep):
        self.rpc = rpc
        self.resolver = resolver
        self.oracle = oracle
        self.ledger = ledger
        self.sink = sink
        self.wallets: Dict[str, WalletConfig] = {w.address: w for w in wallets}
        self.enrich_holdings = enrich_holdings
        self.enrich_pnl = enrich_pnl
        self.policy = policy
        self.sleep = sleep
        self.known_signatures = set()
        self._known_lock = threading.Lock()
        self._wallet_locks: Dict[str, threading.Lock] = {}

    def _wallet_lock(self, address: str) -> threading.Lock:
        with self._known_lock:
            return self._wallet_locks.setdefault(address, threading.Lock())

    def _claim(self, signature: str) -> bool:
        with self._known_lock:
            if signature in self.known_signatures:
                return False
            self.known_signatures.add(signature)
            return True

    def process_signature(self, signature: str, wallet: WalletConfig) -> Optional[TradeEvent]:
        """Handle one notification. Errors are logged, never raised."""
        if not self._claim(signature):
            return None
        try:
            with self._wallet_lock(wallet.address):
                event = self._process(signature, wallet)
        except (RpcError, StoreError) as e:
            logger.error("Error processing transaction %s: %s", signature, e, exc_info=True)
            return None
        if event is not None:
            self.sink(event)
        return event

    def _process(self, signature: str, wallet: WalletConfig) -> Optional[TradeEvent]:
        tx = with_retry(lambda: self.rpc.get_transaction(signature), "getTransaction",
                        self.policy, sleep=self.sleep)
        if tx is None or tx.failed:
            return None

        trade = analyze_trade(tx, wallet.address, self.resolver)
        if not trade.is_complete:
            logger.info("Insufficient trade information in transaction %s", signature)
            return None

        mode = determine_mode(trade.token_in, trade.token_out)
        event = TradeEvent(signature=signature, wallet=wallet, mode=mode, trade=trade,
                           timestamp=tx.block_time or int(time.time()))
        if not (self.enrich_holdings or self.enrich_pnl):
            return event

        traded = trade.token_out if is_cash(trade.token_in) else trade.token_in
        event.traded_token = traded
        event.current_price_usd = self.oracle.get_token_usd(traded.address)
        event.trade_price_usd = resolve_trade_price(mode, trade, self.oracle.get_native_usd)

        amount = trade.qty_in if traded is trade.token_in else trade.qty_out
        holding = (self.ledger.holding_qty(wallet.address, traded.address, traded.symbol)
                   if self.enrich_holdings else 0.0)

        if self.enrich_pnl and mode in (C.BUY, C.SELL):
            ref = event.trade_price_usd if event.trade_price_usd is not None else event.current_price_usd
            self.ledger.update(wallet.address, traded.address, mode, amount, ref,
                               symbol=traded.symbol, signature=signature)

        pos = (self.ledger.get_position(wallet.address, traded.address, traded.symbol)
               if self.enrich_pnl else None)
        snap = self.ledger.snapshot(pos, holding, event.current_price_usd)
        if not self.enrich_pnl:
            snap.avg_entry_usd = snap.unrealized_pnl_usd = snap.unrealized_pnl_pct = None
            snap.realized_pnl_usd = None
        event.snapshot = snap
        return event
