"""
Process wiring: settings, logging, store, ledger, and the live tracker and
backfill reconciler sharing one RPC client.

    solana-pnl-backfill <wallet> [<wallet> ...]
"""
import logging
import sys
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Tuple

import requests

from .backfill import BackfillReconciler
from .config import Settings, load_settings
from .errors import TrackerError
from .ledger import PositionLedger
from .logging_config import configure_logging
from .models import TradeEvent, WalletConfig
from .rpc import SolanaRpc
from .store import make_store
from .tracker import WalletTracker

logger = logging.getLogger(__name__)


def log_event(event: TradeEvent) -> None:
    snap = event.snapshot
    logger.info("%s %s %s sig=%s realized=%s unrealized=%s",
                event.wallet.name or event.wallet.address, event.mode,
                event.traded_token.symbol if event.traded_token else "?", event.signature,
                snap.realized_pnl_usd if snap else None, snap.unrealized_pnl_usd if snap else None)


@dataclass
class App:
    settings: Settings
    rpc: SolanaRpc
    ledger: PositionLedger
    backfill: BackfillReconciler
    tracker: WalletTracker

    def backfill_wallet(self, wallet: str, max_tx: Optional[int] = None) -> Tuple[int, int]:
        return self.backfill.backfill_wallet(wallet, max_tx=max_tx,
                                             workers=self.settings.backfill_workers)


def build(settings: Optional[Settings] = None, sink: Callable[[TradeEvent], None] = log_event,
          wallets: Iterable[WalletConfig] = (), session: Optional[requests.Session] = None,
          setup_logging: bool = True) -> App:
    settings = settings or load_settings()
    if setup_logging:
        configure_logging()

    rpc = SolanaRpc(settings.rpc_url, session=session, timeout=settings.timeout_sec,
                    max_concurrency=settings.max_concurrency)
    ledger = PositionLedger(make_store(settings), rpc=rpc)
    backfill = BackfillReconciler.from_settings(settings, ledger)
    tracker = WalletTracker(rpc, backfill.resolver, backfill.oracle, ledger, sink,
                            wallets=wallets, enrich_holdings=settings.enrich_holdings,
                            enrich_pnl=settings.enrich_pnl)
    return App(settings, rpc, ledger, backfill, tracker)


def main(argv: Optional[List[str]] = None) -> int:
    wallets = list(sys.argv[1:] if argv is None else argv)
    try:
        app = build()
    except TrackerError as e:
        logging.basicConfig()
        logger.error("Startup failed: %s", e)
        return 2
    if not wallets:
        logger.error("Usage: solana-pnl-backfill <wallet> [<wallet> ...]")
        return 2

    failed = 0
    for i, w in enumerate(wallets, 1):
        logger.info("[%d/%d] Backfilling %s", i, len(wallets), w)
        try:
            done, total = app.backfill_wallet(w)
        except TrackerError as e:
            logger.error("Backfill failed for %s: %s", w, e, exc_info=True)
            failed += 1
            continue
        if done < total:
            failed += 1
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
