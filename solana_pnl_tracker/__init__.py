"""Solana wallet trade classification and weighted-average cost PnL."""

from .app import App, build
from .backfill import BackfillReconciler, BackfillResult
from .classifier import analyze_trade, determine_mode, resolve_trade_price
from .ledger import PositionLedger, compute_snapshot, instrument_key
from .models import ClassifiedTrade, PnlSnapshot, Position, TokenInfo, TradeEvent, TxMeta

__version__ = "0.1.0"
