from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from . import constants as C

# =========================
# Chain data
# =========================


@dataclass
class TokenInfo:
    symbol: str
    address: str
    name: Optional[str] = None

    @property
    def is_native(self) -> bool:
        return (self.symbol == C.NATIVE_SYMBOL
                or self.address in (C.NATIVE_ADDRESS, C.NATIVE_KEY, C.SOL_MINT))


NATIVE_TOKEN = TokenInfo(C.NATIVE_SYMBOL, C.NATIVE_ADDRESS, "Solana")


@dataclass
class TokenBalance:
    account_index: int
    mint: str
    owner: Optional[str]
    amount: float


@dataclass
class TxMeta:
    """Validated view of a getTransaction result, restricted to what PnL needs."""
    signature: str
    block_time: Optional[int]
    account_keys: List[str] = field(default_factory=list)
    pre_balances: List[int] = field(default_factory=list)
    post_balances: List[int] = field(default_factory=list)
    pre_token_balances: List[TokenBalance] = field(default_factory=list)
    post_token_balances: List[TokenBalance] = field(default_factory=list)
    err: Any = None

    @property
    def failed(self) -> bool:
        return self.err is not None

    def native_delta(self, wallet: str) -> float:
        try:
            i = self.account_keys.index(wallet)
        except ValueError:
            return 0.0
        pre = self.pre_balances[i] if i < len(self.pre_balances) else 0
        post = self.post_balances[i] if i < len(self.post_balances) else 0
        return (post - pre) / C.LAMPORTS_PER_SOL

    def mint_deltas(self, wallet: str) -> Dict[str, float]:
        """Net change per mint across every token account the wallet owns.

        Insertion order is first-seen order (pre balances, then post).
        """
        pre: Dict[str, float] = {}
        post: Dict[str, float] = {}
        for b in self.pre_token_balances:
            if b.owner == wallet:
                pre[b.mint] = pre.get(b.mint, 0.0) + b.amount
        for b in self.post_token_balances:
            if b.owner == wallet:
                post[b.mint] = post.get(b.mint, 0.0) + b.amount
        out: Dict[str, float] = {}
        for m in list(pre) + [m for m in post if m not in pre]:
            out[m] = post.get(m, 0.0) - pre.get(m, 0.0)
        return out

    def mint_delta(self, wallet: str, mint: str) -> float:
        return self.mint_deltas(wallet).get(mint, 0.0)


@dataclass
class SignatureRecord:
    signature: str
    block_time: Optional[int] = None


@dataclass
class TokenAccount:
    pubkey: str
    mint: str
    amount: float = 0.0


# =========================
# Trades
# =========================


@dataclass
class ClassifiedTrade:
    token_in: Optional[TokenInfo] = None   # received
    token_out: Optional[TokenInfo] = None  # spent
    qty_in: float = 0.0
    qty_out: float = 0.0

    @property
    def is_empty(self) -> bool:
        return self.token_in is None and self.token_out is None

    @property
    def is_complete(self) -> bool:
        return (self.token_in is not None and self.token_out is not None
                and self.qty_in > 0 and self.qty_out > 0)


# =========================
# Positions
# =========================


@dataclass
class Position:
    qty: float = 0.0
    cost_usd: float = 0.0
    avg_entry_usd: float = 0.0
    realized_pnl_usd: float = 0.0
    updated_at: int = 0

    # Stored field names are shared with the existing RTDB data
    def to_dict(self) -> Dict[str, Any]:
        return {
            "qty": self.qty,
            "costUsd": self.cost_usd,
            "avgEntryUsd": self.avg_entry_usd,
            "realizedPnlUsd": self.realized_pnl_usd,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Position":
        return cls(
            qty=float(d.get("qty") or 0),
            cost_usd=float(d.get("costUsd") or 0),
            avg_entry_usd=float(d.get("avgEntryUsd") or 0),
            realized_pnl_usd=float(d.get("realizedPnlUsd") or 0),
            updated_at=int(d.get("updatedAt") or 0),
        )


@dataclass
class PnlSnapshot:
    holding_qty: float
    holding_value_usd: Optional[float] = None
    avg_entry_usd: Optional[float] = None
    unrealized_pnl_usd: Optional[float] = None
    unrealized_pnl_pct: Optional[float] = None
    realized_pnl_usd: Optional[float] = None


# =========================
# Live path
# =========================


@dataclass
class WalletConfig:
    address: str
    name: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TradeEvent:
    signature: str
    wallet: WalletConfig
    mode: str
    trade: ClassifiedTrade
    timestamp: int
    traded_token: Optional[TokenInfo] = None
    trade_price_usd: Optional[float] = None
    current_price_usd: Optional[float] = None
    snapshot: Optional[PnlSnapshot] = None
