from typing import Callable, Optional

from . import constants as C
from .models import NATIVE_TOKEN, ClassifiedTrade, TokenInfo, TxMeta
from .tokens import TokenResolver


def is_stable(token: Optional[TokenInfo]) -> bool:
    return token is not None and token.address in C.STABLE_MINTS


def is_cash(token: Optional[TokenInfo]) -> bool:
    return token is not None and (token.is_native or is_stable(token))


def analyze_trade(meta: TxMeta, wallet: str, resolver: TokenResolver) -> ClassifiedTrade:
    """Reduce a transaction to its two dominant legs for `wallet`.

    The largest increase becomes token_in, the largest decrease token_out.
    A side with no token movement falls back to the native SOL delta.
    """
    trade = ClassifiedTrade()
    sol_change = meta.native_delta(wallet)

    top_in = top_out = None
    for mint, delta in meta.mint_deltas(wallet).items():
        if delta > 0:
            if top_in is None or delta > top_in[1]:
                top_in = (mint, delta)
        elif delta < 0:
            if top_out is None or -delta > top_out[1]:
                top_out = (mint, -delta)

    if top_in:
        trade.token_in = resolver.resolve(top_in[0])
        trade.qty_in = top_in[1]
    if top_out:
        trade.token_out = resolver.resolve(top_out[0])
        trade.qty_out = top_out[1]

    if trade.token_in is None and sol_change > 0:
        trade.token_in = NATIVE_TOKEN
        trade.qty_in = sol_change
    if trade.token_out is None and sol_change < 0:
        trade.token_out = NATIVE_TOKEN
        trade.qty_out = -sol_change
    return trade


def determine_mode(token_in: Optional[TokenInfo], token_out: Optional[TokenInfo]) -> str:
    if token_in is None or token_out is None:
        return C.SWAP
    if is_cash(token_out) and not is_cash(token_in):
        return C.BUY
    if is_cash(token_in) and not is_cash(token_out):
        return C.SELL
    # cash<->cash or token<->token: no cost basis can be derived
    return C.SWAP


def resolve_trade_price(side: str, trade: ClassifiedTrade,
                        native_usd: Callable[[], Optional[float]]) -> Optional[float]:
    """Per-unit USD price of the non-cash leg, priced off the cash leg.

    `native_usd` is only called when the cash leg is SOL.
    """
    if side == C.BUY:
        cash, cash_qty, qty = trade.token_out, trade.qty_out, trade.qty_in
    elif side == C.SELL:
        cash, cash_qty, qty = trade.token_in, trade.qty_in, trade.qty_out
    else:
        return None
    if cash is None or qty <= 0:
        return None
    if is_stable(cash):
        return cash_qty / qty
    if cash.is_native:
        sol_usd = native_usd()
        if not sol_usd:
            return None
        return cash_qty * sol_usd / qty
    return None
