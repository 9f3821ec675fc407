"""
Thin JSON-RPC client for a Helius (or any Solana) endpoint.

Every failure leaves this module as a TransientRpcError or FatalRpcError so
callers can decide on retries without looking at message text. Payloads are
validated here; nothing past this module sees raw RPC dicts for transactions.
"""
import itertools
import logging
import threading
from typing import Any, Dict, List, Optional

import requests

from . import constants as C
from .errors import FatalRpcError, TransientRpcError
from .models import SignatureRecord, TokenAccount, TokenBalance, TxMeta

logger = logging.getLogger(__name__)

TRANSIENT_HTTP_STATUS = {429, 502, 503, 504}
# 429/-32429: provider rate limits; -32004/-32005: node not caught up yet
TRANSIENT_RPC_CODES = {429, -32429, -32004, -32005}


def sf(x, d=0.0) -> float:
    try:
        return float(x)
    except (TypeError, ValueError):
        return d


def parse_ui_amount(raw) -> float:
    """uiTokenAmount -> float. uiAmount is null for zero balances on some nodes."""
    if not isinstance(raw, dict):
        return 0.0
    ui = raw.get("uiAmount")
    if ui is not None:
        return sf(ui)
    if raw.get("uiAmountString") is not None:
        return sf(raw.get("uiAmountString"))
    amt = raw.get("amount")
    dec = raw.get("decimals")
    if amt is None or dec is None:
        return 0.0
    try:
        return int(str(amt)) / (10 ** int(dec))
    except (TypeError, ValueError):
        return 0.0


def _account_keys(tx: dict, meta: dict) -> List[str]:
    msg = (tx.get("transaction") or {}).get("message") or {}
    keys = []
    for k in msg.get("accountKeys") or []:
        # jsonParsed encoding wraps keys in objects
        keys.append(k.get("pubkey") if isinstance(k, dict) else k)
    loaded = meta.get("loadedAddresses") or {}
    keys.extend(loaded.get("writable") or [])
    keys.extend(loaded.get("readonly") or [])
    return [str(k) for k in keys]


def _token_balances(items) -> List[TokenBalance]:
    out = []
    for b in items or []:
        if not isinstance(b, dict) or not b.get("mint"):
            continue
        out.append(TokenBalance(
            account_index=int(b.get("accountIndex") or 0),
            mint=str(b["mint"]),
            owner=b.get("owner"),
            amount=parse_ui_amount(b.get("uiTokenAmount")),
        ))
    return out


def parse_transaction(signature: str, result: Optional[dict]) -> Optional[TxMeta]:
    if result is None:
        return None
    if not isinstance(result, dict):
        raise FatalRpcError(f"unexpected getTransaction payload for {signature}", "getTransaction")
    meta = result.get("meta")
    if not isinstance(meta, dict):
        raise FatalRpcError(f"transaction {signature} has no meta", "getTransaction")
    try:
        return TxMeta(
            signature=signature,
            block_time=result.get("blockTime"),
            account_keys=_account_keys(result, meta),
            pre_balances=[int(x) for x in meta.get("preBalances") or []],
            post_balances=[int(x) for x in meta.get("postBalances") or []],
            pre_token_balances=_token_balances(meta.get("preTokenBalances")),
            post_token_balances=_token_balances(meta.get("postTokenBalances")),
            err=meta.get("err"),
        )
    except (TypeError, ValueError, AttributeError) as e:
        raise FatalRpcError(f"malformed transaction {signature}: {e}", "getTransaction") from e


def _token_accounts(result) -> List[TokenAccount]:
    out = []
    for a in (result or {}).get("value") or []:
        info = (((a.get("account") or {}).get("data") or {}).get("parsed") or {}).get("info") or {}
        out.append(TokenAccount(
            pubkey=str(a.get("pubkey")),
            mint=str(info.get("mint") or ""),
            amount=parse_ui_amount(info.get("tokenAmount")),
        ))
    return out


class SolanaRpc:
    def __init__(self, url: str, session: Optional[requests.Session] = None,
                 timeout: float = C.RPC_TIMEOUT_SEC, max_concurrency: int = C.RPC_MAX_CONCURRENCY):
        self.url = url
        self.session = session or requests.Session()
        self.timeout = timeout
        # Shared by every scan that uses this client
        self._limiter = threading.BoundedSemaphore(max(1, max_concurrency))
        self._ids = itertools.count(1)

    def call(self, method: str, params: Any) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        with self._limiter:
            try:
                r = self.session.post(self.url, json=payload, timeout=self.timeout)
            except (requests.Timeout, requests.ConnectionError,
                    requests.exceptions.ChunkedEncodingError) as e:
                raise TransientRpcError(f"{method}: {e}", method) from e
            except requests.RequestException as e:
                raise FatalRpcError(f"{method}: {e}", method) from e

        if r.status_code in TRANSIENT_HTTP_STATUS:
            raise TransientRpcError(f"{method}: HTTP {r.status_code}", method, r.status_code)
        if r.status_code >= 400:
            raise FatalRpcError(f"{method}: HTTP {r.status_code}", method, r.status_code)
        try:
            body = r.json()
        except ValueError as e:
            raise FatalRpcError(f"{method}: invalid JSON response", method) from e

        err = body.get("error") if isinstance(body, dict) else None
        if err:
            code = err.get("code") if isinstance(err, dict) else None
            msg = err.get("message") if isinstance(err, dict) else str(err)
            cls = TransientRpcError if code in TRANSIENT_RPC_CODES else FatalRpcError
            raise cls(f"{method}: {msg}", method, code)
        if not isinstance(body, dict) or "result" not in body:
            raise FatalRpcError(f"{method}: response has no result", method)
        return body["result"]

    # =========================
    # Chain data source
    # =========================

    def get_transaction(self, signature: str) -> Optional[TxMeta]:
        res = self.call("getTransaction", [signature, {
            "encoding": "json",
            "commitment": "confirmed",
            "maxSupportedTransactionVersion": 0,
        }])
        return parse_transaction(signature, res)

    def get_signatures_for_address(self, account: str, limit: int,
                                   before: Optional[str] = None) -> List[SignatureRecord]:
        opts: Dict[str, Any] = {"limit": max(1, min(limit, C.RPC_SIGNATURE_PAGE_MAX))}
        if before:
            opts["before"] = before
        res = self.call("getSignaturesForAddress", [account, opts])
        return [SignatureRecord(s["signature"], s.get("blockTime"))
                for s in res or [] if isinstance(s, dict) and s.get("signature")]

    def get_token_accounts(self, owner: str, mint: str) -> List[TokenAccount]:
        res = self.call("getTokenAccountsByOwner", [owner, {"mint": mint}, {"encoding": "jsonParsed"}])
        return _token_accounts(res)

    def get_token_accounts_by_program(self, owner: str,
                                      program_id: str = C.TOKEN_PROGRAM_ID) -> List[TokenAccount]:
        res = self.call("getTokenAccountsByOwner",
                        [owner, {"programId": program_id}, {"encoding": "jsonParsed"}])
        return _token_accounts(res)

    def get_balance(self, owner: str) -> float:
        res = self.call("getBalance", [owner])
        return sf((res or {}).get("value")) / C.LAMPORTS_PER_SOL

    def get_asset(self, mint: str) -> dict:
        """Helius DAS lookup; used for token symbol/name."""
        return self.call("getAsset", {"id": mint}) or {}
