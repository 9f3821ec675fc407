from typing import Dict, List, Optional

from solana_pnl_tracker import constants as C
from solana_pnl_tracker.models import SignatureRecord, TokenAccount, TokenBalance, TxMeta

WALLET = "WaLLet1111111111111111111111111111111111111"
OTHER = "0ther11111111111111111111111111111111111111"
MINT_A = "MintAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA"
MINT_B = "MintBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBB"


def make_tx(sig: str, block_time: Optional[int] = None, wallet: str = WALLET,
            sol=(0, 0), tokens=(), err=None) -> TxMeta:
    """tokens: iterable of (mint, pre, post[, owner])"""
    pre_tb, post_tb = [], []
    for i, t in enumerate(tokens, start=1):
        mint, pre, post = t[0], t[1], t[2]
        owner = t[3] if len(t) > 3 else wallet
        if pre is not None:
            pre_tb.append(TokenBalance(i, mint, owner, pre))
        if post is not None:
            post_tb.append(TokenBalance(i, mint, owner, post))
    return TxMeta(
        signature=sig,
        block_time=block_time,
        account_keys=[wallet, OTHER],
        pre_balances=[int(sol[0] * C.LAMPORTS_PER_SOL), 0],
        post_balances=[int(sol[1] * C.LAMPORTS_PER_SOL), 0],
        pre_token_balances=pre_tb,
        post_token_balances=post_tb,
        err=err,
    )


class Seq:
    """Queued answers for one fake call; the last one repeats."""

    def __init__(self, *items):
        self.items = list(items)

    def next(self):
        if len(self.items) > 1:
            return self.items.pop(0)
        return self.items[0]


class FakeRpc:
    def __init__(self):
        self.txs: Dict[str, object] = {}
        self.signatures: Dict[str, List[SignatureRecord]] = {}
        self.token_accounts: Dict[tuple, object] = {}
        self.program_accounts: List[TokenAccount] = []
        self.balance = 0.0
        self.assets: Dict[str, object] = {}
        self.calls: List[tuple] = []

    def _resolve(self, v):
        if isinstance(v, Seq):
            v = v.next()
        if isinstance(v, Exception):
            raise v
        return v

    def get_transaction(self, signature):
        self.calls.append(("getTransaction", signature))
        return self._resolve(self.txs.get(signature))

    def get_signatures_for_address(self, account, limit, before=None):
        self.calls.append(("getSignaturesForAddress", account, before))
        sigs = list(self.signatures.get(account, []))
        if before is not None:
            idx = [s.signature for s in sigs].index(before)
            sigs = sigs[idx + 1:]
        return sigs[:limit]

    def get_token_accounts(self, owner, mint):
        self.calls.append(("getTokenAccountsByOwner", mint))
        return self._resolve(self.token_accounts.get((owner, mint), []))

    def get_token_accounts_by_program(self, owner, program_id=C.TOKEN_PROGRAM_ID):
        self.calls.append(("getTokenAccountsByOwner", program_id))
        return list(self.program_accounts)

    def get_balance(self, owner):
        self.calls.append(("getBalance", owner))
        return self._resolve(self.balance)

    def get_asset(self, mint):
        self.calls.append(("getAsset", mint))
        return self._resolve(self.assets.get(mint, {}))

    def count(self, method):
        return sum(1 for c in self.calls if c[0] == method)


class FakeOracle:
    def __init__(self, sol_usd=None, token_prices=None):
        self.sol_usd = sol_usd
        self.token_prices = token_prices or {}
        self.native_calls = 0

    def get_native_usd(self):
        self.native_calls += 1
        return self.sol_usd

    def get_token_usd(self, mint):
        return self.token_prices.get(mint)


class FakeResponse:
    def __init__(self, status_code=200, body=None, bad_json=False):
        self.status_code = status_code
        self._body = body
        self._bad_json = bad_json

    def json(self):
        if self._bad_json:
            raise ValueError("not json")
        return self._body

    def raise_for_status(self):
        import requests
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")


class FakeSession:
    """Replays queued responses (or raises queued exceptions) for post/get."""

    def __init__(self, responses=()):
        self.responses = list(responses)
        self.requests: List[tuple] = []

    def _next(self, *args, **kwargs):
        self.requests.append((args, kwargs))
        r = self.responses.pop(0)
        if isinstance(r, Exception):
            raise r
        return r

    def post(self, url, json=None, timeout=None):
        return self._next(url, json=json)

    def get(self, url, params=None, timeout=None):
        return self._next(url, params=params)


class SleepRecorder:
    def __init__(self):
        self.waits: List[float] = []

    def __call__(self, seconds):
        self.waits.append(seconds)
