import pytest
import requests

from solana_pnl_tracker.errors import FatalRpcError, TransientRpcError
from solana_pnl_tracker.rpc import SolanaRpc, parse_transaction, parse_ui_amount

from .helpers import MINT_A, OTHER, WALLET, FakeResponse, FakeSession


def rpc_with(*responses):
    session = FakeSession(responses)
    return SolanaRpc("https://rpc.test", session=session), session


def ok(result):
    return FakeResponse(200, {"jsonrpc": "2.0", "id": 1, "result": result})


@pytest.mark.parametrize("response,exc", [
    (FakeResponse(429, {}), TransientRpcError),
    (FakeResponse(503, {}), TransientRpcError),
    (FakeResponse(401, {}), FatalRpcError),
    (FakeResponse(200, bad_json=True), FatalRpcError),
    (FakeResponse(200, {"error": {"code": -32005, "message": "Node is behind"}}), TransientRpcError),
    (FakeResponse(200, {"error": {"code": -32429, "message": "rate limited"}}), TransientRpcError),
    (FakeResponse(200, {"error": {"code": -32602, "message": "Invalid param: WrongSize"}}), FatalRpcError),
    (FakeResponse(200, {"jsonrpc": "2.0"}), FatalRpcError),
])
def test_error_classification(response, exc):
    rpc, _ = rpc_with(response)
    with pytest.raises(exc):
        rpc.call("getBalance", [WALLET])


@pytest.mark.parametrize("err", [
    requests.Timeout("read timed out"),
    requests.ConnectionError("reset"),
    requests.exceptions.ChunkedEncodingError("connection reset mid-body"),
])
def test_network_errors_are_transient(err):
    rpc, _ = rpc_with(err)
    with pytest.raises(TransientRpcError):
        rpc.call("getBalance", [WALLET])


def test_get_balance_converts_lamports():
    rpc, session = rpc_with(ok({"context": {"slot": 1}, "value": 2_500_000_000}))
    assert rpc.get_balance(WALLET) == pytest.approx(2.5)
    payload = session.requests[0][1]["json"]
    assert payload["method"] == "getBalance"
    assert payload["params"] == [WALLET]


def test_signatures_request_and_parse():
    rpc, session = rpc_with(ok([
        {"signature": "s2", "blockTime": 20, "err": None},
        {"signature": "s1", "blockTime": None},
        {"bogus": True},
    ]))
    recs = rpc.get_signatures_for_address("ta1", 5000)
    assert [(r.signature, r.block_time) for r in recs] == [("s2", 20), ("s1", None)]
    assert session.requests[0][1]["json"]["params"][1] == {"limit": 1000}


def test_token_accounts_parse():
    rpc, _ = rpc_with(ok({"value": [{
        "pubkey": "ta1",
        "account": {"data": {"parsed": {"info": {
            "mint": MINT_A,
            "tokenAmount": {"amount": "1500000", "decimals": 6, "uiAmount": 1.5},
        }}}},
    }]}))
    accounts = rpc.get_token_accounts(WALLET, MINT_A)
    assert accounts[0].pubkey == "ta1"
    assert accounts[0].mint == MINT_A
    assert accounts[0].amount == 1.5


def test_get_transaction_null_result():
    rpc, _ = rpc_with(ok(None))
    assert rpc.get_transaction("sig") is None


def test_parse_transaction_with_lookup_tables():
    result = {
        "blockTime": 1700000000,
        "transaction": {"message": {"accountKeys": [WALLET, OTHER]}},
        "meta": {
            "err": None,
            "preBalances": [3_000_000_000, 0, 0],
            "postBalances": [2_000_000_000, 0, 0],
            "loadedAddresses": {"writable": ["LoadedW"], "readonly": ["LoadedR"]},
            "preTokenBalances": [],
            "postTokenBalances": [{
                "accountIndex": 2, "mint": MINT_A, "owner": WALLET,
                "uiTokenAmount": {"amount": "42000", "decimals": 3, "uiAmount": None},
            }],
        },
    }
    tx = parse_transaction("sig", result)
    assert tx.account_keys == [WALLET, OTHER, "LoadedW", "LoadedR"]
    assert tx.block_time == 1700000000
    assert not tx.failed
    assert tx.native_delta(WALLET) == pytest.approx(-1.0)
    assert tx.mint_delta(WALLET, MINT_A) == pytest.approx(42.0)


def test_parse_transaction_json_parsed_keys_and_error_flag():
    result = {
        "blockTime": None,
        "transaction": {"message": {"accountKeys": [{"pubkey": WALLET, "signer": True}]}},
        "meta": {"err": {"InstructionError": [0, "Custom"]}, "preBalances": [1], "postBalances": [1]},
    }
    tx = parse_transaction("sig", result)
    assert tx.account_keys == [WALLET]
    assert tx.failed


def test_parse_transaction_rejects_missing_meta():
    with pytest.raises(FatalRpcError):
        parse_transaction("sig", {"transaction": {}})
    with pytest.raises(FatalRpcError):
        parse_transaction("sig", {"meta": {"preBalances": ["x"]}})


@pytest.mark.parametrize("raw,expected", [
    ({"uiAmount": 2.5}, 2.5),
    ({"uiAmount": None, "uiAmountString": "0.75"}, 0.75),
    ({"amount": "1234", "decimals": 2}, 12.34),
    ({"amount": "1"}, 0.0),
    (None, 0.0),
])
def test_parse_ui_amount(raw, expected):
    assert parse_ui_amount(raw) == pytest.approx(expected)
