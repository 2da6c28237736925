import base64
import json
import struct

import pytest
import responses

from solarb.orca import (
    OrcaPool,
    build_orca_dex,
    fetch_data_orca,
    load_orca_pools,
    unpack_token_swap,
)
from solarb.rpc import RpcClient, RpcError, encode_pubkey
from solarb.types import DexLabel

URL = "http://localhost:8899"
KEYS = [bytes([i + 1]) * 32 for i in range(7)]


def _layout_bytes(numerator=1, denominator=4):
    fees = [numerator, denominator, 2, 3, 4, 5, 6, 7]
    return struct.pack("<BBB", 1, 1, 255) + b"".join(KEYS) + struct.pack("<8Q", *fees) + bytes([2]) + bytes(range(32))


def _pool_json(account):
    return {
        "poolId": "SOL/USDC",
        "poolAccount": account,
        "tokenAAmount": "100",
        "tokenBAmount": "200",
        "poolTokenSupply": "300",
        "apy": {"day": "1", "week": "2", "month": "3"},
        "volume": {"day": "4", "week": "5", "month": "6"},
    }


@pytest.fixture
def mocked():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps


def test_unpack_layout_of_324_bytes():
    data = _layout_bytes()
    assert len(data) == 324
    layout = unpack_token_swap(data)
    assert len(layout.curve_parameters) == 32
    assert layout.fee_account == encode_pubkey(KEYS[6])


def test_unpack_token_swap_fields():
    layout = unpack_token_swap(_layout_bytes())
    assert layout.version == 1
    assert layout.is_initialized is True
    assert layout.bump_seed == 255
    assert layout.pool_token_program_id == encode_pubkey(KEYS[0])
    assert layout.token_pool == encode_pubkey(KEYS[3])
    assert layout.mint_b == encode_pubkey(KEYS[5])
    assert layout.trade_fee_numerator == 1
    assert layout.host_fee_denominator == 7
    assert layout.curve_type == 2
    assert layout.curve_parameters == bytes(range(32))


@pytest.mark.parametrize("size", [0, 100, 323, 325])
def test_unpack_rejects_wrong_length(size):
    with pytest.raises(ValueError):
        unpack_token_swap(bytes(size))


def test_pool_json_round_trip():
    data = _pool_json("acc")
    pool = OrcaPool.from_json(data)
    assert pool.pool_account == "acc"
    assert pool.apy["week"] == "2"
    assert pool.to_json() == data


def test_pool_json_missing_field():
    data = _pool_json("acc")
    del data["poolTokenSupply"]
    with pytest.raises(ValueError):
        OrcaPool.from_json(data)


def test_load_orca_pools(tmp_path):
    path = tmp_path / "orca.json"
    path.write_text(json.dumps({"a": _pool_json("acc1"), "b": _pool_json("acc2")}))
    pools = load_orca_pools(path)
    assert sorted(pools) == ["a", "b"]
    assert pools["b"].pool_account == "acc2"


def _accounts_response(values):
    value = [None if v is None else {"data": [base64.b64encode(v).decode(), "base64"]} for v in values]
    return {"jsonrpc": "2.0", "id": 1, "result": {"context": {"slot": 1}, "value": value}}


def test_build_orca_dex(mocked):
    mocked.add(responses.POST, URL, json=_accounts_response([_layout_bytes()]))
    pool = OrcaPool.from_json(_pool_json(encode_pubkey(b"\x09" * 32)))
    dex, items = build_orca_dex(RpcClient(URL), {"x": pool})
    assert dex.label is DexLabel.ORCA
    markets = dex.markets_for_pair(encode_pubkey(KEYS[5]), encode_pubkey(KEYS[4]))
    assert len(markets) == 1
    market = markets[0]
    assert market.id == encode_pubkey(KEYS[3])
    assert market.token_vault_a == encode_pubkey(KEYS[1])
    assert market.fee == 2500
    assert market.account_data is None
    assert items[0].trade_fee_rate == market.fee


def test_build_orca_dex_zero_fee_denominator(mocked):
    mocked.add(responses.POST, URL, json=_accounts_response([_layout_bytes(0, 0)]))
    pool = OrcaPool.from_json(_pool_json(encode_pubkey(b"\x09" * 32)))
    _, items = build_orca_dex(RpcClient(URL), [pool])
    assert items[0].trade_fee_rate == 0


def test_build_orca_dex_missing_account(mocked):
    mocked.add(responses.POST, URL, json=_accounts_response([None]))
    pool = OrcaPool.from_json(_pool_json(encode_pubkey(b"\x09" * 32)))
    with pytest.raises(RpcError):
        build_orca_dex(RpcClient(URL), [pool])


def test_fetch_data_orca_writes_cache(mocked, tmp_path):
    listing = {"a": _pool_json("acc1")}
    mocked.add(responses.GET, DexLabel.ORCA.api_url(), json=listing)
    path = tmp_path / "orca.json"
    assert fetch_data_orca(path) is True
    assert json.loads(path.read_text()) == listing
    assert load_orca_pools(path)["a"].pool_account == "acc1"


def test_fetch_data_orca_failure(mocked, tmp_path):
    mocked.add(responses.GET, DexLabel.ORCA.api_url(), status=503)
    path = tmp_path / "orca.json"
    assert fetch_data_orca(path) is False
    assert not path.exists()