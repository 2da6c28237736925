import base64
import json
import struct

import pytest
import responses

from solarb.raydium import (
    AMM_INFO_SIZE,
    RAYDIUM_PROGRAM_ID,
    AmmInfo,
    RaydiumPool,
    build_raydium_dex,
    fetch_data_raydium,
    fetch_new_raydium_pools,
    load_raydium_pools,
    parse_rating,
    raydium_quote_params,
    simulate_route_raydium,
)
from solarb.rpc import RpcClient, encode_pubkey
from solarb.types import DexLabel, Market, SimulationError, TokenInfo

RPC_URL = "http://localhost:8899"
SIM_URL = "http://localhost:3000/"

MINT_A = encode_pubkey(bytes([1]) * 32)
MINT_B = encode_pubkey(bytes([2]) * 32)
VAULT_A = encode_pubkey(bytes([3]) * 32)
VAULT_B = encode_pubkey(bytes([4]) * 32)
AMM_ADDRESS = encode_pubkey(bytes([5]) * 32)

RATING_KEYS = [
    "liquidity", "volume24h", "volume24hQuote", "fee24h", "fee24hQuote",
    "volume7d", "volume7dQuote", "fee7d", "fee7dQuote", "volume30d",
    "volume30dQuote", "fee30d", "fee30dQuote", "price", "lpPrice",
    "tokenAmountCoin", "tokenAmountPc", "tokenAmountLp", "apr24h", "apr7d", "apr30d",
]


@pytest.fixture
def mocked():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps


def _pool_json(**overrides):
    data = {
        "name": "AAA-BBB",
        "ammId": AMM_ADDRESS,
        "lpMint": VAULT_A,
        "baseMint": MINT_A,
        "quoteMint": MINT_B,
        "market": VAULT_B,
    }
    data.update({key: 1.0 for key in RATING_KEYS})
    data.update(overrides)
    return data


def _amm_bytes(num=25, den=10000):
    raw = bytearray(AMM_INFO_SIZE)
    struct.pack_into("<Q", raw, 0, 6)
    struct.pack_into("<QQ", raw, 144, num, den)
    raw[336:368] = bytes([3]) * 32
    raw[368:400] = bytes([4]) * 32
    raw[400:432] = bytes([1]) * 32
    raw[432:464] = bytes([2]) * 32
    struct.pack_into("<Q", raw, 720, 77)
    return bytes(raw)


def _infos():
    return {
        MINT_A: TokenInfo(MINT_A, "AAA", 9),
        MINT_B: TokenInfo(MINT_B, "BBB", 6),
    }


def _market():
    return Market(MINT_A, VAULT_A, MINT_B, VAULT_B, DexLabel.RAYDIUM, 0, AMM_ADDRESS)


def test_parse_rating_accepts_strings_numbers_and_null():
    assert parse_rating("1.5") == 1.5
    assert parse_rating(3) == 3.0
    assert parse_rating(None) == 0.0


@pytest.mark.parametrize("value", [True, [], {}, "abc", " 1.0"])
def test_parse_rating_rejects_bad_values(value):
    with pytest.raises(ValueError):
        parse_rating(value)


def test_pool_round_trip_through_json():
    pool = RaydiumPool.from_json(_pool_json(volume7d="12.5", price=None))
    assert pool.volume7d == 12.5
    assert pool.price == 0.0
    assert RaydiumPool.from_json(pool.to_json()) == pool


def test_pool_missing_field_is_an_error():
    data = _pool_json()
    del data["apr30d"]
    with pytest.raises(ValueError):
        RaydiumPool.from_json(data)


def test_pool_non_string_id_is_an_error():
    with pytest.raises(ValueError):
        RaydiumPool.from_json(_pool_json(ammId=5))


def test_to_borsh_layout():
    pool = RaydiumPool.from_json(_pool_json(name="AB", apr30d=2.5))
    raw = pool.to_borsh()
    assert raw.startswith(struct.pack("<I", 2) + b"AB")
    strings = ["AB", AMM_ADDRESS, VAULT_A, MINT_A, MINT_B, VAULT_B]
    assert len(raw) == sum(4 + len(s) for s in strings) + 8 * len(RATING_KEYS)
    assert raw[-8:] == struct.pack("<d", 2.5)


def test_amm_info_reads_fields_at_offsets():
    info = AmmInfo.from_bytes(_amm_bytes(num=25, den=10000))
    assert info.status == 6
    assert info.fees.trade_fee_numerator == 25
    assert info.fees.trade_fee_denominator == 10000
    assert info.coin_vault == VAULT_A
    assert info.pc_vault == VAULT_B
    assert info.coin_vault_mint == MINT_A
    assert info.pc_vault_mint == MINT_B
    assert info.lp_amount == 77


@pytest.mark.parametrize("size", [0, AMM_INFO_SIZE - 1, AMM_INFO_SIZE + 1])
def test_amm_info_wrong_length(size):
    with pytest.raises(ValueError):
        AmmInfo.from_bytes(bytes(size))


def test_build_dex_indexes_by_pair():
    pools = [
        RaydiumPool.from_json(_pool_json(volume7d=42.9, liquidity=1000.0)),
        RaydiumPool.from_json(_pool_json(ammId=VAULT_B, baseMint=MINT_B, quoteMint=MINT_A, liquidity=-5)),
    ]
    dex, items = build_raydium_dex(pools)
    assert dex.label is DexLabel.RAYDIUM
    markets = dex.markets_for_pair(MINT_B, MINT_A)
    assert [m.id for m in markets] == [AMM_ADDRESS, VAULT_B]
    first = markets[0]
    assert first.fee == 42
    assert first.liquidity == 1000
    assert first.token_vault_a == first.token_mint_a == MINT_A
    assert first.account_data == pools[0].to_borsh()
    assert markets[1].liquidity == 0
    assert [item.trade_fee_rate for item in items] == [42, 1]


def test_load_pools(tmp_path):
    path = tmp_path / "raydium-markets.json"
    path.write_text(json.dumps([_pool_json(), _pool_json(name="X")]))
    pools = load_raydium_pools(path)
    assert [p.name for p in pools] == ["AAA-BBB", "X"]


def test_load_pools_rejects_non_array(tmp_path):
    path = tmp_path / "raydium-markets.json"
    path.write_text(json.dumps({"a": 1}))
    with pytest.raises(ValueError):
        load_raydium_pools(path)


def test_fetch_data_writes_cache(mocked, tmp_path):
    mocked.add(responses.GET, DexLabel.RAYDIUM.api_url(), json=[_pool_json(volume7d="3")])
    path = tmp_path / "raydium-markets.json"
    assert fetch_data_raydium(path) is True
    pools = load_raydium_pools(path)
    assert pools[0].volume7d == 3.0


def test_fetch_data_failure_status(mocked, tmp_path):
    mocked.add(responses.GET, DexLabel.RAYDIUM.api_url(), status=500)
    path = tmp_path / "raydium-markets.json"
    assert fetch_data_raydium(path) is False
    assert not path.exists()


def test_fetch_data_bad_payload(mocked, tmp_path):
    mocked.add(responses.GET, DexLabel.RAYDIUM.api_url(), json=[{"name": 1}])
    path = tmp_path / "raydium-markets.json"
    assert fetch_data_raydium(path) is False
    assert not path.exists()


@pytest.mark.parametrize("on_token_a, offset", [(True, 400), (False, 432)])
def test_fetch_new_pools(mocked, on_token_a, offset):
    data = _amm_bytes(num=30000, den=10000)
    mocked.add(responses.POST, RPC_URL, json={
        "jsonrpc": "2.0",
        "id": 1,
        "result": [{"pubkey": AMM_ADDRESS, "account": {"data": [base64.b64encode(data).decode(), "base64"]}}],
    })
    found = fetch_new_raydium_pools(RpcClient(RPC_URL, "confirmed"), MINT_A, on_token_a)
    body = json.loads(mocked.calls[0].request.body)
    assert body["params"][0] == RAYDIUM_PROGRAM_ID
    assert body["params"][1]["filters"] == [
        {"memcmp": {"offset": offset, "encoding": "base58", "bytes": MINT_A}},
        {"dataSize": 752},
    ]
    [(address, market)] = found
    assert address == AMM_ADDRESS
    assert market.fee == 3
    assert market.token_mint_a == MINT_A
    assert market.token_vault_b == VAULT_B
    assert market.liquidity == 666
    assert market.account_data == data


def test_quote_params_both_directions():
    market = _market()
    forward = raydium_quote_params(market, True, 1000, _infos())
    assert forward == (
        f"poolKeys={AMM_ADDRESS}&amountIn=1000&currencyIn={MINT_A}&decimalsIn=9&symbolTokenIn=AAA"
        f"&currencyOut={MINT_B}&decimalsOut=6&symbolTokenOut=BBB"
    )
    backward = raydium_quote_params(market, False, 1000, _infos())
    assert f"currencyIn={MINT_B}&decimalsIn=6&symbolTokenIn=BBB" in backward
    assert backward.endswith(f"currencyOut={MINT_A}&decimalsOut=9&symbolTokenOut=AAA")


def test_quote_params_unknown_token():
    with pytest.raises(KeyError):
        raydium_quote_params(_market(), True, 1, {})


def test_simulate_route_returns_amounts(mocked):
    mocked.add(
        responses.GET,
        f"{SIM_URL}raydium_quote",
        json={"amountIn": "1000", "estimatedAmountOut": "990", "estimatedMinAmountOut": "980"},
    )
    result = simulate_route_raydium(SIM_URL, 1000, True, _market(), _infos(), printing_amt=True)
    assert result == ("990", "980")
    assert "symbolTokenIn=AAA" in mocked.calls[0].request.url


def test_simulate_route_missing_min_is_empty(mocked):
    mocked.add(
        responses.GET, f"{SIM_URL}raydium_quote", json={"amountIn": "1", "estimatedAmountOut": "2"}
    )
    assert simulate_route_raydium(SIM_URL, 1, False, _market(), _infos()) == ("2", "")


def test_simulate_route_error(mocked):
    mocked.add(responses.GET, f"{SIM_URL}raydium_quote", json={"error": "no route"})
    with pytest.raises(SimulationError, match="no route"):
        simulate_route_raydium(SIM_URL, 1, True, _market(), _infos())