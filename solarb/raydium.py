"""Raydium AMM pools: cached API listing, on-chain AMM state and swap quotes."""

from __future__ import annotations

import json
import logging
import math
import struct
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import requests

from .rpc import RpcClient, data_size_filter, encode_pubkey, memcmp_filter
from .types import Dex, DexLabel, Market, PoolItem, TokenInfo, parse_simulation_response

logger = logging.getLogger(__name__)

RAYDIUM_PROGRAM_ID = "675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8"
AMM_INFO_SIZE = 752
COIN_MINT_OFFSET = 400
PC_MINT_OFFSET = 432
PLACEHOLDER_LIQUIDITY = 666

_AMM_LAYOUT = struct.Struct(
    "<16Q"  # header counters
    "8Q"  # fees
    "5Q2QQ16s16sQ16s16sQ"  # state data
    + "32s" * 9  # vaults, mints and related keys
    + "8Q"  # padding1
    "32sQQ2Q"  # owner, lp amount, client order id, padding2
)

_STRING_FIELDS = (
    ("name", "name"),
    ("amm_id", "ammId"),
    ("lp_mint", "lpMint"),
    ("base_mint", "baseMint"),
    ("quote_mint", "quoteMint"),
    ("market", "market"),
)

_RATING_FIELDS = (
    ("liquidity", "liquidity"),
    ("volume24h", "volume24h"),
    ("volume24h_quote", "volume24hQuote"),
    ("fee24h", "fee24h"),
    ("fee24h_quote", "fee24hQuote"),
    ("volume7d", "volume7d"),
    ("volume7d_quote", "volume7dQuote"),
    ("fee7d", "fee7d"),
    ("fee7d_quote", "fee7dQuote"),
    ("volume30d", "volume30d"),
    ("volume30d_quote", "volume30dQuote"),
    ("fee30d", "fee30d"),
    ("fee30d_quote", "fee30dQuote"),
    ("price", "price"),
    ("lp_price", "lpPrice"),
    ("token_amount_coin", "tokenAmountCoin"),
    ("token_amount_pc", "tokenAmountPc"),
    ("token_amount_lp", "tokenAmountLp"),
    ("apr24h", "apr24h"),
    ("apr7d", "apr7d"),
    ("apr30d", "apr30d"),
)


def parse_rating(value: Any) -> float:
    """A number given as JSON number, numeric string or null (read as 0.0)."""
    if value is None:
        return 0.0
    if isinstance(value, bool):
        raise ValueError("wrong type")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        if value != value.strip() or "_" in value:
            raise ValueError(f"invalid float literal {value!r}")
        return float(value)
    raise ValueError("wrong type")


def _json_number(value: float) -> float | None:
    return value if math.isfinite(value) else None


def _borsh_string(value: str) -> bytes:
    raw = value.encode("utf-8")
    return struct.pack("<I", len(raw)) + raw


@dataclass
class RaydiumPool:
    """One entry of the Raydium pair listing."""

    name: str
    amm_id: str
    lp_mint: str
    base_mint: str
    quote_mint: str
    market: str
    liquidity: float
    volume24h: float
    volume24h_quote: float
    fee24h: float
    fee24h_quote: float
    volume7d: float
    volume7d_quote: float
    fee7d: float
    fee7d_quote: float
    volume30d: float
    volume30d_quote: float
    fee30d: float
    fee30d_quote: float
    price: float
    lp_price: float
    token_amount_coin: float
    token_amount_pc: float
    token_amount_lp: float
    apr24h: float
    apr7d: float
    apr30d: float

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> RaydiumPool:
        """Build from the API's camel-case object; ValueError on bad shape."""
        if not isinstance(data, Mapping):
            raise ValueError("pool entry must be an object")
        values: dict[str, Any] = {}
        for attr, key in _STRING_FIELDS:
            value = data.get(key)
            if not isinstance(value, str):
                raise ValueError(f"field {key!r} must be a string, got {value!r}")
            values[attr] = value
        for attr, key in _RATING_FIELDS:
            if key not in data:
                raise ValueError(f"missing field {key!r}")
            try:
                values[attr] = parse_rating(data[key])
            except ValueError as exc:
                raise ValueError(f"field {key!r}: {exc}") from None
        return cls(**values)

    def to_json(self) -> dict[str, Any]:
        """The API's camel-case object; non-finite numbers become null."""
        payload: dict[str, Any] = {key: getattr(self, attr) for attr, key in _STRING_FIELDS}
        for attr, key in _RATING_FIELDS:
            payload[key] = _json_number(getattr(self, attr))
        return payload

    def to_borsh(self) -> bytes:
        """Borsh encoding: length-prefixed strings, then little-endian doubles."""
        parts = [_borsh_string(getattr(self, attr)) for attr, _ in _STRING_FIELDS]
        parts.extend(struct.pack("<d", getattr(self, attr)) for attr, _ in _RATING_FIELDS)
        return b"".join(parts)


@dataclass
class Fees:
    """Fee ratios of an AMM."""

    min_separate_numerator: int
    min_separate_denominator: int
    trade_fee_numerator: int
    trade_fee_denominator: int
    pnl_numerator: int
    pnl_denominator: int
    swap_fee_numerator: int
    swap_fee_denominator: int


@dataclass
class StateData:
    """Statistical data kept by an AMM."""

    need_take_pnl_coin: int
    need_take_pnl_pc: int
    total_pnl_pc: int
    total_pnl_coin: int
    pool_open_time: int
    padding: tuple[int, int]
    orderbook_to_init_time: int
    swap_coin_in_amount: int
    swap_pc_out_amount: int
    swap_acc_pc_fee: int
    swap_pc_in_amount: int
    swap_coin_out_amount: int
    swap_acc_coin_fee: int


def _u128(raw: bytes) -> int:
    return int.from_bytes(raw, "little")


@dataclass
class AmmInfo:
    """Decoded state of a Raydium AMM account."""

    status: int
    nonce: int
    order_num: int
    depth: int
    coin_decimals: int
    pc_decimals: int
    state: int
    reset_flag: int
    min_size: int
    vol_max_cut_ratio: int
    amount_wave: int
    coin_lot_size: int
    pc_lot_size: int
    min_price_multiplier: int
    max_price_multiplier: int
    sys_decimal_value: int
    fees: Fees
    state_data: StateData
    coin_vault: str
    pc_vault: str
    coin_vault_mint: str
    pc_vault_mint: str
    lp_mint: str
    open_orders: str
    market: str
    market_program: str
    target_orders: str
    padding1: tuple[int, ...]
    amm_owner: str
    lp_amount: int
    client_order_id: int
    padding2: tuple[int, int]

    @classmethod
    def from_bytes(cls, data: bytes) -> AmmInfo:
        """Decode an AMM account; ValueError unless it is exactly 752 bytes."""
        if len(data) != AMM_INFO_SIZE:
            raise ValueError(f"AMM account must be {AMM_INFO_SIZE} bytes, got {len(data)}")
        fields = _AMM_LAYOUT.unpack(data)
        header = fields[:16]
        fees = Fees(*fields[16:24])
        s = fields[24:38]
        state_data = StateData(
            need_take_pnl_coin=s[0],
            need_take_pnl_pc=s[1],
            total_pnl_pc=s[2],
            total_pnl_coin=s[3],
            pool_open_time=s[4],
            padding=(s[5], s[6]),
            orderbook_to_init_time=s[7],
            swap_coin_in_amount=_u128(s[8]),
            swap_pc_out_amount=_u128(s[9]),
            swap_acc_pc_fee=s[10],
            swap_pc_in_amount=_u128(s[11]),
            swap_coin_out_amount=_u128(s[12]),
            swap_acc_coin_fee=s[13],
        )
        keys = [encode_pubkey(raw) for raw in fields[38:47]]
        padding1 = tuple(fields[47:55])
        owner, lp_amount, client_order_id, pad_a, pad_b = fields[55:60]
        return cls(
            *header,
            fees,
            state_data,
            *keys,
            padding1,
            encode_pubkey(owner),
            lp_amount,
            client_order_id,
            (pad_a, pad_b),
        )


def _parse_listing(payload: Any) -> list[RaydiumPool]:
    if not isinstance(payload, list):
        raise ValueError("Raydium pool listing must be an array")
    return [RaydiumPool.from_json(entry) for entry in payload]


def load_raydium_pools(path: str | Path) -> list[RaydiumPool]:
    """Read the cached pool listing."""
    return _parse_listing(json.loads(Path(path).read_text(encoding="utf-8")))


def _saturating_int(value: float, bits: int) -> int:
    if math.isnan(value) or value <= 0:
        return 0
    limit = (1 << bits) - 1
    return limit if value >= limit else int(value)


def build_raydium_dex(pools: Iterable[RaydiumPool]) -> tuple[Dex, list[PoolItem]]:
    """Index each listed pool's market by pair."""
    dex = Dex(DexLabel.RAYDIUM)
    items = []
    count = 0
    for pool in pools:
        count += 1
        items.append(PoolItem(
            mint_a=pool.base_mint,
            mint_b=pool.quote_mint,
            vault_a=pool.base_mint,
            vault_b=pool.quote_mint,
            trade_fee_rate=_saturating_int(pool.volume7d, 128),
        ))
        dex.add_market(Market(
            token_mint_a=pool.base_mint,
            token_vault_a=pool.base_mint,
            token_mint_b=pool.quote_mint,
            token_vault_b=pool.quote_mint,
            dex_label=DexLabel.RAYDIUM,
            fee=_saturating_int(pool.volume7d, 64),
            id=pool.amm_id,
            account_data=pool.to_borsh(),
            liquidity=_saturating_int(pool.liquidity, 64),
        ))
    logger.info("Raydium: %d pools found", count)
    return dex, items


def fetch_data_raydium(path: str | Path) -> bool:
    """Download the pool listing into the cache file; False if it could not be had."""
    name = Path(path).name
    response = requests.get(DexLabel.RAYDIUM.api_url(), timeout=120)
    if not response.ok:
        logger.error("Fetch of %s not successful: %s", name, response.status_code)
        return False
    try:
        pools = _parse_listing(response.json())
    except ValueError as exc:
        logger.error("Failed to deserialize JSON: %s", exc)
        return False
    Path(path).write_text(json.dumps([pool.to_json() for pool in pools]), encoding="utf-8")
    logger.info("Data written to %s successfully.", name)
    return True


def fetch_new_raydium_pools(
    client: RpcClient, token: str, on_token_a: bool
) -> list[tuple[str, Market]]:
    """AMMs holding the token as coin or pc mint, straight from the chain."""
    offset = COIN_MINT_OFFSET if on_token_a else PC_MINT_OFFSET
    filters = [memcmp_filter(offset, token), data_size_filter(AMM_INFO_SIZE)]
    markets = []
    for address, data in client.get_program_accounts(RAYDIUM_PROGRAM_ID, filters):
        info = AmmInfo.from_bytes(data)
        fee = info.fees.trade_fee_numerator // info.fees.trade_fee_denominator
        markets.append((address, Market(
            token_mint_a=info.coin_vault_mint,
            token_vault_a=info.coin_vault,
            token_mint_b=info.pc_vault_mint,
            token_vault_b=info.pc_vault,
            dex_label=DexLabel.RAYDIUM,
            fee=fee,
            id=address,
            account_data=data,
            liquidity=PLACEHOLDER_LIQUIDITY,
        )))
    return markets


def raydium_quote_params(
    market: Market,
    token_0to1: bool,
    amount_in: int,
    token_infos: Mapping[str, TokenInfo],
) -> str:
    """Query string asking the simulator for a Raydium quote."""
    token_0 = token_infos[market.token_mint_a]
    token_1 = token_infos[market.token_mint_b]
    legs = [(market.token_mint_a, token_0), (market.token_mint_b, token_1)]
    if not token_0to1:
        legs.reverse()
    (mint_in, info_in), (mint_out, info_out) = legs
    return (
        f"poolKeys={market.id}&amountIn={amount_in}"
        f"&currencyIn={mint_in}&decimalsIn={info_in.decimals}&symbolTokenIn={info_in.symbol}"
        f"&currencyOut={mint_out}&decimalsOut={info_out.decimals}&symbolTokenOut={info_out.symbol}"
    )


def simulate_route_raydium(
    simulator_url: str,
    amount_in: int,
    token_0to1: bool,
    market: Market,
    token_infos: Mapping[str, TokenInfo],
    printing_amt: bool = False,
) -> tuple[str, str]:
    """Ask the simulator for a swap quote; returns (amount_out, min_amount_out)."""
    params = raydium_quote_params(market, token_0to1, amount_in, token_infos)
    response = requests.get(f"{simulator_url}raydium_quote?{params}", timeout=60)
    quoted_in, amount_out, min_out = parse_simulation_response(response.text)
    if printing_amt:
        symbol_0 = token_infos[market.token_mint_a].symbol
        symbol_1 = token_infos[market.token_mint_b].symbol
        symbol_in, symbol_out = (symbol_0, symbol_1) if token_0to1 else (symbol_1, symbol_0)
        print(f"estimatedAmountIn: {quoted_in!r} {symbol_in!r}")
        print(f"estimatedAmountOut: {amount_out!r} {symbol_out!r}")
        print(f"estimatedMinAmountOut: {min_out!r} {symbol_out!r}")
    return amount_out, min_out or ""