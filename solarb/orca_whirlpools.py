"""Orca Whirlpools: cached API listing, on-chain account layout and swap quotes."""

from __future__ import annotations

import json
import logging
import struct
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import requests

from .rpc import RpcClient, RpcError, data_size_filter, encode_pubkey, memcmp_filter
from .types import Dex, DexLabel, Market, PoolItem, TokenInfo, parse_simulation_response

logger = logging.getLogger(__name__)

WHIRLPOOL_PROGRAM_ID = "whirLbMiicVdio4qvUfM5KAg6Ct8VwpYzGff3uctyCc"
WHIRLPOOL_ACCOUNT_SIZE = 653
TOKEN_MINT_A_OFFSET = 101
TOKEN_MINT_B_OFFSET = 181

# 8-byte discriminator, then the fields up to the reward timestamp.
_LAYOUT = struct.Struct("<8x32s1sH2sHH16s16siQQ32s32s16s32s32s16sQ")
WHIRLPOOL_MIN_SIZE = _LAYOUT.size
_ZERO_KEY = encode_pubkey(bytes(32))
_U64_MASK = (1 << 64) - 1

_OPTIONAL_STATS = (
    "volume",
    "volumeDenominatedA",
    "volumeDenominatedB",
    "priceRange",
    "feeApr",
    "reward0Apr",
    "reward1Apr",
    "reward2Apr",
    "totalApr",
)


@dataclass
class WhirlpoolAccount:
    """Decoded head of a Whirlpool account."""

    whirlpools_config: str
    whirlpool_bump: bytes
    tick_spacing: int
    tick_spacing_seed: bytes
    fee_rate: int
    protocol_fee_rate: int
    liquidity: int
    sqrt_price: int
    tick_current_index: int
    protocol_fee_owed_a: int
    protocol_fee_owed_b: int
    token_mint_a: str
    token_vault_a: str
    fee_growth_global_a: int
    token_mint_b: str
    token_vault_b: str
    fee_growth_global_b: int
    reward_last_updated_timestamp: int
    address: str = _ZERO_KEY


def _u128(raw: bytes) -> int:
    return int.from_bytes(raw, "little")


def unpack_whirlpool(data: bytes) -> WhirlpoolAccount:
    """Decode a Whirlpool account; ValueError if it is too short."""
    if len(data) < WHIRLPOOL_MIN_SIZE:
        raise ValueError(
            f"Orca pools bad unpack: expected at least {WHIRLPOOL_MIN_SIZE} bytes, got {len(data)}"
        )
    (
        config, bump, tick_spacing, seed, fee_rate, protocol_fee_rate,
        liquidity, sqrt_price, tick_index, owed_a, owed_b,
        mint_a, vault_a, growth_a, mint_b, vault_b, growth_b, timestamp,
    ) = _LAYOUT.unpack_from(data)
    return WhirlpoolAccount(
        whirlpools_config=encode_pubkey(config),
        whirlpool_bump=bump,
        tick_spacing=tick_spacing,
        tick_spacing_seed=seed,
        fee_rate=fee_rate,
        protocol_fee_rate=protocol_fee_rate,
        liquidity=_u128(liquidity),
        sqrt_price=_u128(sqrt_price),
        tick_current_index=tick_index,
        protocol_fee_owed_a=owed_a,
        protocol_fee_owed_b=owed_b,
        token_mint_a=encode_pubkey(mint_a),
        token_vault_a=encode_pubkey(vault_a),
        fee_growth_global_a=_u128(growth_a),
        token_mint_b=encode_pubkey(mint_b),
        token_vault_b=encode_pubkey(vault_b),
        fee_growth_global_b=_u128(growth_b),
        reward_last_updated_timestamp=timestamp,
    )


def _check(value: Any, kind: type | tuple[type, ...], key: str) -> Any:
    if isinstance(value, bool) and kind is not bool:
        raise ValueError(f"field {key!r} has the wrong type: {value!r}")
    if not isinstance(value, kind):
        raise ValueError(f"field {key!r} has the wrong type: {value!r}")
    return value


def _require(data: Mapping[str, Any], key: str, kind: type | tuple[type, ...]) -> Any:
    if key not in data:
        raise ValueError(f"missing field {key!r}")
    return _check(data[key], kind, key)


def _optional(data: Mapping[str, Any], key: str, kind: type | tuple[type, ...]) -> Any:
    value = data.get(key)
    return None if value is None else _check(value, kind, key)


def _token(data: Mapping[str, Any], key: str) -> dict[str, Any]:
    value = _require(data, key, Mapping)
    return {
        "mint": _require(value, "mint", str),
        "symbol": _require(value, "symbol", str),
        "name": _require(value, "name", str),
        "decimals": _require(value, "decimals", int),
        "logoURI": _optional(value, "logoURI", str),
        "coingeckoId": _optional(value, "coingeckoId", str),
        "whitelisted": _require(value, "whitelisted", bool),
        "poolToken": _require(value, "poolToken", bool),
    }


@dataclass
class Whirlpool:
    """One entry of the Whirlpool listing."""

    address: str
    token_a: dict[str, Any]
    token_b: dict[str, Any]
    whitelisted: bool
    tick_spacing: int
    price: float
    lp_fee_rate: float
    protocol_fee_rate: float
    whirlpools_config: str
    modified_time_ms: int | None = None
    tvl: float | None = None
    stats: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> Whirlpool:
        """Build from the API's camel-case object; ValueError on bad shape."""
        if not isinstance(data, Mapping):
            raise ValueError("whirlpool entry must be an object")
        tvl = _optional(data, "tvl", (int, float))
        return cls(
            address=_require(data, "address", str),
            token_a=_token(data, "tokenA"),
            token_b=_token(data, "tokenB"),
            whitelisted=_require(data, "whitelisted", bool),
            tick_spacing=_require(data, "tickSpacing", int),
            price=float(_require(data, "price", (int, float))),
            lp_fee_rate=float(_require(data, "lpFeeRate", (int, float))),
            protocol_fee_rate=float(_require(data, "protocolFeeRate", (int, float))),
            whirlpools_config=_require(data, "whirlpoolsConfig", str),
            modified_time_ms=_optional(data, "modifiedTimeMs", int),
            tvl=None if tvl is None else float(tvl),
            stats={
                key: dict(value)
                for key in _OPTIONAL_STATS
                if (value := _optional(data, key, Mapping)) is not None
            },
        )

    def to_json(self) -> dict[str, Any]:
        """The API's camel-case object."""
        payload: dict[str, Any] = {
            "address": self.address,
            "tokenA": dict(self.token_a),
            "tokenB": dict(self.token_b),
            "whitelisted": self.whitelisted,
            "tickSpacing": self.tick_spacing,
            "price": self.price,
            "lpFeeRate": self.lp_fee_rate,
            "protocolFeeRate": self.protocol_fee_rate,
            "whirlpoolsConfig": self.whirlpools_config,
            "modifiedTimeMs": self.modified_time_ms,
            "tvl": self.tvl,
        }
        for key in _OPTIONAL_STATS:
            payload[key] = self.stats.get(key)
        return payload


def _parse_listing(payload: Any) -> tuple[list[Whirlpool], bool]:
    if not isinstance(payload, Mapping):
        raise ValueError("Whirlpool listing must be an object")
    entries = _require(payload, "whirlpools", list)
    has_more = _require(payload, "hasMore", bool)
    return [Whirlpool.from_json(entry) for entry in entries], has_more


def load_whirlpools(path: str | Path) -> list[Whirlpool]:
    """Read the cached Whirlpool listing."""
    whirlpools, _ = _parse_listing(json.loads(Path(path).read_text(encoding="utf-8")))
    return whirlpools


def _market(address: str, account: WhirlpoolAccount, data: bytes | None) -> Market:
    return Market(
        token_mint_a=account.token_mint_a,
        token_vault_a=account.token_vault_a,
        token_mint_b=account.token_mint_b,
        token_vault_b=account.token_vault_b,
        dex_label=DexLabel.ORCA_WHIRLPOOLS,
        fee=account.fee_rate,
        id=address,
        account_data=data,
        liquidity=account.liquidity & _U64_MASK,
    )


def build_whirlpools_dex(
    client: RpcClient, whirlpools: Iterable[Whirlpool]
) -> tuple[Dex, list[PoolItem]]:
    """Fetch each Whirlpool account and index its market by pair."""
    addresses = [pool.address for pool in whirlpools]
    accounts = []
    for address, raw in zip(addresses, client.get_multiple_accounts(addresses)):
        if raw is None:
            raise RpcError(f"account {address} not found")
        account = unpack_whirlpool(raw)
        account.address = address
        accounts.append(account)

    dex = Dex(DexLabel.ORCA_WHIRLPOOLS)
    items = []
    for account in accounts:
        items.append(PoolItem(
            mint_a=account.token_mint_a,
            mint_b=account.token_mint_b,
            vault_a=account.token_vault_a,
            vault_b=account.token_vault_b,
            trade_fee_rate=account.fee_rate,
        ))
        dex.add_market(_market(account.address, account, None))
    logger.info("Orca Whirlpools: %d pools found", len(accounts))
    return dex, items


def fetch_data_orca_whirlpools(path: str | Path) -> bool:
    """Download the Whirlpool listing into the cache file; False if the API refused."""
    response = requests.get(DexLabel.ORCA_WHIRLPOOLS.api_url(), timeout=60)
    if not response.ok:
        logger.error("Fetch of %s not successful: %s", Path(path).name, response.status_code)
        return False
    whirlpools, has_more = _parse_listing(response.json())
    payload = {"whirlpools": [pool.to_json() for pool in whirlpools], "hasMore": has_more}
    Path(path).write_text(json.dumps(payload), encoding="utf-8")
    logger.info("Data written to %s successfully.", Path(path).name)
    return True


def fetch_new_orca_whirlpools(
    client: RpcClient, token: str, on_token_a: bool
) -> list[tuple[str, Market]]:
    """Whirlpools holding the token as mint A or mint B, straight from the chain."""
    offset = TOKEN_MINT_A_OFFSET if on_token_a else TOKEN_MINT_B_OFFSET
    filters = [memcmp_filter(offset, token), data_size_filter(WHIRLPOOL_ACCOUNT_SIZE)]
    return [
        (address, _market(address, unpack_whirlpool(data), data))
        for address, data in client.get_program_accounts(WHIRLPOOL_PROGRAM_ID, filters)
    ]


def whirlpool_quote_params(
    pool_address: str,
    market: Market,
    token_0to1: bool,
    amount_in: int,
    token_infos: Mapping[str, TokenInfo],
) -> str:
    """Query string asking the simulator for a Whirlpool quote."""
    if market.account_data is None:
        raise ValueError("No account data provided")
    account = unpack_whirlpool(market.account_data)
    token_0 = token_infos[market.token_mint_a]
    token_1 = token_infos[market.token_mint_b]
    legs = [(account.token_mint_a, token_0), (account.token_mint_b, token_1)]
    if not token_0to1:
        legs.reverse()
    (key_in, info_in), (key_out, info_out) = legs
    return (
        f"poolId={pool_address}"
        f"&tokenInKey={key_in}&tokenInDecimals={info_in.decimals}&tokenInSymbol={info_in.symbol}"
        f"&tokenOutKey={key_out}&tokenOutDecimals={info_out.decimals}&tokenOutSymbol={info_out.symbol}"
        f"&tickSpacing={account.tick_spacing}&amountIn={amount_in}"
    )


def simulate_route_orca_whirlpools(
    simulator_url: str,
    amount_in: int,
    pool_address: str,
    token_0to1: bool,
    market: Market,
    token_infos: Mapping[str, TokenInfo],
    printing_amt: bool = False,
) -> tuple[str, str]:
    """Ask the simulator for a swap quote; returns (amount_out, min_amount_out)."""
    params = whirlpool_quote_params(pool_address, market, token_0to1, amount_in, token_infos)
    response = requests.get(f"{simulator_url}orca_quote?{params}", timeout=60)
    quoted_in, amount_out, min_out = parse_simulation_response(response.text)
    if printing_amt:
        symbol_0 = token_infos[market.token_mint_a].symbol
        symbol_1 = token_infos[market.token_mint_b].symbol
        print(f"estimatedAmountIn: {quoted_in!r} {symbol_0!r}")
        print(f"estimatedAmountOut: {amount_out!r} {symbol_1!r}")
        print(f"estimatedMinAmountOut: {min_out!r} {symbol_1!r}")
    return amount_out, min_out or ""