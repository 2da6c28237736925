"""Orca token-swap pools: cached API listing and on-chain layout."""

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

from .rpc import RpcClient, RpcError, encode_pubkey
from .types import Dex, DexLabel, Market, PoolItem

logger = logging.getLogger(__name__)

TOKEN_SWAP_LAYOUT = struct.Struct("<BBB" + "32s" * 7 + "Q" * 8 + "B32s")
TOKEN_SWAP_SIZE = TOKEN_SWAP_LAYOUT.size
_PERIODS = ("day", "week", "month")


@dataclass
class TokenSwapLayout:
    """Decoded state of an Orca token-swap account."""

    version: int
    is_initialized: bool
    bump_seed: int
    pool_token_program_id: str
    token_account_a: str
    token_account_b: str
    token_pool: str
    mint_a: str
    mint_b: str
    fee_account: str
    trade_fee_numerator: int
    trade_fee_denominator: int
    owner_trade_fee_numerator: int
    owner_trade_fee_denominator: int
    owner_withdraw_fee_numerator: int
    owner_withdraw_fee_denominator: int
    host_fee_numerator: int
    host_fee_denominator: int
    curve_type: int
    curve_parameters: bytes


def unpack_token_swap(data: bytes) -> TokenSwapLayout:
    """Decode a token-swap account; ValueError unless it is exactly 324 bytes."""
    if len(data) != TOKEN_SWAP_SIZE:
        raise ValueError(f"Orca pools bad unpack: expected {TOKEN_SWAP_SIZE} bytes, got {len(data)}")
    fields = TOKEN_SWAP_LAYOUT.unpack(data)
    version, initialized, bump = fields[:3]
    keys = [encode_pubkey(raw) for raw in fields[3:10]]
    fees = fields[10:18]
    curve_type, curve_parameters = fields[18:]
    return TokenSwapLayout(version, initialized != 0, bump, *keys, *fees, curve_type, curve_parameters)


def _require_str(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string, got {value!r}")
    return value


def _period(data: Mapping[str, Any], key: str) -> dict[str, str]:
    value = data.get(key)
    if not isinstance(value, Mapping):
        raise ValueError(f"field {key!r} must be an object")
    return {name: _require_str(value, name) for name in _PERIODS}


@dataclass
class OrcaPool:
    """One entry of the Orca pool listing."""

    pool_id: str
    pool_account: str
    token_a_amount: str
    token_b_amount: str
    pool_token_supply: str
    apy: dict[str, str]
    volume: dict[str, str]

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> OrcaPool:
        """Build from the API's camel-case object; ValueError on bad shape."""
        if not isinstance(data, Mapping):
            raise ValueError("pool entry must be an object")
        return cls(
            pool_id=_require_str(data, "poolId"),
            pool_account=_require_str(data, "poolAccount"),
            token_a_amount=_require_str(data, "tokenAAmount"),
            token_b_amount=_require_str(data, "tokenBAmount"),
            pool_token_supply=_require_str(data, "poolTokenSupply"),
            apy=_period(data, "apy"),
            volume=_period(data, "volume"),
        )

    def to_json(self) -> dict[str, Any]:
        """The API's camel-case object."""
        return {
            "poolId": self.pool_id,
            "poolAccount": self.pool_account,
            "tokenAAmount": self.token_a_amount,
            "tokenBAmount": self.token_b_amount,
            "poolTokenSupply": self.pool_token_supply,
            "apy": dict(self.apy),
            "volume": dict(self.volume),
        }


def _parse_listing(payload: Any) -> dict[str, OrcaPool]:
    if not isinstance(payload, Mapping):
        raise ValueError("Orca pool listing must be an object")
    return {name: OrcaPool.from_json(entry) for name, entry in payload.items()}


def load_orca_pools(path: str | Path) -> dict[str, OrcaPool]:
    """Read the cached pool listing."""
    return _parse_listing(json.loads(Path(path).read_text(encoding="utf-8")))


def _saturating_int(value: float, bits: int) -> int:
    if math.isnan(value) or value <= 0:
        return 0
    limit = (1 << bits) - 1
    return limit if value >= limit else int(value)


def _fee_bps(numerator: int, denominator: int) -> float:
    if denominator == 0:
        return math.nan if numerator == 0 else math.inf
    return numerator / denominator * 10000


def build_orca_dex(
    client: RpcClient, pools: Mapping[str, OrcaPool] | Iterable[OrcaPool]
) -> tuple[Dex, list[PoolItem]]:
    """Fetch each pool's account and index its market by pair."""
    entries = list(pools.values()) if isinstance(pools, Mapping) else list(pools)
    addresses = [pool.pool_account for pool in entries]
    layouts = []
    for address, raw in zip(addresses, client.get_multiple_accounts(addresses)):
        if raw is None:
            raise RpcError(f"account {address} not found")
        layouts.append(unpack_token_swap(raw))

    dex = Dex(DexLabel.ORCA)
    items = []
    for layout in layouts:
        fee = _fee_bps(layout.trade_fee_numerator, layout.trade_fee_denominator)
        items.append(PoolItem(
            mint_a=layout.mint_a,
            mint_b=layout.mint_b,
            vault_a=layout.token_account_a,
            vault_b=layout.token_account_b,
            trade_fee_rate=_saturating_int(fee, 128),
        ))
        dex.add_market(Market(
            token_mint_a=layout.mint_a,
            token_vault_a=layout.token_account_a,
            token_mint_b=layout.mint_b,
            token_vault_b=layout.token_account_b,
            dex_label=DexLabel.ORCA,
            fee=_saturating_int(fee, 64),
            id=layout.token_pool,
        ))
    logger.info("Orca: %d pools found", len(layouts))
    return dex, items


def fetch_data_orca(path: str | Path) -> bool:
    """Download the pool listing into the cache file; False if the API refused."""
    response = requests.get(DexLabel.ORCA.api_url(), timeout=60)
    if not response.ok:
        logger.info("Fetch of %s not successful: %s", Path(path).name, response.status_code)
        return False
    pools = _parse_listing(response.json())
    Path(path).write_text(
        json.dumps({name: pool.to_json() for name, pool in pools.items()}), encoding="utf-8"
    )
    logger.info("Data written to %s successfully.", Path(path).name)
    return True