"""Raydium concentrated-liquidity pools: cached API listing and market index."""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import requests

from .types import Dex, DexLabel, Market, PoolItem

logger = logging.getLogger(__name__)

_I64_MIN, _I64_MAX = -(1 << 63), (1 << 63) - 1
_U64_MASK = (1 << 64) - 1
_U128_MASK = (1 << 128) - 1

_PERIOD_FLOATS = ("volume", "volumeFee", "feeA", "feeB", "feeApr", "apr", "priceMin", "priceMax")
_PERIODS = ("day", "week", "month")


def _coerce(value: Any, kind: str, key: str) -> Any:
    if kind == "str":
        if isinstance(value, str):
            return value
    elif kind == "opt_str":
        if value is None or isinstance(value, str):
            return value
    elif kind == "int":
        if isinstance(value, int) and not isinstance(value, bool) and _I64_MIN <= value <= _I64_MAX:
            return value
    elif kind == "float":
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            number = float(value)
            if math.isfinite(number):
                return number
    raise ValueError(f"field {key!r} has the wrong type: {value!r}")


def _field(data: Mapping[str, Any], key: str, kind: str) -> Any:
    if key not in data:
        if kind == "opt_str":
            return None
        raise ValueError(f"missing field {key!r}")
    return _coerce(data[key], kind, key)


def _object(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = _field(data, key, "any") if False else data.get(key)
    if key not in data:
        raise ValueError(f"missing field {key!r}")
    if not isinstance(value, Mapping):
        raise ValueError(f"field {key!r} must be an object")
    return value


def _period(data: Mapping[str, Any], key: str) -> dict[str, Any]:
    raw = _object(data, key)
    period: dict[str, Any] = {name: _field(raw, name, "float") for name in _PERIOD_FLOATS}
    reward = _object(raw, "rewardApr")
    period["rewardApr"] = {
        "A": _field(reward, "A", "float"),
        "B": _field(reward, "B", "float"),
        "C": _field(reward, "C", "int"),
    }
    return period


def _reward_infos(data: Mapping[str, Any]) -> list[dict[str, str]]:
    if "rewardInfos" not in data:
        raise ValueError("missing field 'rewardInfos'")
    raw = data["rewardInfos"]
    if not isinstance(raw, list):
        raise ValueError("field 'rewardInfos' must be an array")
    infos = []
    for entry in raw:
        if not isinstance(entry, Mapping):
            raise ValueError("reward info must be an object")
        infos.append({"mint": _field(entry, "mint", "str"), "programId": _field(entry, "programId", "str")})
    return infos


@dataclass
class AmmConfig:
    """Fee configuration shared by CLMM pools."""

    id: str
    index: int
    protocol_fee_rate: int
    trade_fee_rate: int
    tick_spacing: int
    fund_fee_rate: int
    fund_owner: str
    description: str


_AMM_CONFIG_FIELDS = (
    ("id", "id", "str"),
    ("index", "index", "int"),
    ("protocol_fee_rate", "protocolFeeRate", "int"),
    ("trade_fee_rate", "tradeFeeRate", "int"),
    ("tick_spacing", "tickSpacing", "int"),
    ("fund_fee_rate", "fundFeeRate", "int"),
    ("fund_owner", "fundOwner", "str"),
    ("description", "description", "str"),
)

_POOL_FIELDS = (
    ("id", "id", "str"),
    ("mint_program_id_a", "mintProgramIdA", "str"),
    ("mint_program_id_b", "mintProgramIdB", "str"),
    ("mint_a", "mintA", "str"),
    ("mint_b", "mintB", "str"),
    ("vault_a", "vaultA", "str"),
    ("vault_b", "vaultB", "str"),
    ("mint_decimals_a", "mintDecimalsA", "int"),
    ("mint_decimals_b", "mintDecimalsB", "int"),
    ("tvl", "tvl", "float"),
    ("lookup_table_account", "lookupTableAccount", "opt_str"),
    ("open_time", "openTime", "int"),
    ("price", "price", "float"),
)


@dataclass
class ClmmPool:
    """One entry of the Raydium CLMM pool listing."""

    id: str
    mint_program_id_a: str
    mint_program_id_b: str
    mint_a: str
    mint_b: str
    vault_a: str
    vault_b: str
    mint_decimals_a: int
    mint_decimals_b: int
    amm_config: AmmConfig
    tvl: float
    open_time: int
    price: float
    reward_infos: list[dict[str, str]] = field(default_factory=list)
    day: dict[str, Any] = field(default_factory=dict)
    week: dict[str, Any] = field(default_factory=dict)
    month: dict[str, Any] = field(default_factory=dict)
    lookup_table_account: str | None = None

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> ClmmPool:
        """Build from the API's camel-case object; ValueError on bad shape."""
        if not isinstance(data, Mapping):
            raise ValueError("pool entry must be an object")
        values = {attr: _field(data, key, kind) for attr, key, kind in _POOL_FIELDS}
        config = _object(data, "ammConfig")
        values["amm_config"] = AmmConfig(
            **{attr: _field(config, key, kind) for attr, key, kind in _AMM_CONFIG_FIELDS}
        )
        values["reward_infos"] = _reward_infos(data)
        for name in _PERIODS:
            values[name] = _period(data, name)
        return cls(**values)


def _pool_to_json(pool: ClmmPool) -> dict[str, Any]:
    payload: dict[str, Any] = {key: getattr(pool, attr) for attr, key, _ in _POOL_FIELDS}
    payload["ammConfig"] = {key: getattr(pool.amm_config, attr) for attr, key, _ in _AMM_CONFIG_FIELDS}
    payload["rewardInfos"] = [dict(info) for info in pool.reward_infos]
    for name in _PERIODS:
        period = dict(getattr(pool, name))
        period["rewardApr"] = dict(period["rewardApr"])
        payload[name] = period
    return payload


def _parse_listing(payload: Any) -> list[ClmmPool]:
    if not isinstance(payload, Mapping):
        raise ValueError("Raydium CLMM listing must be an object")
    entries = payload.get("data")
    if not isinstance(entries, list):
        raise ValueError("field 'data' must be an array")
    return [ClmmPool.from_json(entry) for entry in entries]


def load_clmm_pools(path: str | Path) -> list[ClmmPool]:
    """Read the cached pool listing."""
    return _parse_listing(json.loads(Path(path).read_text(encoding="utf-8")))


def build_clmm_dex(pools: Iterable[ClmmPool]) -> tuple[Dex, list[PoolItem]]:
    """Index each listed pool's market by pair."""
    dex = Dex(DexLabel.RAYDIUM_CLMM)
    items = []
    for pool in pools:
        rate = pool.amm_config.trade_fee_rate
        items.append(PoolItem(
            mint_a=pool.mint_a,
            mint_b=pool.mint_b,
            vault_a=pool.vault_a,
            vault_b=pool.vault_b,
            trade_fee_rate=rate & _U128_MASK,
        ))
        dex.add_market(Market(
            token_mint_a=pool.mint_a,
            token_vault_a=pool.vault_a,
            token_mint_b=pool.mint_b,
            token_vault_b=pool.vault_b,
            dex_label=DexLabel.RAYDIUM_CLMM,
            fee=rate & _U64_MASK,
            id=pool.id,
        ))
    logger.info("Raydium CLMM: %d pools found", len(items))
    return dex, items


def fetch_data_raydium_clmm(path: str | Path) -> bool:
    """Download the pool listing into the cache file; False if the API refused.

    A reply of the wrong shape raises ValueError.
    """
    name = Path(path).name
    response = requests.get(DexLabel.RAYDIUM_CLMM.api_url(), timeout=60)
    if not response.ok:
        logger.error("Fetch of %s not successful: %s", name, response.status_code)
        return False
    pools = _parse_listing(response.json())
    Path(path).write_text(json.dumps({"data": [_pool_to_json(pool) for pool in pools]}), encoding="utf-8")
    logger.info("Data written to %s successfully.", name)
    return True