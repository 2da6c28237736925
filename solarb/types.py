"""Market, DEX and simulation types shared by every pool loader."""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field


class DexLabel(enum.Enum):
    """The decentralised exchanges whose pools are tracked."""

    ORCA = "ORCA"
    ORCA_WHIRLPOOLS = "ORCA_WHIRLPOOLS"
    RAYDIUM = "RAYDIUM"
    RAYDIUM_CLMM = "RAYDIUM_CLMM"
    METEORA = "METEORA"

    def display_name(self) -> str:
        """Human readable name of the exchange."""
        return _DISPLAY_NAMES[self]

    def api_url(self) -> str:
        """Endpoint that lists every pool of the exchange."""
        return _API_URLS[self]


_DISPLAY_NAMES = {
    DexLabel.ORCA: "Orca",
    DexLabel.ORCA_WHIRLPOOLS: "Orca (Whirlpools)",
    DexLabel.RAYDIUM: "Raydium",
    DexLabel.RAYDIUM_CLMM: "Raydium CLMM",
    DexLabel.METEORA: "Meteora",
}

_API_URLS = {
    DexLabel.ORCA: "https://api.orca.so/allPools",
    DexLabel.ORCA_WHIRLPOOLS: "https://api.mainnet.orca.so/v1/whirlpool/list",
    DexLabel.RAYDIUM: "https://api.raydium.io/v2/main/pairs",
    DexLabel.RAYDIUM_CLMM: "https://api.raydium.io/v2/ammV3/ammPools",
    DexLabel.METEORA: "https://dlmm-api.meteora.ag/pair/all",
}

UNEXPECTED_RESPONSE = "Unexpected response format"


def to_pair_string(mint_a: str, mint_b: str) -> str:
    """Order-independent key for a pair of mints: the smaller one first."""
    if mint_a < mint_b:
        return f"{mint_a}/{mint_b}"
    return f"{mint_b}/{mint_a}"


@dataclass
class Market:
    """One tradable pool of a DEX."""

    token_mint_a: str
    token_vault_a: str
    token_mint_b: str
    token_vault_b: str
    dex_label: DexLabel
    fee: int
    id: str
    account_data: bytes | None = None
    liquidity: int | None = None


@dataclass
class PoolItem:
    """Condensed description of a pool."""

    mint_a: str
    mint_b: str
    vault_a: str
    vault_b: str
    trade_fee_rate: int


@dataclass
class Dex:
    """All markets of one exchange, grouped by token pair."""

    label: DexLabel
    pair_to_markets: dict[str, list[Market]] = field(default_factory=dict)

    def add_market(self, market: Market) -> None:
        """Register a market under its pair key."""
        pair = to_pair_string(market.token_mint_a, market.token_mint_b)
        self.pair_to_markets.setdefault(pair, []).append(market)

    def markets_for_pair(self, mint_a: str, mint_b: str) -> list[Market]:
        """Markets trading the two mints, in either order; KeyError if none."""
        return self.pair_to_markets[to_pair_string(mint_a, mint_b)]

    def all_markets(self) -> list[list[Market]]:
        """Every group of markets, one list per pair."""
        return list(self.pair_to_markets.values())


@dataclass(frozen=True)
class TokenInfo:
    """Token metadata needed to build quote requests."""

    address: str
    symbol: str
    decimals: int


class SimulationError(Exception):
    """The swap simulator rejected a request or answered unexpectedly."""


def parse_simulation_response(text: str | bytes) -> tuple[str, str, str | None]:
    """Parse a simulator reply into (amount_in, amount_out, min_amount_out).

    Raises SimulationError carrying the simulator's error message, or a
    generic message when the reply has neither shape.
    """
    try:
        payload = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise SimulationError(UNEXPECTED_RESPONSE) from None
    if isinstance(payload, dict):
        amount_in = payload.get("amountIn")
        amount_out = payload.get("estimatedAmountOut")
        min_out = payload.get("estimatedMinAmountOut")
        if (
            isinstance(amount_in, str)
            and isinstance(amount_out, str)
            and (min_out is None or isinstance(min_out, str))
        ):
            return amount_in, amount_out, min_out
        error = payload.get("error")
        if isinstance(error, str):
            raise SimulationError(error)
    raise SimulationError(UNEXPECTED_RESPONSE)