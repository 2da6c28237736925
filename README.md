# solarb

A library for collecting and decoding liquidity pools on Solana
decentralised exchanges, grouping them by token pair, and asking a quote
simulator what a swap through a pool would return.

Venues with pool loaders:

- Orca token-swap pools (`solarb.orca`)
- Orca Whirlpools (`solarb.orca_whirlpools`)
- Raydium AMM (`solarb.raydium`)
- Raydium CLMM (`solarb.raydium_clmm`)

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Core types (`solarb.types`)

- `DexLabel` names a venue (`ORCA`, `ORCA_WHIRLPOOLS`, `RAYDIUM`,
  `RAYDIUM_CLMM`, `METEORA`); `display_name()` gives its label and
  `api_url()` the public endpoint that lists its pools.
- `Market` is one pool: the two token mints, their vaults, the venue label,
  the fee, the pool id and, where known, raw `account_data` and `liquidity`.
- `PoolItem` is a condensed pool description (mints, vaults, trade fee rate).
- `Dex` groups markets by pair. `add_market` files a market under the key made
  by `to_pair_string`, which puts the smaller mint first so that `A/B` and
  `B/A` give the same key. `markets_for_pair(mint_a, mint_b)` returns that list
  (raising `KeyError` when there is none) and `all_markets()` returns every
  list.
- `TokenInfo` holds a token's address, symbol and decimals, as used in quote
  requests.
- `parse_simulation_response(text)` reads a simulator reply into
  `(amount_in, amount_out, min_amount_out)` and raises `SimulationError` with
  the simulator's `error` message, or with "Unexpected response format".

## Talking to a node (`solarb.rpc`)

`RpcClient(url, commitment="finalized")` sends JSON-RPC requests over HTTP.
It offers `call`, `get_multiple_accounts` (batched by 100, `None` for missing
accounts), `get_program_accounts(program_id, filters)`, `get_account_data`,
`confirm_transaction` and `get_signature_status`. Failures raise `RpcError`.

Helpers: `encode_pubkey` / `decode_pubkey` (base58, 32-byte keys),
`memcmp_filter(offset, base58_bytes)`, `data_size_filter(size)`,
`average(numbers)` (integer mean, rounded down), and
`check_tx_status(client, signature, timeout=11.0, interval=10.0)`, which polls
until the signature is seen and returns whether it was confirmed in time.

## Loading pools

Every venue has a loader that reads a cached listing file and a builder that
turns it into a `Dex` and a list of `PoolItem`s:

```python
from solarb.rpc import RpcClient
from solarb.orca_whirlpools import load_whirlpools, build_whirlpools_dex
from solarb.raydium import load_raydium_pools, build_raydium_dex

client = RpcClient("http://localhost:8899", "confirmed")

whirlpools_dex, _ = build_whirlpools_dex(client, load_whirlpools("cache/orca_whirpools-markets.json"))
raydium_dex, _ = build_raydium_dex(load_raydium_pools("cache/raydium-markets.json"))

print(whirlpools_dex.label.display_name(), len(whirlpools_dex.all_markets()))
```

- `orca`: `load_orca_pools`, `build_orca_dex(client, pools)` (reads each pool
  account on chain with `unpack_token_swap`; fee in basis points from the
  trade fee ratio).
- `orca_whirlpools`: `load_whirlpools`, `build_whirlpools_dex(client,
  whirlpools)` (reads each account on chain with `unpack_whirlpool`; markets
  are built without `account_data`).
- `raydium`: `load_raydium_pools`, `build_raydium_dex(pools)`. The market fee
  and trade fee rate are taken from the listing's 7-day volume figure, and
  `account_data` holds the Borsh encoding of the listing entry.
- `raydium_clmm`: `load_clmm_pools`, `build_clmm_dex(pools)` (fee from the
  pool's `AmmConfig.trade_fee_rate`).

Each venue also has a `fetch_data_*(path)` function that downloads the listing
from the venue's API into the given file and returns `False` if the API
answered with an error status.

## Finding pools on chain

`fetch_new_orca_whirlpools(client, token, on_token_a)` and
`fetch_new_raydium_pools(client, token, on_token_a)` search the venue's program
accounts for pools holding `token` as first or second mint and return
`(address, Market)` pairs with `account_data` filled in.

## Decoding accounts

```python
from solarb.orca import unpack_token_swap
from solarb.orca_whirlpools import unpack_whirlpool
from solarb.raydium import AmmInfo

account = unpack_whirlpool(raw_bytes)
print(account.tick_spacing, account.fee_rate)
```

Decoders raise `ValueError` on data of the wrong length.

## Quoting a route

`simulate_route_orca_whirlpools` and `simulate_route_raydium` call a quote
service at `simulator_url` (`orca_quote` and `raydium_quote` endpoints) and
return `(amount_out, min_amount_out)` as strings. The query strings come from
`whirlpool_quote_params` and `raydium_quote_params`; the Whirlpool quote needs
a market whose `account_data` is set, such as one from
`fetch_new_orca_whirlpools`. With `printing_amt=True` the quoted amounts are
printed.

## What it does not do

- There is no loader, decoder or quote function for Meteora pools; only the
  `DexLabel.METEORA` label exists.
- There is no single call that loads every venue at once, and no routine that
  scans all venues for new pools of a list of tokens; combine the per-venue
  functions above.
- It builds, signs and sends no transactions, finds no arbitrage routes, and
  has no command-line program.