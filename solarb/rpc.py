"""Minimal JSON-RPC client for a Solana node and helpers around it."""

from __future__ import annotations

import base64
import itertools
import logging
import time
from collections.abc import Iterable, Sequence
from typing import Any

import requests

logger = logging.getLogger(__name__)

_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_INDEX = {char: index for index, char in enumerate(_ALPHABET)}
_COMMITMENT_RANK = {"processed": 0, "confirmed": 1, "finalized": 2}
MAX_MULTIPLE_ACCOUNTS = 100
PUBKEY_LENGTH = 32


class RpcError(Exception):
    """The node answered with an error or could not be reached."""

    def __init__(self, message: str, code: int | None = None):
        super().__init__(message)
        self.code = code


def encode_pubkey(raw: bytes) -> str:
    """Base58-encode raw key bytes."""
    number = int.from_bytes(raw, "big")
    chars = []
    while number:
        number, remainder = divmod(number, 58)
        chars.append(_ALPHABET[remainder])
    leading = len(raw) - len(raw.lstrip(b"\0"))
    return "1" * leading + "".join(reversed(chars))


def _b58decode(text: str) -> bytes:
    number = 0
    for char in text:
        try:
            number = number * 58 + _INDEX[char]
        except KeyError:
            raise ValueError(f"invalid base58 character {char!r}") from None
    leading = len(text) - len(text.lstrip("1"))
    body = number.to_bytes((number.bit_length() + 7) // 8, "big") if number else b""
    return b"\0" * leading + body


def decode_pubkey(text: str) -> bytes:
    """Decode a base58 public key into its 32 bytes."""
    raw = _b58decode(text)
    if len(raw) != PUBKEY_LENGTH:
        raise ValueError(f"public key {text!r} decodes to {len(raw)} bytes, expected {PUBKEY_LENGTH}")
    return raw


def memcmp_filter(offset: int, base58_bytes: str) -> dict[str, Any]:
    """Program-account filter matching base58 bytes at an offset."""
    return {"memcmp": {"offset": offset, "encoding": "base58", "bytes": base58_bytes}}


def data_size_filter(size: int) -> dict[str, int]:
    """Program-account filter matching an exact data length."""
    return {"dataSize": size}


def _decode_account(account: dict[str, Any] | None) -> bytes | None:
    if account is None:
        return None
    data = account.get("data")
    if isinstance(data, list) and len(data) == 2 and data[1] == "base64":
        return base64.b64decode(data[0])
    raise RpcError(f"unsupported account data encoding: {data!r}")


def _satisfies(status: dict[str, Any], commitment: str) -> bool:
    level = status.get("confirmationStatus")
    if level is None:
        level = "finalized" if status.get("confirmations") is None else "processed"
    return _COMMITMENT_RANK.get(level, -1) >= _COMMITMENT_RANK[commitment]


class RpcClient:
    """Talks to a Solana node over HTTP JSON-RPC."""

    request_timeout = 30.0

    def __init__(self, url: str, commitment: str = "finalized"):
        if commitment not in _COMMITMENT_RANK:
            raise ValueError(f"unknown commitment level {commitment!r}")
        self.url = url
        self.commitment = commitment
        self._ids = itertools.count(1)

    def call(self, method: str, params: Sequence[Any] | None = None) -> Any:
        """Send one request and return its result."""
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": list(params or []),
        }
        try:
            response = requests.post(self.url, json=payload, timeout=self.request_timeout)
            response.raise_for_status()
            body = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise RpcError(f"{method} failed: {exc}") from exc
        if "error" in body:
            error = body["error"] or {}
            raise RpcError(str(error.get("message", error)), error.get("code"))
        return body.get("result")

    def get_multiple_accounts(self, pubkeys: Iterable[str]) -> list[bytes | None]:
        """Data of each account, None where it does not exist; batched by 100."""
        keys = list(pubkeys)
        for key in keys:
            decode_pubkey(key)
        results: list[bytes | None] = []
        for start in range(0, len(keys), MAX_MULTIPLE_ACCOUNTS):
            batch = keys[start:start + MAX_MULTIPLE_ACCOUNTS]
            result = self.call(
                "getMultipleAccounts",
                [batch, {"encoding": "base64", "commitment": self.commitment}],
            )
            results.extend(_decode_account(account) for account in result["value"])
        return results

    def get_program_accounts(
        self, program_id: str, filters: Sequence[dict[str, Any]] | None = None
    ) -> list[tuple[str, bytes]]:
        """(address, data) of every account owned by a program that matches the filters."""
        config: dict[str, Any] = {"encoding": "base64", "commitment": self.commitment}
        if filters:
            config["filters"] = list(filters)
        result = self.call("getProgramAccounts", [program_id, config])
        return [(item["pubkey"], _decode_account(item["account"]) or b"") for item in result]

    def get_account_data(self, pubkey: str) -> bytes:
        """Data of one account; RpcError if it does not exist."""
        result = self.call(
            "getAccountInfo", [pubkey, {"encoding": "base64", "commitment": self.commitment}]
        )
        data = _decode_account(result["value"])
        if data is None:
            raise RpcError(f"account {pubkey} not found")
        return data

    def _signature_status(self, signature: str, search_history: bool) -> dict[str, Any] | None:
        params: list[Any] = [[signature]]
        if search_history:
            params.append({"searchTransactionHistory": True})
        result = self.call("getSignatureStatuses", params)
        return result["value"][0]

    def confirm_transaction(self, signature: str) -> bool:
        """True once the transaction succeeded at the client's commitment."""
        status = self._signature_status(signature, search_history=False)
        return status is not None and _satisfies(status, self.commitment) and status.get("err") is None

    def get_signature_status(self, signature: str, commitment: str | None = None) -> dict[str, Any] | None:
        """Status of a transaction reaching the commitment, searching history; None otherwise."""
        level = commitment or self.commitment
        if level not in _COMMITMENT_RANK:
            raise ValueError(f"unknown commitment level {level!r}")
        status = self._signature_status(signature, search_history=True)
        if status is None or not _satisfies(status, level):
            return None
        return status


def check_tx_status(client: RpcClient, signature: str, timeout: float = 11.0, interval: float = 10.0) -> bool:
    """Poll until the transaction is seen, or give up after the timeout."""
    start = time.monotonic()
    rounds = 0
    while True:
        confirmed = client.confirm_transaction(signature)
        logger.info("Is confirmed? %s", confirmed)
        status = client.get_signature_status(signature, client.commitment)
        logger.info("Status: %s", status)
        if confirmed:
            logger.info("Transaction confirmed with confirmation")
            return True
        if status is not None:
            logger.info("Transaction confirmed with status")
            return True
        if time.monotonic() - start >= timeout:
            logger.error("Transaction not confirmed")
            return False
        logger.info("%s seconds...", interval * rounds)
        time.sleep(interval)
        rounds += 1


def average(numbers: Sequence[int]) -> int:
    """Integer mean, rounded down; ZeroDivisionError for an empty sequence."""
    return sum(numbers) // len(numbers)