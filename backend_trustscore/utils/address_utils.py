"""Address and hash validation utilities (EVM hex format, lower-case canonical form)."""

from __future__ import annotations

import re

from backend_trustscore.core.exceptions import InvalidInputError

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_TX_HASH_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")


def is_valid_address(address: str | None) -> bool:
    """Return True if address is a 0x-prefixed 20-byte hex address."""
    if not isinstance(address, str):
        return False
    return bool(_ADDRESS_RE.match(address.strip()))


def normalize_address(address: str | None) -> str:
    """Return the lower-case canonical address; raise InvalidInputError if malformed."""
    if not isinstance(address, str) or not address.strip():
        raise InvalidInputError("address must be a non-empty string")
    addr = address.strip()
    if not _ADDRESS_RE.match(addr):
        raise InvalidInputError(f"Invalid address: {addr[:64]}")
    return addr.lower()


def is_valid_tx_hash(tx_hash: str | None) -> bool:
    """Return True if tx_hash is a 0x-prefixed 32-byte hex hash."""
    if not isinstance(tx_hash, str):
        return False
    return bool(_TX_HASH_RE.match(tx_hash.strip()))


def truncate_middle(value: str, start: int = 6, end: int = 4) -> str:
    """Shorten 0x1234567890...abcd style for log and evidence output."""
    if len(value) <= start + end:
        return value
    return f"{value[:start]}...{value[-end:]}"
