"""Shared helpers: address validation and formatting, amount rounding."""

from backend_trustscore.utils.address_utils import (
    is_valid_address,
    is_valid_tx_hash,
    normalize_address,
    truncate_middle,
)
from backend_trustscore.utils.money import to_cents

__all__ = ["is_valid_address", "is_valid_tx_hash", "normalize_address", "to_cents", "truncate_middle"]
