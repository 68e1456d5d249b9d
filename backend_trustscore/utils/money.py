"""Decimal helpers for token amounts."""

from __future__ import annotations

from decimal import Context, Decimal

CENT = Decimal("0.01")


def to_cents(value: Decimal) -> Decimal:
    """Round to two places; precision grows with the value so large totals don't raise."""
    if not value.is_finite():
        return value
    digits = max(value.adjusted(), 0) + 4
    return value.quantize(CENT, context=Context(prec=max(28, digits)))
