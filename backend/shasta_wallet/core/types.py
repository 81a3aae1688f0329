"""
Shasta Wallet - Canonical Amount Types
======================================

RULE: No floats allowed for balances or transfer amounts.

Amount: Decimal TRX (for fractional values like 12.5 TRX)
        - Serialized as string in JSON
        - Never use float

Sun:    int (1 TRX = 1_000_000 SUN)
        - The ledger's native integer unit
        - Only used at the ledger boundary

All schemas and services import amount handling from here.
"""

from decimal import Decimal, ROUND_DOWN, InvalidOperation
from typing import Annotated, Any

from pydantic import BeforeValidator, PlainSerializer, WithJsonSchema


# =============================================================================
# SUN (Integer ledger unit)
# =============================================================================

SUN_PER_TRX = 1_000_000


class Sun:
    """
    Conversions between TRX amounts and integer SUN.

    Usage:
        Sun.from_trx(Decimal("1.5"))  # -> 1_500_000
        Sun.to_trx(1_500_000)         # -> Decimal("1.5")
    """

    @staticmethod
    def from_trx(trx: Decimal | str | int) -> int:
        """Convert TRX to SUN, truncating sub-SUN dust. No floats allowed."""
        if isinstance(trx, float):
            raise ValueError("Float not allowed. Use Decimal or string.")
        dec = Decimal(str(trx)) * SUN_PER_TRX
        return int(dec.quantize(Decimal("1"), rounding=ROUND_DOWN))

    @staticmethod
    def to_trx(sun: int) -> Decimal:
        """Convert SUN to Decimal TRX."""
        return Decimal(sun) / SUN_PER_TRX


# =============================================================================
# AMOUNT (Decimal TRX)
# =============================================================================

def _validate_amount(v: Any) -> Decimal:
    """
    Validate and convert to Decimal amount.

    Accepts:
        - Decimal: Pass through
        - str: Parse as Decimal
        - int: Convert to Decimal
        - float: REJECTED (raises ValueError)
    """
    if isinstance(v, bool):
        raise ValueError(f"Invalid amount type: {type(v)}")

    if isinstance(v, float):
        raise ValueError(
            "Float not allowed for amounts. Use Decimal or string. "
            f"Got: {v}"
        )

    if isinstance(v, Decimal):
        dec = v
    elif isinstance(v, (str, int)):
        try:
            dec = Decimal(str(v).strip())
        except InvalidOperation:
            raise ValueError(f"Invalid amount: {v!r}")
    else:
        raise ValueError(f"Invalid amount type: {type(v)}")

    if not dec.is_finite():
        raise ValueError(f"Amount must be finite, got: {v!r}")

    return dec


def _serialize_amount(v: Decimal) -> str:
    """Serialize amount as string (prevents JSON float issues)."""
    return str(v)


def parse_amount(v: Any) -> Decimal:
    """Parse user or ledger input into a Decimal amount."""
    return _validate_amount(v)


# Amount type: Decimal TRX, serialized as string
Amount = Annotated[
    Decimal,
    BeforeValidator(_validate_amount),
    PlainSerializer(_serialize_amount),
    WithJsonSchema({"type": "string", "description": "Decimal TRX amount as string"}),
]


__all__ = [
    "SUN_PER_TRX",
    "Sun",
    "Amount",
    "parse_amount",
]
