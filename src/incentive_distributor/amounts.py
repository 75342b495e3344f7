"""Fixed-point token amount helpers.

On-chain amounts are plain integers in the token's smallest unit. These
helpers convert between whole-token ``Decimal`` values and integers, and
render integers for log output.
"""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal

TOKEN_DECIMALS = 18


def expand_decimals(value: int, decimals: int = TOKEN_DECIMALS) -> int:
    """Return ``value * 10**decimals``."""
    return value * 10**decimals


def to_units(value: Decimal, decimals: int = TOKEN_DECIMALS) -> int:
    """Convert a whole-token amount into smallest units, rounding down."""
    scaled = (value * (Decimal(10) ** decimals)).quantize(Decimal(1), rounding=ROUND_DOWN)
    return int(scaled)


def format_amount(
    amount: int,
    decimals: int = TOKEN_DECIMALS,
    display_decimals: int = 2,
    use_commas: bool = True,
) -> str:
    """Format an integer amount as a human-readable token value.

    Example:
        ```python
        format_amount(1234500000000000000000)  # "1,234.50"
        ```
    """
    value = (Decimal(amount) / (Decimal(10) ** decimals)).quantize(
        Decimal(1).scaleb(-display_decimals),
        rounding=ROUND_DOWN,
    )
    if use_commas:
        return f"{value:,.{display_decimals}f}"
    return f"{value:.{display_decimals}f}"


def format_share_bps(part: int, total: int) -> str:
    """Format ``part / total`` as a percentage with two decimals."""
    if total <= 0:
        return "0.00"
    return format_amount(part * 10_000 // total, decimals=2, display_decimals=2, use_commas=False)
