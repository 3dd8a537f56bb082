# SPDX-License-Identifier: AGPL-3.0-or-later
"""Money-related helpers. Amounts are integer cents."""

from decimal import Decimal, ROUND_HALF_UP


def round_half_up_cents(value: float | Decimal) -> int:
    """Round a currency amount to cents using half-up semantics."""
    quantized = Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(quantized)


def percent_of_cents(amount_cents: int, percent: float | int) -> int:
    return round_half_up_cents(Decimal(int(amount_cents)) * Decimal(str(percent)) / Decimal(100))


def format_cents(amount_cents: int) -> str:
    sign = "-" if amount_cents < 0 else ""
    dollars, cents = divmod(abs(int(amount_cents)), 100)
    return f"{sign}${dollars:,}.{cents:02d}"


__all__ = ["format_cents", "percent_of_cents", "round_half_up_cents"]
