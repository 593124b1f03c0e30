from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")


def money(value: Decimal | float | int | None, unit: str = "UF") -> str:
    if value is None:
        return "-"
    return f"{Decimal(value):.2f} {unit}".replace(".", ",")


def round_amount(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)
