from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from core.config import settings

CENTS = Decimal("0.01")


def round2(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def unit_price(base_price, volume_ml: int, reference_volume_ml: Optional[int] = None) -> Decimal:
    """Price of one package of `volume_ml` for a recipe priced per reference volume."""
    ref = int(reference_volume_ml or settings.reference_volume_ml)
    return round2(Decimal(str(base_price)) * Decimal(int(volume_ml)) / Decimal(ref))


def line_total(price, quantity: int) -> Decimal:
    return round2(Decimal(str(price)) * int(quantity))
