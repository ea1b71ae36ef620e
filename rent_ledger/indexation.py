"""Index rent adjustment (VPI-linked rent, §557b BGB).

The new rent is the current rent scaled by the ratio of two consumer price
index readings and rounded to the cent with commercial rounding:

    new_rent = round(current_rent * vpi_new / vpi_old, 2)

Adjustments compound: the ``vpi_new`` reading of one increase is the
``vpi_old`` baseline of the next one (see ``RentLedger.get_latest_vpi_values``).
Only increases go through this path, so the new reading must be higher than
the old one and must refer to a later month.
"""

from __future__ import annotations

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from .data_models import IndexAdjustment, VpiReading
from .utils import DateLike, Number, coerce_month, first_of_month, quantize_money, to_decimal


class IndexValidationError(ValueError):
    """Raised when a VPI pair cannot be used for an index increase."""


def validate_vpi_pair(
    vpi_old: Decimal,
    vpi_new: Decimal,
    old_month: Optional[date] = None,
    new_month: Optional[date] = None,
) -> None:
    """Reject VPI readings that do not describe a valid increase.

    Raises
    ------
    IndexValidationError
        If either value is not positive, the new value is not higher than
        the old one, or the new reference month is not after the old one.
    """
    if vpi_old <= 0:
        raise IndexValidationError("Old VPI value must be positive")
    if vpi_new <= 0:
        raise IndexValidationError("New VPI value must be positive")
    if vpi_new <= vpi_old:
        raise IndexValidationError(
            f"New VPI value ({vpi_new}) must be higher than old VPI value ({vpi_old})"
        )
    if old_month is not None and new_month is not None and first_of_month(new_month) <= first_of_month(old_month):
        raise IndexValidationError(
            f"New VPI month ({new_month:%Y-%m}) must be after old VPI month ({old_month:%Y-%m})"
        )


def compute(
    current_rent: Number,
    vpi_old: Number,
    vpi_new: Number,
    old_month: DateLike = None,
    new_month: DateLike = None,
) -> Decimal:
    """Return the index-adjusted rent, rounded half away from zero to the cent.

    >>> compute(1000, 100, 105)
    Decimal('1050.00')
    """
    return adjust(current_rent, vpi_old, vpi_new, old_month, new_month).new_rent


def adjust(
    current_rent: Number,
    vpi_old: Number,
    vpi_new: Number,
    old_month: DateLike = None,
    new_month: DateLike = None,
) -> IndexAdjustment:
    """Validate the inputs and compute the new rent with its derived values."""
    rent = to_decimal(current_rent)
    old_value = to_decimal(vpi_old)
    new_value = to_decimal(vpi_new)
    old_month_dt = coerce_month(old_month)
    new_month_dt = coerce_month(new_month)

    if rent < 0:
        raise IndexValidationError("Current rent must not be negative")
    validate_vpi_pair(old_value, new_value, old_month_dt, new_month_dt)

    ratio = new_value / old_value
    new_rent = quantize_money(rent * ratio)
    percentage_change = ((ratio - 1) * 100).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    return IndexAdjustment(
        current_rent=rent,
        new_rent=new_rent,
        vpi_old=VpiReading(month=old_month_dt, value=old_value),
        vpi_new=VpiReading(month=new_month_dt, value=new_value),
        percentage_change=percentage_change,
        delta=new_rent - rent,
    )
