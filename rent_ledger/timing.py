"""Statutory timing of index rent increases.

An index increase notice takes effect no earlier than the start of the month
after next (the notice period), no earlier than the date from which a
recalculation is contractually permitted, and no earlier than twelve months
after the previous rent change took effect.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from .data_models import DeliveryTiming
from .utils import DateLike, add_months, coerce_date, first_of_month, last_of_month

NOW_OPTIMAL = "NOW_OPTIMAL"
BEFORE_WINDOW = "BEFORE_WINDOW"
MISSED_WINDOW = "MISSED_WINDOW"

NOTICE_MONTHS = 2
MIN_MONTHS_BETWEEN_CHANGES = 12


def compute_earliest_effective_date(
    possible_since: DateLike,
    last_change_date: DateLike,
    today: Optional[date] = None,
) -> date:
    """Return the earliest date an index increase can legally take effect.

    Parameters
    ----------
    possible_since: date, str or None
        Earliest date a recalculation is permitted (e.g. by contract clause).
    last_change_date: date, str or None
        Effective date of the previous rent change, if any.
    today: date, optional
        Reference date; defaults to ``date.today()``.

    Returns
    -------
    date
        The maximum of the notice bound, ``possible_since`` and the date
        twelve months after ``last_change_date``. When that day does not
        exist in the target month (29 February) it is clamped to the last
        day of the month.
    """
    today = today or date.today()
    earliest = add_months(first_of_month(today), NOTICE_MONTHS)

    possible = coerce_date(possible_since)
    if possible is not None and possible > earliest:
        earliest = possible

    last_change = coerce_date(last_change_date)
    if last_change is not None:
        twelve_months_after = add_months(last_change, MIN_MONTHS_BETWEEN_CHANGES)
        if twelve_months_after > earliest:
            earliest = twelve_months_after

    return earliest


def compute_delivery_timing(
    possible_since: DateLike, today: Optional[date] = None
) -> Optional[DeliveryTiming]:
    """Return the service window for a notice, or ``None`` without a usable date.

    The notice should be served during the calendar month two months before
    the first month start on or after ``possible_since``.
    """
    try:
        possible = coerce_date(possible_since)
    except ValueError:
        return None
    if possible is None:
        return None

    today = today or date.today()

    next_earliest = first_of_month(possible)
    if next_earliest < possible:
        next_earliest = add_months(next_earliest, 1)

    window_month = add_months(next_earliest, -NOTICE_MONTHS)
    window_start = first_of_month(window_month)
    window_end = last_of_month(window_month)

    if window_start <= today <= window_end:
        status = NOW_OPTIMAL
    elif today < window_start:
        status = BEFORE_WINDOW
    else:
        status = MISSED_WINDOW

    return DeliveryTiming(
        timing_status=status,
        next_earliest_effective_from=next_earliest,
        service_window_start=window_start,
        service_window_end=window_end,
        next_effective_if_send_today=add_months(first_of_month(today), NOTICE_MONTHS),
    )
