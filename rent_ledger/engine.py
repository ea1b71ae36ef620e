"""Remaining-balance (Restschuld) engine for loans.

This module simulates a loan month by month from the first day of the current
month until the end of the fixed-interest period (or the loan's end date when
no fixed-interest end is known), or until the balance is paid off. Results are
returned as an ``AmortizationResult`` holding one ``MonthRow`` per month along
with aggregates over the full series.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal, getcontext
from typing import List, Optional

from .data_models import AmortizationResult, Loan, MonthRow
from .utils import add_months, first_of_month

getcontext().prec = 28  # increase precision for financial calculations

logger = logging.getLogger(__name__)

CHART_THRESHOLD = 24
CHART_TARGET_POINTS = 60


def _validate_loan(loan: Loan) -> None:
    if loan.remaining_balance < 0:
        raise ValueError("Remaining balance must not be negative")
    if loan.interest_rate < 0:
        raise ValueError("Interest rate must not be negative")
    if loan.monthly_payment < 0:
        raise ValueError("Monthly payment must not be negative")


def compute_schedule(loan: Loan, today: Optional[date] = None) -> AmortizationResult:
    """Compute the monthly remaining-balance schedule for a loan.

    Parameters
    ----------
    loan: Loan
        The loan to simulate. Only read.
    today: date, optional
        Reference date; the schedule starts on the first day of its month.

    Returns
    -------
    AmortizationResult
        Rows for every simulated month plus ``total_interest``,
        ``total_principal`` and ``final_balance``. The rows are empty when
        the loan has no end date or its end date lies before the start
        month; this is not an error.

    Notes
    -----
    When the monthly payment does not cover the month's interest the
    principal is zero and the balance stays where it is. Balances are never
    allowed below zero.
    """
    _validate_loan(loan)

    start = first_of_month(today or date.today())
    end = loan.horizon
    balance = loan.remaining_balance
    rate_per_month = (loan.interest_rate / Decimal(100)) / Decimal(12)
    payment = loan.monthly_payment

    rows: List[MonthRow] = []
    if end is None:
        logger.debug("Loan %s has no end date; no schedule computable", loan.id)
    elif end < start:
        logger.debug("Loan %s ended on %s before %s; no schedule computable", loan.id, end, start)

    current = start
    while end is not None and current <= end and balance > 0:
        interest = balance * rate_per_month
        if payment <= interest:
            # payment does not cover interest: stagnation
            principal = max(Decimal("0"), payment - interest)
        else:
            principal = min(payment - interest, balance)

        balance = max(Decimal("0"), balance - principal)
        rows.append(MonthRow(month=current, balance=balance, principal=principal, interest=interest))
        current = add_months(current, 1)

    total_interest = sum((r.interest for r in rows), Decimal("0"))
    total_principal = sum((r.principal for r in rows), Decimal("0"))
    final_balance = rows[-1].balance if rows else loan.remaining_balance

    return AmortizationResult(
        loan=loan,
        rows=rows,
        total_interest=total_interest,
        total_principal=total_principal,
        final_balance=final_balance,
    )


def downsample(rows: List[MonthRow]) -> List[MonthRow]:
    """Thin a long schedule for charting.

    Schedules of up to 24 rows are returned unchanged. Longer ones keep every
    N-th row, ``N = max(1, len(rows) // 60)``, plus the final row. The full
    series stays the source for tables and aggregates.
    """
    if len(rows) <= CHART_THRESHOLD:
        return list(rows)
    step = max(1, len(rows) // CHART_TARGET_POINTS)
    last = len(rows) - 1
    return [row for i, row in enumerate(rows) if i % step == 0 or i == last]
