"""Data models for the rent ledger and its calculators.

This module defines dataclasses representing the entities used by the ledger
and the two calculation engines: rent periods and the contract's cached rent
fields, VPI readings and index adjustments, loans and the monthly rows of a
remaining-balance schedule. Using dataclasses makes it easy to construct,
inspect and serialize these structures.

Money values are ``Decimal`` throughout; dates are ``datetime.date`` with no
time component. VPI months are normalized to the first day of the month.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

RENT_REASONS = ("initial", "increase", "index", "stepped", "migration", "manual", "import")
PERIOD_STATUSES = ("active", "planned")
# Reasons that record a starting rent rather than a change of it.
BASELINE_REASONS = ("initial", "migration", "import")

STATUS_ACTIVE = "active"
STATUS_PLANNED = "planned"


@dataclass
class VpiReading:
    """A consumer price index value for a reference month.

    Attributes
    ----------
    month: date
        First day of the index's reference month.
    value: Decimal
        The published index value, e.g. ``Decimal("121.5")``.
    """

    month: Optional[date]
    value: Decimal


@dataclass
class RentPeriod:
    """A ledger record asserting a rent valid from ``effective_date`` on.

    Rows are never mutated once stored. Planned rows are future-dated and may
    be deleted; active rows form the audit trail.
    """

    id: str
    contract_id: str
    effective_date: date
    cold_rent: Decimal
    utilities: Decimal
    reason: str  # one of RENT_REASONS
    status: str  # 'active' or 'planned'
    notes: str = ""
    vpi_old_month: Optional[date] = None
    vpi_old_value: Optional[Decimal] = None
    vpi_new_month: Optional[date] = None
    vpi_new_value: Optional[Decimal] = None
    created_at: Optional[datetime] = None
    user_id: Optional[str] = None


@dataclass
class NewRentPeriod:
    """Parameters for ``RentLedger.create_rent_period``.

    ``sync_to_contract`` requests that the contract's cached rent fields be
    overwritten. The ledger honours it only for active periods that are
    already in force.
    """

    contract_id: str
    effective_date: date
    cold_rent: Decimal
    utilities: Decimal
    reason: str
    status: str
    notes: str = ""
    vpi_old_month: Optional[date] = None
    vpi_old_value: Optional[Decimal] = None
    vpi_new_month: Optional[date] = None
    vpi_new_value: Optional[Decimal] = None
    user_id: Optional[str] = None
    sync_to_contract: bool = False


@dataclass
class Contract:
    """The rent-related fields of a rental contract.

    ``monthly_rent``, ``base_rent``, ``cold_rent``, ``utilities`` and
    ``total_rent`` are a denormalized cache used for fast reads elsewhere.
    They predate the ledger and are the fallback source of the current rent
    for contracts without any period rows.
    """

    id: str
    monthly_rent: Optional[Decimal] = None
    base_rent: Optional[Decimal] = None
    cold_rent: Optional[Decimal] = None
    utilities: Optional[Decimal] = None
    total_rent: Optional[Decimal] = None
    start_date: Optional[date] = None

    def legacy_cold_rent(self) -> Decimal:
        for value in (self.monthly_rent, self.cold_rent, self.base_rent):
            if value:
                return value
        return Decimal("0")


@dataclass
class CurrentRent:
    """The authoritative rent of a contract at a given date.

    ``rent_period_id`` is ``None`` when the record was synthesized from the
    contract's legacy fields.
    """

    rent_period_id: Optional[str]
    cold_rent: Decimal
    utilities: Decimal
    effective_date: Optional[date]
    reason: str
    period_status: str
    vpi_old_month: Optional[date] = None
    vpi_old_value: Optional[Decimal] = None
    vpi_new_month: Optional[date] = None
    vpi_new_value: Optional[Decimal] = None
    notes: Optional[str] = None

    @property
    def total_rent(self) -> Decimal:
        return self.cold_rent + self.utilities

    @property
    def is_legacy(self) -> bool:
        return self.rent_period_id is None


@dataclass
class IndexAdjustment:
    """Result of an index rent calculation.

    ``percentage_change`` and ``delta`` are derived and never persisted.
    """

    current_rent: Decimal
    new_rent: Decimal
    vpi_old: VpiReading
    vpi_new: VpiReading
    percentage_change: Decimal
    delta: Decimal


@dataclass
class IndexIncrease:
    """Outcome of recording an index increase in the ledger."""

    period: RentPeriod
    adjustment: IndexAdjustment
    previous_rent: CurrentRent
    synced_to_contract: bool


@dataclass
class DeliveryTiming:
    """When an index increase notice should be served.

    Attributes
    ----------
    timing_status: str
        ``NOW_OPTIMAL`` while today lies in the service window,
        ``BEFORE_WINDOW`` before it and ``MISSED_WINDOW`` after it.
    next_earliest_effective_from: date
        First day of the month on or after the date a recalculation is
        permitted.
    service_window_start / service_window_end: date
        The calendar month two months before ``next_earliest_effective_from``.
    next_effective_if_send_today: date
        The effective date reached if the notice is served today.
    """

    timing_status: str
    next_earliest_effective_from: date
    service_window_start: date
    service_window_end: date
    next_effective_if_send_today: date


@dataclass
class Loan:
    """A loan as read from the persistence collaborator.

    The engine only reads these fields. ``fixed_interest_end_date`` takes
    precedence over ``end_date`` as the schedule horizon.
    """

    remaining_balance: Decimal
    interest_rate: Decimal  # annual nominal interest rate in percent
    monthly_payment: Decimal
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    fixed_interest_end_date: Optional[date] = None
    id: Optional[str] = None
    lender_name: Optional[str] = None

    @property
    def horizon(self) -> Optional[date]:
        return self.fixed_interest_end_date or self.end_date


@dataclass
class MonthRow:
    """One month of a remaining-balance schedule.

    ``balance`` is the balance after the month's principal was paid.
    """

    month: date
    balance: Decimal
    principal: Decimal
    interest: Decimal


@dataclass
class AmortizationResult:
    """A full schedule plus aggregates computed over every row.

    An empty ``rows`` list is a valid result meaning that no schedule could
    be computed (no end date, or the end date lies in the past).
    """

    loan: Loan
    rows: List[MonthRow] = field(default_factory=list)
    total_interest: Decimal = Decimal("0")
    total_principal: Decimal = Decimal("0")
    final_balance: Decimal = Decimal("0")

    @property
    def is_empty(self) -> bool:
        return not self.rows

    def chart_rows(self) -> List[MonthRow]:
        from .engine import downsample

        return downsample(self.rows)
