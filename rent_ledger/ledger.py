"""Rent ledger: the time-ordered rent periods of each rental contract.

The authoritative rent of a contract at a date D is the *active* period with
the greatest ``effective_date <= D``; ties are broken by the most recent
``created_at``. Planned periods are future-dated and are never authoritative
here; promoting them to active is the caller's job. Contracts without any
period rows fall back to the rent fields stored on the contract itself, as
do dates before the first period as long as no period has been written
through to those fields yet.

Those contract fields are a denormalized cache. ``create_rent_period`` updates
them together with the insert, in one repository transaction, but only for
active periods already in force, so a future increase never leaks into
current figures.

Lookups return ``None`` or empty lists on absence. Failures of the backing
store propagate unchanged.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Iterable, List, Optional, Protocol

from .data_models import (
    BASELINE_REASONS,
    PERIOD_STATUSES,
    RENT_REASONS,
    STATUS_ACTIVE,
    STATUS_PLANNED,
    Contract,
    CurrentRent,
    IndexIncrease,
    NewRentPeriod,
    RentPeriod,
    VpiReading,
)
from .indexation import IndexValidationError, adjust
from .timing import compute_earliest_effective_date
from .utils import DateLike, Number, coerce_date, coerce_month, to_decimal

logger = logging.getLogger(__name__)


class RentPeriodRepository(Protocol):
    """Storage operations the ledger needs from its backing store."""

    def get_contract(self, contract_id: str) -> Optional[Contract]:
        ...

    def list_periods(
        self,
        contract_id: str,
        status: Optional[str] = None,
        effective_from: Optional[date] = None,
        effective_to: Optional[date] = None,
    ) -> List[RentPeriod]:
        ...

    def add_period(self, params: NewRentPeriod, sync_contract: bool) -> RentPeriod:
        """Insert a period and, when ``sync_contract`` is set, overwrite the
        contract's cached rent fields in the same transaction."""
        ...

    def delete_period(self, period_id: str, status: str) -> bool:
        """Delete the period only if it has ``status``; return whether a row went."""
        ...


def _newest_first(periods: Iterable[RentPeriod]) -> List[RentPeriod]:
    return sorted(
        periods,
        key=lambda p: (p.effective_date, p.created_at or datetime.min),
        reverse=True,
    )


def _to_current_rent(period: RentPeriod) -> CurrentRent:
    return CurrentRent(
        rent_period_id=period.id,
        cold_rent=period.cold_rent,
        utilities=period.utilities,
        effective_date=period.effective_date,
        reason=period.reason,
        period_status=period.status,
        vpi_old_month=period.vpi_old_month,
        vpi_old_value=period.vpi_old_value,
        vpi_new_month=period.vpi_new_month,
        vpi_new_value=period.vpi_new_value,
        notes=period.notes,
    )


def _legacy_rent(contract: Contract) -> CurrentRent:
    return CurrentRent(
        rent_period_id=None,
        cold_rent=contract.legacy_cold_rent(),
        utilities=contract.utilities or Decimal("0"),
        effective_date=contract.start_date,
        reason="migration",
        period_status=STATUS_ACTIVE,
    )


def validate_new_period(params: NewRentPeriod) -> None:
    """Check a write request before it reaches the store."""
    if params.reason not in RENT_REASONS:
        raise ValueError(f"Unknown rent reason: {params.reason}")
    if params.status not in PERIOD_STATUSES:
        raise ValueError(f"Unknown period status: {params.status}")
    if not isinstance(params.effective_date, date):
        raise ValueError("Effective date is required")
    if params.cold_rent < 0 or params.utilities < 0:
        raise ValueError("Rent amounts must not be negative")
    if (params.vpi_old_value is None) != (params.vpi_old_month is None):
        raise ValueError("Old VPI month and value must be given together")
    if (params.vpi_new_value is None) != (params.vpi_new_month is None):
        raise ValueError("New VPI month and value must be given together")


class RentLedger:
    """Read/write access to rent periods on top of a ``RentPeriodRepository``."""

    def __init__(self, repository: RentPeriodRepository, today: Optional[Callable[[], date]] = None) -> None:
        self._repo = repository
        self._today = today or date.today

    def get_current_rent(self, contract_id: str, as_of: DateLike = None) -> Optional[CurrentRent]:
        contract = self._repo.get_contract(contract_id)
        if contract is None:
            return None
        as_of_date = coerce_date(as_of) or self._today()

        periods = self._repo.list_periods(contract_id)
        if not periods:
            logger.debug("Contract %s has no rent periods; using contract fields", contract_id)
            return _legacy_rent(contract)

        in_force = [
            p for p in periods if p.status == STATUS_ACTIVE and p.effective_date <= as_of_date
        ]
        if in_force:
            return _to_current_rent(_newest_first(in_force)[0])

        # Only an active period already in force today can have been written
        # through to the contract fields.
        today = self._today()
        if any(p.status == STATUS_ACTIVE and p.effective_date <= today for p in periods):
            logger.debug("Contract %s has no rent period in force by %s", contract_id, as_of_date)
            return None
        logger.debug("Contract %s has no active period by %s; using contract fields", contract_id, as_of_date)
        return _legacy_rent(contract)

    def get_rent_periods(self, contract_id: str) -> List[RentPeriod]:
        """Full history, newest first."""
        return _newest_first(self._repo.list_periods(contract_id))

    def get_planned_periods(self, contract_id: str) -> List[RentPeriod]:
        """Planned periods, soonest first."""
        planned = self._repo.list_periods(contract_id, status=STATUS_PLANNED)
        return sorted(planned, key=lambda p: (p.effective_date, p.created_at or datetime.min))

    def get_latest_vpi_values(self, contract_id: str) -> Optional[VpiReading]:
        """Return the newest recorded VPI reading as the next baseline.

        Index increases compound: the next calculation uses this reading as
        its old value, never the contract's original baseline.
        """
        for period in self.get_rent_periods(contract_id):
            if period.vpi_new_value is not None:
                return VpiReading(month=period.vpi_new_month, value=period.vpi_new_value)
        return None

    def get_last_change_date(self, contract_id: str, as_of: DateLike = None) -> Optional[date]:
        """Effective date of the latest rent change.

        Active periods count when they take effect by ``as_of``; planned
        periods always count. Periods recording a starting rent (``BASELINE_REASONS``) are not changes.
        """
        as_of_date = coerce_date(as_of) or self._today()
        changes = [
            p
            for p in self._repo.list_periods(contract_id)
            if p.reason not in BASELINE_REASONS
            and (p.status == STATUS_PLANNED or p.effective_date <= as_of_date)
        ]
        if not changes:
            return None
        return max(p.effective_date for p in changes)

    def create_rent_period(self, params: NewRentPeriod) -> RentPeriod:
        """Validate and store a rent period.

        Raises
        ------
        LookupError
            If the contract does not exist.
        ValueError
            If the period is invalid.
        """
        validate_new_period(params)
        if self._repo.get_contract(params.contract_id) is None:
            raise LookupError(f"Rental contract {params.contract_id} not found")
        sync = (
            params.sync_to_contract
            and params.status == STATUS_ACTIVE
            and params.effective_date <= self._today()
        )
        period = self._repo.add_period(params, sync_contract=sync)
        logger.info(
            "Created %s rent period %s for contract %s effective %s (%s)",
            period.status,
            period.id,
            period.contract_id,
            period.effective_date,
            period.reason,
        )
        if sync:
            logger.info("Synced cached rent of contract %s to %s", period.contract_id, period.cold_rent)
        return period

    def delete_planned_period(self, period_id: str) -> bool:
        deleted = self._repo.delete_period(period_id, status=STATUS_PLANNED)
        if deleted:
            logger.info("Deleted planned rent period %s", period_id)
        else:
            logger.info("Refused to delete rent period %s: not found or not planned", period_id)
        return deleted

    def record_index_increase(
        self,
        contract_id: str,
        vpi_old: VpiReading,
        vpi_new: VpiReading,
        effective_date: DateLike = None,
        possible_since: DateLike = None,
        user_id: Optional[str] = None,
        utilities: Optional[Number] = None,
    ) -> IndexIncrease:
        """Compute an index increase and record it as a rent period.

        The effective date defaults to the earliest legal date. An explicit
        date is accepted as given (e.g. recording a notice already served),
        with a warning when it is earlier than the legal bound. The period is
        active and written through to the contract when it takes effect
        today or earlier, planned otherwise.

        Raises
        ------
        LookupError
            If the contract does not exist.
        IndexValidationError
            If the VPI pair is invalid.
        """
        today = self._today()
        current = self.get_current_rent(contract_id, today)
        if current is None:
            raise LookupError(f"Rental contract {contract_id} not found")

        adjustment = adjust(
            current.cold_rent,
            vpi_old.value,
            vpi_new.value,
            coerce_month(vpi_old.month),
            coerce_month(vpi_new.month),
        )
        if adjustment.vpi_old.month is None or adjustment.vpi_new.month is None:
            raise IndexValidationError("VPI reference months are required to record an increase")

        earliest = compute_earliest_effective_date(
            possible_since, self.get_last_change_date(contract_id, today), today=today
        )
        effective = coerce_date(effective_date) or earliest
        if effective < earliest:
            logger.warning(
                "Index increase for contract %s effective %s precedes the earliest legal date %s",
                contract_id,
                effective,
                earliest,
            )

        immediately_active = effective <= today
        period = self.create_rent_period(
            NewRentPeriod(
                contract_id=contract_id,
                effective_date=effective,
                cold_rent=adjustment.new_rent,
                utilities=current.utilities if utilities is None else to_decimal(utilities),
                reason="index",
                status=STATUS_ACTIVE if immediately_active else STATUS_PLANNED,
                notes=f"Index increase: VPI {adjustment.vpi_old.value} -> {adjustment.vpi_new.value}",
                vpi_old_month=adjustment.vpi_old.month,
                vpi_old_value=adjustment.vpi_old.value,
                vpi_new_month=adjustment.vpi_new.month,
                vpi_new_value=adjustment.vpi_new.value,
                user_id=user_id,
                sync_to_contract=immediately_active,
            )
        )
        return IndexIncrease(
            period=period,
            adjustment=adjustment,
            previous_rent=current,
            synced_to_contract=immediately_active,
        )
