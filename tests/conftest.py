"""Fixtures for the rent ledger tests.

``InMemoryRepository`` stands in for the database so ledger behaviour can be
checked without SQLAlchemy. ``created_at`` advances one second per insert so
tie-breaks are deterministic.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import uuid4

import pytest

from rent_ledger.data_models import Contract, NewRentPeriod, RentPeriod
from rent_ledger.ledger import RentLedger

TODAY = date(2025, 6, 15)


class InMemoryRepository:
    def __init__(self) -> None:
        self.contracts: Dict[str, Contract] = {}
        self.periods: List[RentPeriod] = []
        self.fail_writes = False
        self._clock = datetime(2025, 1, 1, 12, 0, 0)

    def add_contract(self, contract: Contract) -> Contract:
        self.contracts[contract.id] = contract
        return contract

    def get_contract(self, contract_id: str) -> Optional[Contract]:
        return self.contracts.get(contract_id)

    def list_periods(
        self,
        contract_id: str,
        status: Optional[str] = None,
        effective_from: Optional[date] = None,
        effective_to: Optional[date] = None,
    ) -> List[RentPeriod]:
        rows = [p for p in self.periods if p.contract_id == contract_id]
        if status is not None:
            rows = [p for p in rows if p.status == status]
        if effective_from is not None:
            rows = [p for p in rows if p.effective_date >= effective_from]
        if effective_to is not None:
            rows = [p for p in rows if p.effective_date <= effective_to]
        return list(rows)

    def add_period(self, params: NewRentPeriod, sync_contract: bool) -> RentPeriod:
        if self.fail_writes:
            raise RuntimeError("disk full")
        self._clock += timedelta(seconds=1)
        period = RentPeriod(
            id=uuid4().hex,
            contract_id=params.contract_id,
            effective_date=params.effective_date,
            cold_rent=params.cold_rent,
            utilities=params.utilities,
            reason=params.reason,
            status=params.status,
            notes=params.notes,
            vpi_old_month=params.vpi_old_month,
            vpi_old_value=params.vpi_old_value,
            vpi_new_month=params.vpi_new_month,
            vpi_new_value=params.vpi_new_value,
            created_at=self._clock,
            user_id=params.user_id,
        )
        self.periods.append(period)
        if sync_contract and params.contract_id in self.contracts:
            contract = self.contracts[params.contract_id]
            contract.monthly_rent = params.cold_rent
            contract.base_rent = params.cold_rent
            contract.cold_rent = params.cold_rent
            contract.utilities = params.utilities
            contract.total_rent = params.cold_rent + params.utilities
        return period

    def delete_period(self, period_id: str, status: str) -> bool:
        for period in self.periods:
            if period.id == period_id:
                if period.status != status:
                    return False
                self.periods.remove(period)
                return True
        return False


def make_contract(contract_id: str = "C1", cold_rent: str = "800", utilities: str = "150") -> Contract:
    cold = Decimal(cold_rent)
    util = Decimal(utilities)
    return Contract(
        id=contract_id,
        monthly_rent=cold,
        base_rent=cold,
        cold_rent=cold,
        utilities=util,
        total_rent=cold + util,
        start_date=date(2020, 1, 1),
    )


def make_period(
    contract_id: str,
    effective_date: date,
    cold_rent: str,
    status: str = "active",
    reason: str = "manual",
    utilities: str = "150",
    **kwargs,
) -> NewRentPeriod:
    return NewRentPeriod(
        contract_id=contract_id,
        effective_date=effective_date,
        cold_rent=Decimal(cold_rent),
        utilities=Decimal(utilities),
        reason=reason,
        status=status,
        **kwargs,
    )


@pytest.fixture
def repository() -> InMemoryRepository:
    repo = InMemoryRepository()
    repo.add_contract(make_contract())
    return repo


@pytest.fixture
def ledger(repository) -> RentLedger:
    return RentLedger(repository, today=lambda: TODAY)
