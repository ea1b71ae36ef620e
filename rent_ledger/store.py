"""SQLAlchemy persistence for rental contracts and rent periods.

This module implements the ``RentPeriodRepository`` protocol on top of any
SQLAlchemy-compatible database. It defaults to SQLite for local use, but
accepts any URL (e.g. PostgreSQL) for shared deployments.

Writes run in a single session: inserting a rent period and overwriting the
contract's cached rent fields either both commit or both roll back. Database
errors are logged and re-raised unchanged.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import Iterator, List, Optional
from uuid import uuid4

from sqlalchemy import Column, Date, DateTime, ForeignKey, Numeric, String, Text, create_engine, select
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .data_models import Contract, NewRentPeriod, RentPeriod

Base = declarative_base()

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///rent_ledger.sqlite3"


class RentalContractModel(Base):
    __tablename__ = "rental_contracts"

    id = Column(String(64), primary_key=True)
    monthly_rent = Column(Numeric(12, 2), nullable=True)
    base_rent = Column(Numeric(12, 2), nullable=True)
    cold_rent = Column(Numeric(12, 2), nullable=True)
    utilities = Column(Numeric(12, 2), nullable=True)
    total_rent = Column(Numeric(12, 2), nullable=True)
    start_date = Column(Date, nullable=True)


class RentPeriodModel(Base):
    __tablename__ = "rent_history"

    id = Column(String(64), primary_key=True)
    contract_id = Column(String(64), ForeignKey("rental_contracts.id"), index=True, nullable=False)
    user_id = Column(String(64), nullable=True)
    effective_date = Column(Date, index=True, nullable=False)
    cold_rent = Column(Numeric(12, 2), nullable=False)
    utilities = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    reason = Column(String(16), nullable=False)
    status = Column(String(16), index=True, nullable=False)
    notes = Column(Text, nullable=False, default="")
    vpi_old_month = Column(Date, nullable=True)
    vpi_old_value = Column(Numeric(10, 3), nullable=True)
    vpi_new_month = Column(Date, nullable=True)
    vpi_new_value = Column(Numeric(10, 3), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class LedgerStore:
    """Database-backed rent period repository."""

    def __init__(self, url: str) -> None:
        self._engine = create_engine(url, future=True)
        Base.metadata.create_all(self._engine)
        self._session_factory = sessionmaker(self._engine, expire_on_commit=False, future=True)

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Provide a transactional scope."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            logger.exception("Rent ledger transaction rolled back")
            raise
        finally:
            session.close()

    def add_contract(self, contract: Contract) -> Contract:
        row = RentalContractModel(
            id=contract.id,
            monthly_rent=contract.monthly_rent,
            base_rent=contract.base_rent,
            cold_rent=contract.cold_rent,
            utilities=contract.utilities,
            total_rent=contract.total_rent,
            start_date=contract.start_date,
        )
        with self.session_scope() as session:
            session.add(row)
        return contract

    def get_contract(self, contract_id: str) -> Optional[Contract]:
        if not contract_id:
            return None
        with self._session_factory() as session:
            row = session.get(RentalContractModel, contract_id)
            return self._contract_from_row(row) if row else None

    def list_periods(
        self,
        contract_id: str,
        status: Optional[str] = None,
        effective_from: Optional[date] = None,
        effective_to: Optional[date] = None,
    ) -> List[RentPeriod]:
        if not contract_id:
            return []
        query = select(RentPeriodModel).where(RentPeriodModel.contract_id == contract_id)
        if status is not None:
            query = query.where(RentPeriodModel.status == status)
        if effective_from is not None:
            query = query.where(RentPeriodModel.effective_date >= effective_from)
        if effective_to is not None:
            query = query.where(RentPeriodModel.effective_date <= effective_to)
        query = query.order_by(RentPeriodModel.effective_date.asc(), RentPeriodModel.created_at.asc())
        with self._session_factory() as session:
            rows = session.execute(query).scalars()
            return [self._period_from_row(row) for row in rows]

    def add_period(self, params: NewRentPeriod, sync_contract: bool) -> RentPeriod:
        row = RentPeriodModel(
            id=uuid4().hex,
            contract_id=params.contract_id,
            user_id=params.user_id,
            effective_date=params.effective_date,
            cold_rent=params.cold_rent,
            utilities=params.utilities,
            reason=params.reason,
            status=params.status,
            notes=params.notes or "",
            vpi_old_month=params.vpi_old_month,
            vpi_old_value=params.vpi_old_value,
            vpi_new_month=params.vpi_new_month,
            vpi_new_value=params.vpi_new_value,
            created_at=datetime.utcnow(),
        )
        with self.session_scope() as session:
            session.add(row)
            if sync_contract:
                contract = session.get(RentalContractModel, params.contract_id)
                if contract is None:
                    raise LookupError(f"Rental contract {params.contract_id} not found")
                contract.monthly_rent = params.cold_rent
                contract.base_rent = params.cold_rent
                contract.cold_rent = params.cold_rent
                contract.utilities = params.utilities
                contract.total_rent = params.cold_rent + params.utilities
            session.flush()
            return self._period_from_row(row)

    def delete_period(self, period_id: str, status: str) -> bool:
        if not period_id:
            return False
        with self.session_scope() as session:
            row = session.get(RentPeriodModel, period_id)
            if row is None or row.status != status:
                return False
            session.delete(row)
            return True

    @staticmethod
    def _contract_from_row(row: RentalContractModel) -> Contract:
        return Contract(
            id=row.id,
            monthly_rent=row.monthly_rent,
            base_rent=row.base_rent,
            cold_rent=row.cold_rent,
            utilities=row.utilities,
            total_rent=row.total_rent,
            start_date=row.start_date,
        )

    @staticmethod
    def _period_from_row(row: RentPeriodModel) -> RentPeriod:
        return RentPeriod(
            id=row.id,
            contract_id=row.contract_id,
            effective_date=row.effective_date,
            cold_rent=row.cold_rent,
            utilities=row.utilities,
            reason=row.reason,
            status=row.status,
            notes=row.notes or "",
            vpi_old_month=row.vpi_old_month,
            vpi_old_value=row.vpi_old_value,
            vpi_new_month=row.vpi_new_month,
            vpi_new_value=row.vpi_new_value,
            created_at=row.created_at,
            user_id=row.user_id,
        )


def create_store_from_env(url: Optional[str]) -> LedgerStore:
    return LedgerStore(url or DEFAULT_DATABASE_URL)
