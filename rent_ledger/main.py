"""Command-line interface for the rent ledger.

This module uses the ``click`` library to implement a multi-command interface.
Users can compute remaining-balance schedules for loans, index rent increases
and their earliest effective dates, and read or write the rent ledger stored
in a SQL database. Schedules can be printed to the terminal or exported to
JSON/CSV files.
"""

from __future__ import annotations

import csv
import json
import logging
import os
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional

import click

from .data_models import (
    PERIOD_STATUSES,
    RENT_REASONS,
    AmortizationResult,
    Contract,
    CurrentRent,
    IndexAdjustment,
    Loan,
    NewRentPeriod,
    RentPeriod,
    VpiReading,
)
from .engine import compute_schedule
from .formatter import print_adjustment, print_current_rent, print_periods, print_schedule, print_summary, print_timing
from .indexation import adjust
from .ledger import RentLedger
from .store import create_store_from_env
from .timing import compute_delivery_timing, compute_earliest_effective_date
from .utils import decimal_from_str, format_month, parse_iso_date, parse_year_month

DATABASE_URL_ENV = "RENT_LEDGER_DATABASE_URL"


def parse_amount(value: str) -> Decimal:
    """Parse a numeric string with optional suffixes.

    Accepts plain numbers ("250000") and shorthand with ``k``/``m`` suffixes
    (e.g., "250k" meaning 250_000). Returns a Decimal.
    """
    value = value.strip().lower()
    value = value.replace(",", "")
    factor = Decimal(1)
    if value.endswith("k"):
        factor = Decimal(1_000)
        value = value[:-1]
    elif value.endswith("m"):
        factor = Decimal(1_000_000)
        value = value[:-1]
    try:
        return decimal_from_str(value) * factor
    except ValueError:
        raise click.BadParameter(f"Invalid amount: {value}")


def parse_date_option(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return parse_iso_date(value)
    except ValueError as exc:
        raise click.BadParameter(str(exc))


def parse_month_option(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return parse_year_month(value)
    except ValueError as exc:
        raise click.BadParameter(str(exc))


def _money(value: Optional[Decimal]) -> Optional[str]:
    return f"{value:.2f}" if value is not None else None


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def period_to_dict(period: RentPeriod) -> Dict[str, Any]:
    return {
        "id": period.id,
        "contract_id": period.contract_id,
        "effective_date": _iso(period.effective_date),
        "cold_rent": _money(period.cold_rent),
        "utilities": _money(period.utilities),
        "reason": period.reason,
        "status": period.status,
        "notes": period.notes,
        "vpi_old_month": format_month(period.vpi_old_month),
        "vpi_old_value": str(period.vpi_old_value) if period.vpi_old_value is not None else None,
        "vpi_new_month": format_month(period.vpi_new_month),
        "vpi_new_value": str(period.vpi_new_value) if period.vpi_new_value is not None else None,
        "created_at": period.created_at.isoformat() if period.created_at else None,
    }


def current_rent_to_dict(rent: CurrentRent) -> Dict[str, Any]:
    return {
        "rent_period_id": rent.rent_period_id,
        "cold_rent": _money(rent.cold_rent),
        "utilities": _money(rent.utilities),
        "total_rent": _money(rent.total_rent),
        "effective_date": _iso(rent.effective_date),
        "reason": rent.reason,
        "period_status": rent.period_status,
        "vpi_old_month": format_month(rent.vpi_old_month),
        "vpi_old_value": str(rent.vpi_old_value) if rent.vpi_old_value is not None else None,
        "vpi_new_month": format_month(rent.vpi_new_month),
        "vpi_new_value": str(rent.vpi_new_value) if rent.vpi_new_value is not None else None,
        "notes": rent.notes,
    }


def adjustment_to_dict(adjustment: IndexAdjustment) -> Dict[str, Any]:
    return {
        "current_rent": _money(adjustment.current_rent),
        "new_rent": _money(adjustment.new_rent),
        "vpi_old_month": format_month(adjustment.vpi_old.month),
        "vpi_old_value": str(adjustment.vpi_old.value),
        "vpi_new_month": format_month(adjustment.vpi_new.month),
        "vpi_new_value": str(adjustment.vpi_new.value),
        "percentage_change": str(adjustment.percentage_change),
        "delta": _money(adjustment.delta),
    }


def schedule_to_dict(result: AmortizationResult, chart: bool = False) -> Dict[str, Any]:
    """Convert a schedule into JSON-serialisable data.

    Row values are rounded to the cent for display; aggregates are computed
    over the unrounded full series.
    """
    rows = result.chart_rows() if chart else result.rows
    return {
        "computable": not result.is_empty,
        "summary": {
            "remaining_balance": _money(result.loan.remaining_balance),
            "end_date": _iso(result.loan.horizon),
            "months": len(result.rows),
            "total_interest": _money(result.total_interest),
            "total_principal": _money(result.total_principal),
            "final_balance": _money(result.final_balance),
        },
        "schedule": [
            {
                "month": r.month.strftime("%Y-%m"),
                "principal": _money(r.principal),
                "interest": _money(r.interest),
                "balance": _money(r.balance),
            }
            for r in rows
        ],
    }


def export_to_json(path: Path, result: AmortizationResult) -> None:
    """Export schedule and summary to a JSON file."""
    with path.open("w", encoding="utf-8") as f:
        json.dump(schedule_to_dict(result), f, indent=2)


def export_to_csv(path: Path, rows: List) -> None:
    """Export schedule rows to a CSV file."""
    header = ["Month", "Principal", "Interest", "Balance"]
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(header)
        for r in rows:
            writer.writerow([r.month.strftime("%Y-%m"), _money(r.principal), _money(r.interest), _money(r.balance)])


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Rent ledger, index rent and loan remaining-balance tools."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.option("--balance", "-b", "balance", required=True, help="Current remaining balance")
@click.option("--rate", "-r", "rate", required=True, type=str, help="Annual interest rate (percent)")
@click.option("--payment", "-m", "payment", required=True, help="Monthly payment (interest + principal)")
@click.option("--end-date", "end_date", help="Loan end date (YYYY-MM-DD)")
@click.option("--fixed-interest-end", "fixed_interest_end", help="End of the fixed-interest period (YYYY-MM-DD)")
@click.option("--today", "today", help="Reference date for the first month (YYYY-MM-DD)")
@click.option("--chart", is_flag=True, help="Print the thinned series used for charts")
@click.option("--output", "output", type=str, help="Output file path (.json or .csv)")
def schedule(
    balance: str,
    rate: str,
    payment: str,
    end_date: Optional[str],
    fixed_interest_end: Optional[str],
    today: Optional[str],
    chart: bool,
    output: Optional[str],
) -> None:
    """Compute and print the remaining-balance schedule of a loan."""
    try:
        loan = Loan(
            remaining_balance=parse_amount(balance),
            interest_rate=decimal_from_str(rate),
            monthly_payment=parse_amount(payment),
            end_date=parse_date_option(end_date),
            fixed_interest_end_date=parse_date_option(fixed_interest_end),
        )
        result = compute_schedule(loan, today=parse_date_option(today))
    except ValueError as exc:
        raise click.BadParameter(str(exc))

    if output:
        path = Path(output)
        if path.suffix.lower() == ".json":
            export_to_json(path, result)
        elif path.suffix.lower() == ".csv":
            export_to_csv(path, result.rows)
        else:
            raise click.BadParameter("Unsupported output format; use .json or .csv")
        click.echo(f"Schedule exported to {path}")
        return

    print_summary(result)
    if not result.is_empty:
        print_schedule(result.chart_rows() if chart else result.rows)


@cli.command("index-rent")
@click.option("--rent", "rent", required=True, help="Current cold rent")
@click.option("--vpi-old", "vpi_old", required=True, help="VPI value of the baseline month")
@click.option("--vpi-new", "vpi_new", required=True, help="VPI value of the current month")
@click.option("--old-month", "old_month", help="Baseline VPI month (YYYY-MM)")
@click.option("--new-month", "new_month", help="Current VPI month (YYYY-MM)")
def index_rent(rent: str, vpi_old: str, vpi_new: str, old_month: Optional[str], new_month: Optional[str]) -> None:
    """Compute the index-adjusted rent for a VPI pair."""
    try:
        adjustment = adjust(
            decimal_from_str(rent),
            decimal_from_str(vpi_old),
            decimal_from_str(vpi_new),
            parse_month_option(old_month),
            parse_month_option(new_month),
        )
    except ValueError as exc:
        raise click.BadParameter(str(exc))
    print_adjustment(adjustment)


@cli.command("effective-date")
@click.option("--possible-since", "possible_since", help="Earliest permitted recalculation date (YYYY-MM-DD)")
@click.option("--last-change", "last_change", help="Effective date of the previous rent change (YYYY-MM-DD)")
@click.option("--today", "today", help="Reference date (YYYY-MM-DD)")
def effective_date(possible_since: Optional[str], last_change: Optional[str], today: Optional[str]) -> None:
    """Print the earliest legal effective date of an index increase."""
    earliest = compute_earliest_effective_date(
        parse_date_option(possible_since), parse_date_option(last_change), today=parse_date_option(today)
    )
    click.echo(earliest.isoformat())


@cli.command()
@click.option("--possible-since", "possible_since", required=True, help="Earliest permitted recalculation date (YYYY-MM-DD)")
@click.option("--today", "today", help="Reference date (YYYY-MM-DD)")
def timing(possible_since: str, today: Optional[str]) -> None:
    """Show when an index increase notice should be served."""
    result = compute_delivery_timing(parse_date_option(possible_since), today=parse_date_option(today))
    if result is None:
        raise click.ClickException("No timing computable for this date")
    print_timing(result)


@cli.group()
@click.option("--db", "db", help=f"SQLAlchemy database URL (default: ${DATABASE_URL_ENV} or local SQLite)")
@click.pass_context
def ledger(ctx: click.Context, db: Optional[str]) -> None:
    """Read and write the rent ledger."""
    store = create_store_from_env(db or os.environ.get(DATABASE_URL_ENV))
    ctx.obj = {"store": store, "ledger": RentLedger(store)}


@ledger.command("add-contract")
@click.argument("contract_id")
@click.option("--cold-rent", "cold_rent", required=True, help="Cold rent stored on the contract")
@click.option("--utilities", "utilities", default="0", help="Utilities advance")
@click.option("--start-date", "start_date", help="Contract start (YYYY-MM-DD)")
@click.pass_context
def add_contract(ctx: click.Context, contract_id: str, cold_rent: str, utilities: str, start_date: Optional[str]) -> None:
    """Register a rental contract with its legacy rent fields."""
    cold = parse_amount(cold_rent)
    util = parse_amount(utilities)
    ctx.obj["store"].add_contract(
        Contract(
            id=contract_id,
            monthly_rent=cold,
            base_rent=cold,
            cold_rent=cold,
            utilities=util,
            total_rent=cold + util,
            start_date=parse_date_option(start_date),
        )
    )
    click.echo(f"Contract {contract_id} added")


@ledger.command()
@click.argument("contract_id")
@click.option("--as-of", "as_of", help="Date to resolve the rent for (YYYY-MM-DD)")
@click.option("--json", "as_json", is_flag=True, help="Print JSON")
@click.pass_context
def current(ctx: click.Context, contract_id: str, as_of: Optional[str], as_json: bool) -> None:
    """Show the rent in force for a contract."""
    rent = ctx.obj["ledger"].get_current_rent(contract_id, parse_date_option(as_of))
    if rent is None:
        raise click.ClickException(f"Contract {contract_id} not found or no rent in force")
    if as_json:
        click.echo(json.dumps(current_rent_to_dict(rent), indent=2))
    else:
        print_current_rent(contract_id, rent)


@ledger.command()
@click.argument("contract_id")
@click.pass_context
def history(ctx: click.Context, contract_id: str) -> None:
    """List all rent periods of a contract, newest first."""
    print_periods(ctx.obj["ledger"].get_rent_periods(contract_id))


@ledger.command()
@click.argument("contract_id")
@click.pass_context
def planned(ctx: click.Context, contract_id: str) -> None:
    """List planned rent periods of a contract, soonest first."""
    print_periods(ctx.obj["ledger"].get_planned_periods(contract_id))


@ledger.command("add-period")
@click.argument("contract_id")
@click.option("--effective-date", "effective", required=True, help="Effective date (YYYY-MM-DD)")
@click.option("--cold-rent", "cold_rent", required=True, help="Cold rent")
@click.option("--utilities", "utilities", default="0", help="Utilities advance")
@click.option(
    "--reason",
    type=click.Choice(list(RENT_REASONS)),
    default="manual",
)
@click.option("--status", type=click.Choice(list(PERIOD_STATUSES)), default="active")
@click.option("--notes", default="", help="Free-text notes")
@click.option("--sync/--no-sync", "sync", default=True, help="Update the contract's cached rent fields")
@click.pass_context
def add_period(
    ctx: click.Context,
    contract_id: str,
    effective: str,
    cold_rent: str,
    utilities: str,
    reason: str,
    status: str,
    notes: str,
    sync: bool,
) -> None:
    """Record a rent period."""
    try:
        period = ctx.obj["ledger"].create_rent_period(
            NewRentPeriod(
                contract_id=contract_id,
                effective_date=parse_date_option(effective),
                cold_rent=parse_amount(cold_rent),
                utilities=parse_amount(utilities),
                reason=reason,
                status=status,
                notes=notes,
                sync_to_contract=sync,
            )
        )
    except LookupError as exc:
        raise click.ClickException(str(exc))
    except ValueError as exc:
        raise click.BadParameter(str(exc))
    click.echo(f"Created {period.status} period {period.id} effective {period.effective_date.isoformat()}")


@ledger.command("delete-planned")
@click.argument("period_id")
@click.pass_context
def delete_planned(ctx: click.Context, period_id: str) -> None:
    """Delete a planned rent period. Active periods are kept."""
    if not ctx.obj["ledger"].delete_planned_period(period_id):
        raise click.ClickException(f"Period {period_id} not found or not planned")
    click.echo(f"Deleted planned period {period_id}")


@ledger.command()
@click.argument("contract_id")
@click.pass_context
def vpi(ctx: click.Context, contract_id: str) -> None:
    """Show the VPI baseline for the next index increase."""
    reading = ctx.obj["ledger"].get_latest_vpi_values(contract_id)
    if reading is None:
        click.echo("No VPI recorded")
        return
    click.echo(f"{format_month(reading.month)}\t{reading.value}")


@ledger.command("apply-index")
@click.argument("contract_id")
@click.option("--vpi-new", "vpi_new", required=True, help="Current VPI value")
@click.option("--new-month", "new_month", required=True, help="Current VPI month (YYYY-MM)")
@click.option("--vpi-old", "vpi_old", help="Baseline VPI value (default: last recorded reading)")
@click.option("--old-month", "old_month", help="Baseline VPI month (YYYY-MM)")
@click.option("--effective-date", "effective", help="Effective date (default: earliest legal date)")
@click.option("--possible-since", "possible_since", help="Earliest permitted recalculation date (YYYY-MM-DD)")
@click.pass_context
def apply_index(
    ctx: click.Context,
    contract_id: str,
    vpi_new: str,
    new_month: str,
    vpi_old: Optional[str],
    old_month: Optional[str],
    effective: Optional[str],
    possible_since: Optional[str],
) -> None:
    """Record an index increase for a contract."""
    rent_ledger: RentLedger = ctx.obj["ledger"]
    try:
        if vpi_old and old_month:
            baseline = VpiReading(month=parse_month_option(old_month), value=decimal_from_str(vpi_old))
        else:
            baseline = rent_ledger.get_latest_vpi_values(contract_id)
            if baseline is None:
                raise click.BadParameter("No VPI baseline recorded; pass --vpi-old and --old-month")
        increase = rent_ledger.record_index_increase(
            contract_id,
            vpi_old=baseline,
            vpi_new=VpiReading(month=parse_month_option(new_month), value=decimal_from_str(vpi_new)),
            effective_date=parse_date_option(effective),
            possible_since=parse_date_option(possible_since),
        )
    except LookupError as exc:
        raise click.ClickException(str(exc))
    except ValueError as exc:
        raise click.BadParameter(str(exc))
    print_adjustment(increase.adjustment)
    click.echo(
        f"Recorded {increase.period.status} period {increase.period.id} "
        f"effective {increase.period.effective_date.isoformat()}"
    )


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
