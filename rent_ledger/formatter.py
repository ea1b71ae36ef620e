"""Output helpers for the command-line interface.

This module renders remaining-balance schedules, their aggregates, current
rents and rent period histories in a simple tabular text format using
``click.echo``.
"""

from __future__ import annotations

from typing import Iterable, Optional

import click

from .data_models import AmortizationResult, CurrentRent, DeliveryTiming, IndexAdjustment, MonthRow, RentPeriod
from .utils import format_month


def print_summary(result: AmortizationResult) -> None:
    """Print the aggregates of a schedule in a human-readable format."""
    loan = result.loan
    click.echo("Summary")
    click.echo("-" * 72)
    click.echo(f"Remaining balance  : {loan.remaining_balance:.2f}")
    click.echo(f"Interest rate      : {loan.interest_rate:.3f}%")
    click.echo(f"Monthly payment    : {loan.monthly_payment:.2f}")
    horizon = loan.horizon
    click.echo(f"Schedule ends      : {horizon.isoformat() if horizon else '-'}")
    if result.is_empty:
        click.echo("No schedule computable; check the end date or fixed-interest end date.")
    else:
        click.echo(f"Months             : {len(result.rows)}")
        click.echo(f"Total interest     : {result.total_interest:.2f}")
        click.echo(f"Total principal    : {result.total_principal:.2f}")
        click.echo(f"Final balance      : {result.final_balance:.2f}")
    click.echo("-" * 72)


def print_schedule(rows: Iterable[MonthRow]) -> None:
    """Print the schedule as a simple table."""
    headers = ["Month", "Principal", "Interest", "Balance"]
    click.echo("\t".join(headers))
    for row in rows:
        click.echo(
            "\t".join(
                [
                    row.month.strftime("%Y-%m"),
                    f"{row.principal:.2f}",
                    f"{row.interest:.2f}",
                    f"{row.balance:.2f}",
                ]
            )
        )


def print_current_rent(contract_id: str, rent: Optional[CurrentRent]) -> None:
    if rent is None:
        click.echo(f"Contract {contract_id} not found")
        return
    click.echo(f"Contract           : {contract_id}")
    click.echo(f"Cold rent          : {rent.cold_rent:.2f}")
    click.echo(f"Utilities          : {rent.utilities:.2f}")
    click.echo(f"Total rent         : {rent.total_rent:.2f}")
    click.echo(f"Effective since    : {rent.effective_date.isoformat() if rent.effective_date else '-'}")
    source = "contract fields" if rent.is_legacy else f"period {rent.rent_period_id}"
    click.echo(f"Reason             : {rent.reason} ({source})")
    if rent.vpi_new_value is not None:
        click.echo(f"VPI                : {rent.vpi_new_value} ({format_month(rent.vpi_new_month)})")


def print_periods(periods: Iterable[RentPeriod]) -> None:
    """Print rent periods as a table, one row per period."""
    headers = ["Effective", "Status", "Reason", "ColdRent", "Utilities", "VPI", "Id"]
    click.echo("\t".join(headers))
    for p in periods:
        vpi = ""
        if p.vpi_old_value is not None and p.vpi_new_value is not None:
            vpi = f"{p.vpi_old_value}->{p.vpi_new_value}"
        click.echo(
            "\t".join(
                [
                    p.effective_date.isoformat(),
                    p.status,
                    p.reason,
                    f"{p.cold_rent:.2f}",
                    f"{p.utilities:.2f}",
                    vpi,
                    p.id,
                ]
            )
        )


def print_adjustment(adjustment: IndexAdjustment) -> None:
    click.echo(f"Current rent       : {adjustment.current_rent:.2f}")
    click.echo(f"VPI                : {adjustment.vpi_old.value} -> {adjustment.vpi_new.value}")
    click.echo(f"Change             : +{adjustment.percentage_change}%")
    click.echo(f"New rent           : {adjustment.new_rent:.2f}")
    click.echo(f"Increase           : {adjustment.delta:.2f}")


def print_timing(timing: DeliveryTiming) -> None:
    click.echo(f"Status             : {timing.timing_status}")
    click.echo(f"Earliest effective : {timing.next_earliest_effective_from.isoformat()}")
    click.echo(
        f"Service window     : {timing.service_window_start.isoformat()} - {timing.service_window_end.isoformat()}"
    )
    click.echo(f"If served today    : {timing.next_effective_if_send_today.isoformat()}")
