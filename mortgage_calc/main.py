"""Command‑line interface for the mortgage calculator.

This module uses the ``click`` library to implement a multi‑command
interface. Users can compute the schedule of a single plan described by
options, view only its summary, run a whole multi-plan portfolio stored as
JSON, or compare that portfolio with a what-if scenario. Results can be
printed to the terminal or exported to JSON/CSV files.
"""

from __future__ import annotations

import csv
import json
import logging
from dataclasses import replace
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import click

from .aggregator import compare_schedules, summarize_schedule
from .data_models import (
    GRACE_INTEREST_ONLY,
    REDUCE_TERM,
    AmortizationRow,
    CPIPoint,
    ExtraPayment,
    GracePeriod,
    Plan,
    RateChange,
    ScheduleResult,
)
from .engine import compute_schedule
from .formatter import print_comparison, print_errors, print_schedule, print_summary
from .serialization import (
    CSV_HEADER,
    Portfolio,
    comparison_to_dict,
    cpi_points_from_data,
    normalize_grace_mode,
    normalize_strategy,
    portfolio_from_dict,
    result_to_dict,
    rows_to_csv_records,
    with_simulation,
)
from .utils import decimal_from_str, parse_date

DEFAULT_PLAN_ID = "plan-1"
MAX_PRINTED_ROWS = 120

logger = logging.getLogger(__name__)


def parse_amount(value: str) -> Decimal:
    """Parse a numeric string with optional suffixes.

    Accepts plain numbers ("500000") and shorthand with ``k``/``m`` suffixes
    (e.g., "500k" meaning 500_000). Returns a ``Decimal``.
    """
    value = value.strip().lower().replace(",", "")
    factor = 1
    if value.endswith("k"):
        factor = 1_000
        value = value[:-1]
    elif value.endswith("m"):
        factor = 1_000_000
        value = value[:-1]
    try:
        return decimal_from_str(value) * factor
    except ValueError:
        raise click.BadParameter(f"Invalid amount: {value}")


def parse_period_or_date(value: str) -> Tuple[Optional[int], Optional[date]]:
    """Return ``(period, None)`` for a period number or ``(None, date)`` for a date."""
    value = value.strip()
    if value.isdigit():
        return int(value), None
    try:
        return None, parse_date(value)
    except ValueError as exc:
        raise click.BadParameter(str(exc))


def parse_extra_payment_strings(values: Tuple[str, ...], plan_id: str) -> List[ExtraPayment]:
    payments: List[ExtraPayment] = []
    for item in values:
        parts = item.split(":")
        if len(parts) not in (2, 3):
            raise click.BadParameter(
                f"Extra payment must be in PERIOD:AMOUNT[:STRATEGY] format; got {item}"
            )
        period, when = parse_period_or_date(parts[0])
        try:
            strategy = normalize_strategy(parts[2]) if len(parts) == 3 else REDUCE_TERM
        except ValueError as exc:
            raise click.BadParameter(str(exc))
        payments.append(
            ExtraPayment(
                plan_id=plan_id,
                amount=parse_amount(parts[1]),
                period=period,
                payment_date=when,
                strategy=strategy,
            )
        )
    return payments


def parse_rate_change_strings(values: Tuple[str, ...], plan_id: str) -> List[RateChange]:
    changes: List[RateChange] = []
    for item in values:
        parts = item.split(":")
        if len(parts) != 2:
            raise click.BadParameter(f"Rate change must be in PERIOD:RATE format; got {item}")
        period, when = parse_period_or_date(parts[0])
        try:
            rate = decimal_from_str(parts[1].rstrip("%"))
        except ValueError as exc:
            raise click.BadParameter(str(exc))
        changes.append(
            RateChange(plan_id=plan_id, new_annual_rate=rate, effective_date=when, period=period)
        )
    return changes


def parse_grace_strings(values: Tuple[str, ...], plan_id: str) -> List[GracePeriod]:
    intervals: List[GracePeriod] = []
    for item in values:
        span, _, mode = item.partition(":")
        start, _, end = span.partition("-")
        try:
            first = int(start)
            last = int(end) if end else first
            mode = normalize_grace_mode(mode) if mode else GRACE_INTEREST_ONLY
        except ValueError:
            raise click.BadParameter(
                f"Grace period must be in START-END[:MODE] format; got {item}"
            )
        intervals.append(GracePeriod(plan_id=plan_id, start_period=first, end_period=last, mode=mode))
    return intervals


def load_cpi_file(path: Optional[str]) -> Tuple[CPIPoint, ...]:
    """Read CPI index values from a JSON file (list of points or year/month mapping)."""
    if not path:
        return ()
    with Path(path).open("r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as exc:
            raise click.ClickException(f"Invalid JSON in {path}: {exc}")
    try:
        return cpi_points_from_data(data)
    except ValueError as exc:
        raise click.BadParameter(str(exc))


def build_portfolio_from_options(
    principal: str,
    rate: float,
    term: int,
    start_date: str,
    cpi_linked: bool,
    extra: Tuple[str, ...],
    rate_change: Tuple[str, ...],
    grace: Tuple[str, ...],
    currency: Optional[str],
    cpi_file: Optional[str],
    balloon: Optional[str] = None,
) -> Portfolio:
    try:
        start = parse_date(start_date)
    except ValueError as exc:
        raise click.BadParameter(str(exc))
    plan = Plan(
        id=DEFAULT_PLAN_ID,
        principal=parse_amount(principal),
        annual_rate=decimal_from_str(str(rate)),
        term_months=term,
        start_date=start,
        cpi_linked=cpi_linked,
        balloon_value=parse_amount(balloon) if balloon else Decimal("0"),
    )
    return Portfolio(
        plans=(plan,),
        extra_payments=tuple(parse_extra_payment_strings(extra, plan.id)),
        rate_changes=tuple(parse_rate_change_strings(rate_change, plan.id)),
        grace_periods=tuple(parse_grace_strings(grace, plan.id)),
        currency=currency.upper() if currency else None,
        cpi=load_cpi_file(cpi_file),
    )


def run_portfolio(portfolio: Portfolio) -> ScheduleResult:
    return compute_schedule(
        portfolio.plans,
        portfolio.extra_payments,
        portfolio.rate_changes,
        portfolio.grace_periods,
        portfolio.currency,
        portfolio.cpi,
    )


def export_to_json(path: Path, result: ScheduleResult, summary: Dict[str, Any]) -> None:
    """Export rows, errors and summary to a JSON file."""
    with path.open("w", encoding="utf-8") as f:
        json.dump(result_to_dict(result, summary), f, indent=2)


def export_to_csv(path: Path, schedule: List[AmortizationRow]) -> None:
    """Export rows to a CSV file."""
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(CSV_HEADER)
        writer.writerows(rows_to_csv_records(schedule))


def _emit(result: ScheduleResult, output: Optional[str], summary_only: bool) -> None:
    summary = summarize_schedule(result.rows)
    if output:
        path = Path(output)
        if path.suffix.lower() == ".json":
            export_to_json(path, result, summary)
        elif path.suffix.lower() == ".csv" and not summary_only:
            export_to_csv(path, list(result.rows))
        else:
            raise click.BadParameter("Unsupported output format; use .json or .csv")
        click.echo(f"Schedule exported to {path}")
        return

    print_errors(result.errors)
    print_summary(summary, result.currency)
    if summary_only:
        return
    rows = list(result.rows)
    show_plan = len(result.plan_ids()) > 1
    if len(rows) > MAX_PRINTED_ROWS:
        click.echo(f"Schedule has {len(rows)} rows; showing first {MAX_PRINTED_ROWS} rows.")
        rows = rows[:MAX_PRINTED_ROWS]
    print_schedule(rows, show_plan=show_plan)


def plan_options(func):
    """Options describing a single plan and its modifiers."""
    options = [
        click.option("--principal", "-p", "principal", required=True, help="Loan amount"),
        click.option("--rate", "-r", "rate", required=True, type=float, help="Annual interest rate (percent)"),
        click.option("--term", "-t", "term", required=True, type=int, help="Loan term in months"),
        click.option("--start-date", "-s", "start_date", required=True, help="Loan start date (YYYY-MM or YYYY-MM-DD)"),
        click.option("--cpi-linked", "cpi_linked", is_flag=True, help="Index the balance to CPI"),
        click.option("--balloon", "balloon", help="Balloon amount settled with the last installment"),
        click.option("--extra", "extra", multiple=True, help="Extra payment in PERIOD:AMOUNT[:STRATEGY] format"),
        click.option("--rate-change", "rate_change", multiple=True, help="Rate change in PERIOD:RATE format"),
        click.option("--grace", "grace", multiple=True, help="Grace period in START-END[:MODE] format"),
        click.option("--currency", "currency", help="Currency code used for display"),
        click.option("--cpi-file", "cpi_file", type=click.Path(exists=True, dir_okay=False), help="CPI index JSON file"),
        click.option("--output", "output", type=str, help="Output file path (.json or .csv)"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group()
@click.option("--log-level", default="WARNING", show_default=True, help="Logging level")
def cli(log_level: str) -> None:
    """A command‑line mortgage schedule calculator."""
    logging.basicConfig(level=log_level.upper(), format="%(levelname)s %(name)s: %(message)s")


@cli.command()
@plan_options
def schedule(**options: Any) -> None:
    """Compute and print the full amortization schedule of one plan."""
    output = options.pop("output")
    portfolio = build_portfolio_from_options(**options)
    _emit(run_portfolio(portfolio), output, summary_only=False)


@cli.command()
@plan_options
def summary(**options: Any) -> None:
    """Compute and print only the summary metrics of one plan."""
    output = options.pop("output")
    portfolio = build_portfolio_from_options(**options)
    _emit(run_portfolio(portfolio), output, summary_only=True)


def load_portfolio_file(path: str, cpi_file: Optional[str] = None) -> Portfolio:
    """Read a portfolio JSON file, optionally replacing its CPI series."""
    with Path(path).open("r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as exc:
            raise click.ClickException(f"Invalid JSON in {path}: {exc}")
    try:
        loaded = portfolio_from_dict(data)
    except ValueError as exc:
        raise click.ClickException(str(exc))
    if cpi_file:
        loaded = replace(loaded, cpi=load_cpi_file(cpi_file))
    return loaded


@cli.command()
@click.argument("portfolio_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--cpi-file", "cpi_file", type=click.Path(exists=True, dir_okay=False), help="CPI index JSON file overriding the portfolio's")
@click.option("--summary-only", "summary_only", is_flag=True, help="Print only the summary")
@click.option("--output", "output", type=str, help="Output file path (.json or .csv)")
def portfolio(portfolio_file: str, cpi_file: Optional[str], summary_only: bool, output: Optional[str]) -> None:
    """Compute the combined schedule of a multi-plan JSON portfolio."""
    result = run_portfolio(load_portfolio_file(portfolio_file, cpi_file))
    if result.errors:
        logger.warning("%d plan issue(s) reported", len(result.errors))
    _emit(result, output, summary_only)


@cli.command()
@click.argument("portfolio_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--plan", "plan_id", help="Plan the simulated changes apply to (defaults to the first plan)")
@click.option("--extra", "extra", multiple=True, help="Simulated extra payment in PERIOD:AMOUNT[:STRATEGY] format")
@click.option("--rate-change", "rate_change", multiple=True, help="Simulated rate change in PERIOD:RATE format")
@click.option("--cpi-file", "cpi_file", type=click.Path(exists=True, dir_okay=False), help="CPI index JSON file overriding the portfolio's")
@click.option("--output", "output", type=str, help="Output file path (.json)")
def compare(
    portfolio_file: str,
    plan_id: Optional[str],
    extra: Tuple[str, ...],
    rate_change: Tuple[str, ...],
    cpi_file: Optional[str],
    output: Optional[str],
) -> None:
    """Compare a portfolio with a what-if scenario.

    The scenario keeps everything in the portfolio and adds the simulated
    extra payments and rate changes, for example:

        mortgage-calc compare portfolio.json --plan home --extra 12:50k --rate-change 24:3.5
    """
    if not extra and not rate_change:
        raise click.UsageError("Nothing to simulate; pass --extra or --rate-change")
    current = load_portfolio_file(portfolio_file, cpi_file)
    target = plan_id or current.plans[0].id
    if target not in {p.id for p in current.plans}:
        raise click.BadParameter(f"Unknown plan id: {target}", param_hint="--plan")
    scenario = with_simulation(
        current,
        parse_extra_payment_strings(extra, target),
        parse_rate_change_strings(rate_change, target),
    )
    scenario_result = run_portfolio(scenario)
    comparison = compare_schedules(run_portfolio(current).rows, scenario_result.rows)

    if output:
        path = Path(output)
        if path.suffix.lower() != ".json":
            raise click.BadParameter("Unsupported output format; use .json")
        with path.open("w", encoding="utf-8") as f:
            json.dump(comparison_to_dict(comparison), f, indent=2)
        click.echo(f"Comparison exported to {path}")
        return
    print_errors(scenario_result.errors)
    print_comparison(comparison, current.currency)


if __name__ == "__main__":
    cli()
