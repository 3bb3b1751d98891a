"""Output helpers for the mortgage calculator CLI.

This module renders schedules and summaries as plain tab-separated text. The
engine returns raw amounts; currency symbols are applied here, at the edge,
using the small ``CURRENCY_OPTIONS`` table.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Dict, Iterable, Mapping, Optional

from .data_models import AmortizationRow, PlanIssue

CURRENCY_OPTIONS: Dict[str, Dict[str, str]] = {
    "ILS": {"label": "Israeli shekel", "prefix": "₪", "suffix": ""},
    "USD": {"label": "US dollar", "prefix": "$", "suffix": ""},
    "EUR": {"label": "Euro", "prefix": "€", "suffix": ""},
    "GBP": {"label": "British pound", "prefix": "£", "suffix": ""},
    "PLN": {"label": "Polish złoty", "prefix": "", "suffix": " zł"},
    "JPY": {"label": "Japanese yen", "prefix": "¥", "suffix": ""},
    "CAD": {"label": "Canadian dollar", "prefix": "C$", "suffix": ""},
    "AUD": {"label": "Australian dollar", "prefix": "A$", "suffix": ""},
    "CHF": {"label": "Swiss franc", "prefix": "", "suffix": " CHF"},
    "CNY": {"label": "Chinese yuan", "prefix": "¥", "suffix": ""},
    "INR": {"label": "Indian rupee", "prefix": "₹", "suffix": ""},
    "BRL": {"label": "Brazilian real", "prefix": "R$", "suffix": ""},
}


def format_amount(value: Decimal, currency: Optional[str] = None) -> str:
    """Format ``value`` with thousands separators and the currency's symbol."""
    meta = CURRENCY_OPTIONS.get((currency or "").upper())
    text = f"{value:,.2f}"
    if not meta:
        return f"{text} {currency}" if currency else text
    return f"{meta['prefix']}{text}{meta['suffix']}"


def print_summary(summary: Mapping[str, object], currency: Optional[str] = None) -> None:
    """Print a summary of schedule metrics in a human‑readable format."""
    def fmt(key: str) -> str:
        return format_amount(summary[key], currency)

    print("Summary")
    print("-" * 72)
    print(f"Plans              : {summary['plans']}")
    print(f"Total principal    : {fmt('total_principal')}")
    print(f"Total interest     : {fmt('total_interest')}")
    if summary.get("total_extra"):
        print(f"Extra payments     : {fmt('total_extra')}")
    if summary.get("total_indexation"):
        print(f"CPI indexation     : {fmt('total_indexation')}")
    if summary.get("total_capitalized"):
        print(f"Capitalized        : {fmt('total_capitalized')}")
    print(f"Total paid         : {fmt('total_paid')}")
    print(f"Highest payment    : {fmt('max_payment')}")
    if summary.get("first_date"):
        print(f"First payment      : {summary['first_date']:%Y-%m-%d}")
        print(f"Last payment       : {summary['last_date']:%Y-%m-%d}")
    print(f"Payments made      : {summary['payments_made']}")
    print("-" * 72)


def print_schedule(schedule: Iterable[AmortizationRow], show_plan: bool = False) -> None:
    """Print the amortization schedule as a simple table.

    Parameters
    ----------
    schedule: Iterable[AmortizationRow]
        The rows to print.
    show_plan: bool
        Whether to include the ``Plan`` column, useful for portfolios.
    """
    headers = ["Period", "Date", "Opening", "Rate", "Payment", "Principal", "Interest", "Extra", "Closing"]
    if show_plan:
        headers.insert(0, "Plan")
    headers.append("Notes")
    print("\t".join(headers))
    for row in schedule:
        cells = [
            str(row.period),
            row.date.strftime("%Y-%m-%d"),
            f"{row.opening_balance:.2f}",
            f"{row.applied_rate:.2f}%",
            f"{row.scheduled_payment:.2f}",
            f"{row.principal_component:.2f}",
            f"{row.interest_component:.2f}",
            f"{row.extra_payment_applied:.2f}",
            f"{row.closing_balance:.2f}",
        ]
        if show_plan:
            cells.insert(0, row.plan_id)
        cells.append(", ".join(tag.label for tag in row.tags))
        print("\t".join(cells))


def print_errors(errors: Iterable[PlanIssue]) -> None:
    """Print plans excluded from the schedule."""
    errors = list(errors)
    if not errors:
        return
    print("Excluded plans")
    print("=" * 72)
    for issue in errors:
        print(f"{issue.plan_id:20s} {issue.field:16s} {issue.message}")
    print("=" * 72)


def print_comparison(comparison: Mapping[str, object], currency: Optional[str] = None) -> None:
    """Print the current schedule and a what-if scenario side by side.

    The difference column is scenario minus current, so a negative difference
    means the scenario is cheaper or shorter.
    """
    base = comparison["base"]
    scenario = comparison["scenario"]
    print("Comparison")
    print("=" * 72)
    print(f"{'Metric':20s} {'Current':>15s} {'What-if':>15s} {'Difference':>15s}")
    for key in ("total_interest", "total_paid", "total_extra", "max_payment"):
        v1 = base[key]
        v2 = scenario[key]
        print(f"{key:20s} {v1:15.2f} {v2:15.2f} {v2 - v1:15.2f}")
    m1 = comparison["base_months"]
    m2 = comparison["scenario_months"]
    print(f"{'months':20s} {m1:15d} {m2:15d} {m2 - m1:15d}")
    print("=" * 72)
    print(f"Interest saved     : {format_amount(comparison['interest_saved'], currency)}")
    print(f"Months saved       : {comparison['months_saved']}")
    if base["last_date"] and scenario["last_date"]:
        print(f"Payoff             : {base['last_date']:%Y-%m-%d} -> {scenario['last_date']:%Y-%m-%d}")
