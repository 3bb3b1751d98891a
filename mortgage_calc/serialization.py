"""Conversion between JSON-friendly dictionaries and engine value objects.

Portfolios are exchanged as a single JSON document::

    {
      "currency": "ILS",
      "plans": [{"id": "a", "principal": "100000", "annual_rate": "6",
                 "term_months": 12, "start_date": "2024-01-01"}],
      "extra_payments": [{"plan_id": "a", "period": 3, "amount": "10000",
                          "strategy": "reduce-term"}],
      "rate_changes": [{"plan_id": "a", "effective_date": "2024-07", "new_annual_rate": "12"}],
      "grace_periods": [{"plan_id": "a", "start_period": 1, "end_period": 3,
                         "mode": "interest-only"}],
      "cpi": [{"date": "2024-01-01", "value": "100.0"}]
    }

Plans may also carry ``cpi_linked``, ``enabled``, ``name`` and a
``balloon_value``. ``cpi`` may also use the ``{"2024": {"01": 100.0}}``
year/month mapping. All parse errors raise ``ValueError`` naming the
offending entry.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .data_models import (
    REDUCE_TERM,
    GRACE_INTEREST_ONLY,
    AmortizationRow,
    CPIPoint,
    ExtraPayment,
    GracePeriod,
    Plan,
    PlanIssue,
    RateChange,
    ScheduleResult,
)
from .utils import decimal_from_str, parse_date

STRATEGY_ALIASES = {
    "reduce-term": "reduce-term",
    "term": "reduce-term",
    "reduceterm": "reduce-term",
    "reduce-payment": "reduce-payment",
    "payment": "reduce-payment",
    "installment": "reduce-payment",
    "reducepayment": "reduce-payment",
}

GRACE_ALIASES = {
    "interest-only": "interest-only",
    "interestonly": "interest-only",
    "deferred": "deferred",
    "capitalized": "deferred",
}


@dataclass(frozen=True)
class Portfolio:
    """Everything the engine needs for one multi-plan run."""

    plans: Tuple[Plan, ...]
    extra_payments: Tuple[ExtraPayment, ...] = ()
    rate_changes: Tuple[RateChange, ...] = ()
    grace_periods: Tuple[GracePeriod, ...] = ()
    currency: Optional[str] = None
    cpi: Tuple[CPIPoint, ...] = ()


def _require(data: Mapping[str, Any], key: str, where: str) -> Any:
    if key not in data or data[key] in (None, ""):
        raise ValueError(f"{where}: missing '{key}'")
    return data[key]


def _optional_int(value: Any, where: str) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{where}: invalid period {value!r}") from exc


TRUE_STRINGS = ("true", "yes", "y", "on", "1")
FALSE_STRINGS = ("false", "no", "n", "off", "0")


def _flag(value: Any, where: str, default: bool) -> bool:
    """Read a JSON boolean that may also arrive as a string or 0/1."""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in TRUE_STRINGS:
            return True
        if text in FALSE_STRINGS:
            return False
    raise ValueError(f"{where}: invalid boolean {value!r}")


def normalize_strategy(value: str) -> str:
    key = str(value).strip().lower().replace("_", "-")
    if key not in STRATEGY_ALIASES:
        raise ValueError(f"Unknown extra payment strategy: {value}")
    return STRATEGY_ALIASES[key]


def normalize_grace_mode(value: str) -> str:
    key = str(value).strip().lower().replace("_", "-")
    if key not in GRACE_ALIASES:
        raise ValueError(f"Unknown grace period mode: {value}")
    return GRACE_ALIASES[key]


def plan_from_dict(data: Mapping[str, Any]) -> Plan:
    where = f"plan {data.get('id', '?')}"
    principal = data.get("principal", data.get("initial_amount"))
    if principal in (None, ""):
        raise ValueError(f"{where}: missing 'principal'")
    try:
        term = int(_require(data, "term_months", where))
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{where}: invalid term_months") from exc
    return Plan(
        id=str(_require(data, "id", "plan")),
        principal=decimal_from_str(principal),
        annual_rate=decimal_from_str(data.get("annual_rate", 0)),
        term_months=term,
        start_date=parse_date(_require(data, "start_date", where)),
        cpi_linked=_flag(data.get("cpi_linked"), where, False),
        name=data.get("name") or None,
        enabled=_flag(data.get("enabled"), where, True),
        balloon_value=decimal_from_str(data.get("balloon_value", data.get("balloon")) or 0),
    )


def extra_payment_from_dict(data: Mapping[str, Any]) -> ExtraPayment:
    where = f"extra payment for {data.get('plan_id', '?')}"
    when = data.get("payment_date", data.get("date"))
    return ExtraPayment(
        plan_id=str(_require(data, "plan_id", "extra payment")),
        amount=decimal_from_str(_require(data, "amount", where)),
        period=_optional_int(data.get("period"), where),
        payment_date=parse_date(when) if when else None,
        strategy=normalize_strategy(data.get("strategy", REDUCE_TERM)),
        enabled=_flag(data.get("enabled"), where, True),
    )


def rate_change_from_dict(data: Mapping[str, Any]) -> RateChange:
    where = f"rate change for {data.get('plan_id', '?')}"
    when = data.get("effective_date")
    return RateChange(
        plan_id=str(_require(data, "plan_id", "rate change")),
        new_annual_rate=decimal_from_str(_require(data, "new_annual_rate", where)),
        effective_date=parse_date(when) if when else None,
        period=_optional_int(data.get("period"), where),
        enabled=_flag(data.get("enabled"), where, True),
    )


def grace_period_from_dict(data: Mapping[str, Any]) -> GracePeriod:
    where = f"grace period for {data.get('plan_id', '?')}"
    return GracePeriod(
        plan_id=str(_require(data, "plan_id", "grace period")),
        start_period=_optional_int(_require(data, "start_period", where), where),
        end_period=_optional_int(_require(data, "end_period", where), where),
        mode=normalize_grace_mode(data.get("mode", GRACE_INTEREST_ONLY)),
        enabled=_flag(data.get("enabled"), where, True),
    )


def cpi_points_from_data(data: Any) -> Tuple[CPIPoint, ...]:
    """Parse CPI data given as a list of points or a year/month mapping."""
    if not data:
        return ()
    points: List[CPIPoint] = []
    if isinstance(data, Mapping):
        for year, months in data.items():
            if not isinstance(months, Mapping):
                raise ValueError(f"CPI year {year}: expected a month mapping")
            for month, value in months.items():
                try:
                    when = parse_date(f"{int(year):04d}-{int(month):02d}")
                except (TypeError, ValueError) as exc:
                    raise ValueError(f"CPI entry {year}/{month}: invalid date") from exc
                points.append(CPIPoint(date=when, value=decimal_from_str(value)))
    else:
        for entry in data:
            points.append(
                CPIPoint(
                    date=parse_date(_require(entry, "date", "CPI entry")),
                    value=decimal_from_str(_require(entry, "value", "CPI entry")),
                )
            )
    for point in points:
        if point.value <= 0:
            raise ValueError(f"CPI entry {point.date.isoformat()}: index must be positive")
    return tuple(sorted(points, key=lambda p: p.date))


def portfolio_from_dict(data: Mapping[str, Any]) -> Portfolio:
    if not isinstance(data, Mapping):
        raise ValueError("Portfolio must be a JSON object")
    plans = data.get("plans") or []
    if not plans:
        raise ValueError("Portfolio must contain at least one plan")
    currency = data.get("currency")
    return Portfolio(
        plans=tuple(plan_from_dict(p) for p in plans),
        extra_payments=tuple(extra_payment_from_dict(e) for e in data.get("extra_payments") or []),
        rate_changes=tuple(rate_change_from_dict(r) for r in data.get("rate_changes") or []),
        grace_periods=tuple(grace_period_from_dict(g) for g in data.get("grace_periods") or []),
        currency=str(currency).upper() if currency else None,
        cpi=cpi_points_from_data(data.get("cpi")),
    )


def _money(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


def row_to_dict(row: AmortizationRow) -> Dict[str, Any]:
    return {
        "plan_id": row.plan_id,
        "period": row.period,
        "date": row.date.isoformat(),
        "opening_balance": float(row.opening_balance),
        "applied_rate": float(row.applied_rate),
        "scheduled_payment": float(row.scheduled_payment),
        "interest": float(row.interest_component),
        "principal": float(row.principal_component),
        "extra_payment": float(row.extra_payment_applied),
        "total_payment": float(row.total_payment),
        "cpi_adjustment": float(row.cpi_adjustment),
        "closing_balance": float(row.closing_balance),
        "is_grace_period": row.is_grace_period,
        "grace_mode": row.grace_mode,
        "cpi_missing": row.cpi_missing,
        "currency": row.currency,
        "tags": [
            {"kind": tag.kind, "label": tag.label, "value": _money(tag.value)}
            for tag in row.tags
        ],
    }


def issue_to_dict(issue: PlanIssue) -> Dict[str, str]:
    return {"plan_id": issue.plan_id, "field": issue.field, "message": issue.message}


def summary_to_dict(summary: Mapping[str, Any]) -> Dict[str, Any]:
    """Make a ``summarize_schedule`` result JSON-serialisable."""
    out: Dict[str, Any] = {}
    for key, value in summary.items():
        if isinstance(value, Decimal):
            out[key] = float(value)
        elif hasattr(value, "isoformat"):
            out[key] = value.isoformat()
        else:
            out[key] = value
    return out


def result_to_dict(result: ScheduleResult, summary: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "currency": result.currency,
        "rows": [row_to_dict(row) for row in result.rows],
        "errors": [issue_to_dict(issue) for issue in result.errors],
    }
    if summary is not None:
        data["summary"] = summary_to_dict(summary)
    return data


def rows_to_csv_records(rows: Sequence[AmortizationRow]) -> List[List[Any]]:
    """Rows as CSV records (without header) in the column order of ``CSV_HEADER``."""
    return [
        [
            row.plan_id,
            row.period,
            row.date.isoformat(),
            row.opening_balance,
            row.applied_rate,
            row.scheduled_payment,
            row.interest_component,
            row.principal_component,
            row.extra_payment_applied,
            row.cpi_adjustment,
            row.closing_balance,
            row.grace_mode or "",
            "Yes" if row.cpi_missing else "No",
        ]
        for row in rows
    ]


CSV_HEADER = [
    "Plan",
    "Period",
    "Date",
    "Opening_Balance",
    "Rate",
    "Payment",
    "Interest",
    "Principal",
    "Extra_Payment",
    "CPI_Factor",
    "Closing_Balance",
    "Grace",
    "CPI_Missing",
]


def snapshot_to_dict(snapshot: Mapping[str, Any]) -> Dict[str, Any]:
    """Make a ``portfolio_snapshot`` result JSON-serialisable."""
    return {
        "as_of": snapshot["as_of"].isoformat(),
        "balance": float(snapshot["balance"]),
        "payment": float(snapshot["payment"]),
        "plans": {
            plan_id: {key: float(value) for key, value in figures.items()}
            for plan_id, figures in snapshot["plans"].items()
        },
    }


def comparison_to_dict(comparison: Mapping[str, Any]) -> Dict[str, Any]:
    """Make a ``compare_schedules`` result JSON-serialisable."""
    return {
        "base": summary_to_dict(comparison["base"]),
        "scenario": summary_to_dict(comparison["scenario"]),
        "base_months": comparison["base_months"],
        "scenario_months": comparison["scenario_months"],
        "interest_saved": float(comparison["interest_saved"]),
        "paid_saved": float(comparison["paid_saved"]),
        "months_saved": comparison["months_saved"],
    }


def with_simulation(
    portfolio: Portfolio,
    extra_payments: Sequence[ExtraPayment] = (),
    rate_changes: Sequence[RateChange] = (),
) -> Portfolio:
    """The portfolio with simulated extra payments and rate changes appended."""
    return replace(
        portfolio,
        extra_payments=portfolio.extra_payments + tuple(extra_payments),
        rate_changes=portfolio.rate_changes + tuple(rate_changes),
    )
