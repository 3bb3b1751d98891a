"""Schedule aggregation helpers.

Combines per-plan schedules into a single portfolio timeline and derives
summary figures from it. Nothing here recomputes amortization; the functions
only read rows produced by the engine.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Sequence, Tuple

from .data_models import GRACE_DEFERRED, AmortizationRow


def merge_schedules(schedules: Sequence[Sequence[AmortizationRow]]) -> Tuple[AmortizationRow, ...]:
    """Merge per-plan schedules into one sequence ordered by date.

    ``schedules`` must be given in plan input order; rows sharing a date keep
    that order.
    """
    keyed = [
        (row.date, plan_order, row)
        for plan_order, rows in enumerate(schedules)
        for row in rows
    ]
    keyed.sort(key=lambda item: (item[0], item[1]))
    return tuple(row for _, _, row in keyed)


def _group_by_plan(rows: Iterable[AmortizationRow]) -> Dict[str, List[AmortizationRow]]:
    grouped: Dict[str, List[AmortizationRow]] = {}
    for row in rows:
        grouped.setdefault(row.plan_id, []).append(row)
    return grouped


def summarize_schedule(rows: Sequence[AmortizationRow]) -> Dict[str, object]:
    """Aggregate metrics for a schedule (one plan or a whole portfolio).

    ``total_indexation`` is the net CPI revaluation of the balances and
    ``total_capitalized`` the interest added to balances during deferred grace
    periods. ``payments_made`` counts rows where money was actually paid.
    """
    zero = Decimal("0")
    total_interest = zero
    total_principal = zero
    total_extra = zero
    total_paid = zero
    total_indexation = zero
    total_capitalized = zero
    max_payment = zero
    payments_made = 0

    for row in rows:
        total_principal += row.principal_component
        total_extra += row.extra_payment_applied
        if row.grace_mode == GRACE_DEFERRED:
            total_capitalized += row.interest_component
        else:
            total_interest += row.interest_component
        paid = row.total_payment
        total_paid += paid
        if paid > 0:
            payments_made += 1
        max_payment = max(max_payment, paid)
        for tag in row.tags:
            if tag.kind == "cpi" and tag.value is not None:
                total_indexation += tag.value

    return {
        "plans": len(_group_by_plan(rows)),
        "rows": len(rows),
        "payments_made": payments_made,
        "total_interest": total_interest,
        "total_principal": total_principal,
        "total_extra": total_extra,
        "total_paid": total_paid,
        "total_indexation": total_indexation,
        "total_capitalized": total_capitalized,
        "max_payment": max_payment,
        "first_date": rows[0].date if rows else None,
        "last_date": rows[-1].date if rows else None,
    }


def portfolio_snapshot(rows: Sequence[AmortizationRow], as_of: date) -> Dict[str, object]:
    """Outstanding balance and payment due across plans for ``as_of``'s month.

    Within the month a plan still owes its opening balance until the payment
    day has passed. Plans that have not started yet count their first opening
    balance; plans already paid off count nothing.
    """
    balance = Decimal("0")
    payment = Decimal("0")
    per_plan: Dict[str, Dict[str, Decimal]] = {}

    for plan_id, plan_rows in _group_by_plan(rows).items():
        plan_balance = Decimal("0")
        plan_payment = Decimal("0")
        in_month = [
            r for r in plan_rows if (r.date.year, r.date.month) == (as_of.year, as_of.month)
        ]
        if in_month:
            for row in in_month:
                plan_payment += row.total_payment
                plan_balance = row.opening_balance if as_of.day < row.date.day else row.closing_balance
        elif as_of < plan_rows[0].date:
            plan_balance = plan_rows[0].opening_balance
        else:
            earlier = [r for r in plan_rows if r.date <= as_of]
            plan_balance = earlier[-1].closing_balance

        per_plan[plan_id] = {"balance": plan_balance, "payment": plan_payment}
        balance += plan_balance
        payment += plan_payment

    return {"as_of": as_of, "balance": balance, "payment": payment, "plans": per_plan}


def _months_covered(rows: Iterable[AmortizationRow]) -> int:
    return len({(row.date.year, row.date.month) for row in rows})


def compare_schedules(
    base_rows: Sequence[AmortizationRow], scenario_rows: Sequence[AmortizationRow]
) -> Dict[str, object]:
    """Compare a schedule with a what-if variant of it.

    Both summaries are included. ``interest_saved``, ``paid_saved`` and
    ``months_saved`` are base minus scenario, so positive values mean the
    scenario is cheaper or shorter.
    """
    base = summarize_schedule(base_rows)
    scenario = summarize_schedule(scenario_rows)
    base_months = _months_covered(base_rows)
    scenario_months = _months_covered(scenario_rows)
    return {
        "base": base,
        "scenario": scenario,
        "base_months": base_months,
        "scenario_months": scenario_months,
        "interest_saved": base["total_interest"] - scenario["total_interest"],
        "paid_saved": base["total_paid"] - scenario["total_paid"],
        "months_saved": base_months - scenario_months,
    }
