"""Timeline builder: expands a plan's term into dated monthly periods."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import List

from .data_models import Plan, PlanIssue
from .utils import add_months, months_between
from .validation import InvalidPlanError


@dataclass(frozen=True)
class Period:
    number: int  # 1-based
    date: date


def build_timeline(plan: Plan) -> List[Period]:
    """Return ``plan.term_months`` periods, period ``n`` dated ``n`` months after the start.

    Dates are always computed from ``start_date`` so a start on the 31st keeps
    returning to the 31st whenever the month allows it.
    """
    if plan.term_months < 1:
        raise InvalidPlanError(
            [PlanIssue(plan.id, "term_months", "term must be at least one month")]
        )
    return [
        Period(number=n, date=add_months(plan.start_date, n))
        for n in range(1, plan.term_months + 1)
    ]


def period_for_date(start_date: date, when: date) -> int:
    """Return the first period number whose date is on or after ``when``.

    Dates on or before the first period map to period 1.
    """
    number = months_between(start_date, when)
    if add_months(start_date, number) < when:
        number += 1
    return max(number, 1)
