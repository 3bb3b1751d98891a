"""Modifier index and CPI lookup.

Rate changes, grace periods and extra payments arrive as flat lists covering
every plan. ``ModifierIndex`` buckets the ones belonging to a single plan into
arrays indexed by period number so the period stepper can read them in O(1).
``CPISeries`` keeps index points sorted by date and answers "latest index at or
before a date" with a binary search.
"""

from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from .data_models import (
    EXTRA_STRATEGIES,
    GRACE_MODES,
    CPIPoint,
    ExtraPayment,
    GracePeriod,
    Plan,
    PlanIssue,
    RateChange,
)
from .timeline import period_for_date
from .utils import add_months
from .validation import InvalidPlanError

logger = logging.getLogger(__name__)


class CPISeries:
    """An immutable, date-sorted CPI series."""

    def __init__(self, points: Iterable[CPIPoint] = ()) -> None:
        ordered = sorted(points, key=lambda p: p.date)
        self._points: Tuple[CPIPoint, ...] = tuple(ordered)
        self._dates: List[date] = [p.date for p in ordered]

    def index_at(self, when: date) -> Optional[Decimal]:
        """Return the latest index published on or before ``when``."""
        pos = bisect_right(self._dates, when)
        if pos == 0:
            return None
        return self._points[pos - 1].value

    @property
    def points(self) -> Tuple[CPIPoint, ...]:
        return self._points

    def __len__(self) -> int:
        return len(self._points)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CPISeries):
            return NotImplemented
        return self._points == other._points

    def __hash__(self) -> int:
        return hash(self._points)


@dataclass(frozen=True)
class ExtraDue:
    amount: Decimal
    strategy: str


class ModifierIndex:
    """Per-period lookup tables for one plan's modifiers.

    Tie-breaks:

    * rate changes effective on the same date: the later one in input order wins;
    * overlapping grace intervals: the interval listed first keeps the
      contested periods;
    * several extra payments in one period: amounts are summed, the first
      payment's strategy is used.
    """

    def __init__(
        self,
        plan: Plan,
        rate_changes: Iterable[RateChange] = (),
        grace_periods: Iterable[GracePeriod] = (),
        extra_payments: Iterable[ExtraPayment] = (),
    ) -> None:
        self.plan = plan
        term = plan.term_months
        # slot 0 is unused so period numbers index directly
        self._rates: List[Decimal] = [plan.annual_rate] * (term + 1)
        self._rate_changes: Dict[int, RateChange] = {}
        self._grace: List[Optional[str]] = [None] * (term + 1)
        self._extras: Dict[int, ExtraDue] = {}

        self._index_rates([c for c in rate_changes if c.plan_id == plan.id])
        self._index_grace([g for g in grace_periods if g.plan_id == plan.id])
        self._index_extras([e for e in extra_payments if e.plan_id == plan.id])

    def rate_at(self, period: int) -> Decimal:
        return self._rates[period]

    def rate_change_at(self, period: int) -> Optional[RateChange]:
        """The rate change that becomes active exactly at ``period``."""
        return self._rate_changes.get(period)

    def grace_at(self, period: int) -> Optional[str]:
        return self._grace[period]

    def extra_at(self, period: int) -> Optional[ExtraDue]:
        return self._extras.get(period)

    def _issue(self, field: str, message: str) -> InvalidPlanError:
        return InvalidPlanError([PlanIssue(self.plan.id, field, message)])

    def _locate(self, field: str, period: Optional[int], when: Optional[date]) -> int:
        if period is not None:
            if period < 1:
                raise self._issue(field, f"period must be at least 1, got {period}")
            return period
        if when is not None:
            return period_for_date(self.plan.start_date, when)
        raise self._issue(field, "either a period or a date is required")

    def _index_rates(self, changes: List[RateChange]) -> None:
        located = []
        for seq, change in enumerate(changes):
            if change.new_annual_rate < 0:
                raise self._issue("rate_changes", "rate must not be negative")
            number = self._locate("rate_changes", change.period, change.effective_date)
            if number > self.plan.term_months:
                logger.debug("Rate change for %s after the last period ignored", self.plan.id)
                continue
            effective = change.effective_date
            if change.period is not None:
                effective = add_months(self.plan.start_date, number)
            located.append((effective, seq, number, change))
        # later input wins on equal dates because it sorts last
        located.sort(key=lambda item: (item[0], item[1]))

        for _, _, number, change in located:
            if number in self._rate_changes:
                logger.debug(
                    "Rate change conflict for %s at period %d: later entry wins",
                    self.plan.id,
                    number,
                )
            self._rate_changes[number] = change

        current = self.plan.annual_rate
        for number in range(1, self.plan.term_months + 1):
            change = self._rate_changes.get(number)
            if change is not None:
                current = change.new_annual_rate
            self._rates[number] = current

    def _index_grace(self, intervals: List[GracePeriod]) -> None:
        for interval in intervals:
            if interval.mode not in GRACE_MODES:
                raise self._issue("grace_periods", f"unknown grace mode '{interval.mode}'")
            if interval.start_period < 1 or interval.end_period < interval.start_period:
                raise self._issue(
                    "grace_periods",
                    f"invalid interval {interval.start_period}-{interval.end_period}",
                )
            last = min(interval.end_period, self.plan.term_months)
            for number in range(interval.start_period, last + 1):
                if self._grace[number] is not None:
                    logger.debug(
                        "Overlapping grace interval for %s at period %d: first entry kept",
                        self.plan.id,
                        number,
                    )
                    continue
                self._grace[number] = interval.mode

    def _index_extras(self, payments: List[ExtraPayment]) -> None:
        for payment in payments:
            if payment.amount <= 0:
                raise self._issue("extra_payments", "amount must be positive")
            if payment.strategy not in EXTRA_STRATEGIES:
                raise self._issue("extra_payments", f"unknown strategy '{payment.strategy}'")
            number = self._locate("extra_payments", payment.period, payment.payment_date)
            if number > self.plan.term_months:
                continue
            due = self._extras.get(number)
            if due is None:
                self._extras[number] = ExtraDue(payment.amount, payment.strategy)
            else:
                self._extras[number] = ExtraDue(due.amount + payment.amount, due.strategy)
