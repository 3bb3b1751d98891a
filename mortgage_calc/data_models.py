"""Data models for the mortgage schedule engine.

This module defines the value objects passed into and returned from the
engine: plans, the modifiers that alter them over time (rate changes, grace
periods, extra payments), CPI index points and the emitted schedule rows.
All of them are frozen dataclasses so they can be hashed, compared by value
and shared between callers without defensive copies.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional, Tuple

GRACE_INTEREST_ONLY = "interest-only"
GRACE_DEFERRED = "deferred"
GRACE_MODES = (GRACE_INTEREST_ONLY, GRACE_DEFERRED)

REDUCE_TERM = "reduce-term"
REDUCE_PAYMENT = "reduce-payment"
EXTRA_STRATEGIES = (REDUCE_TERM, REDUCE_PAYMENT)


@dataclass(frozen=True)
class Plan:
    """A loan or mortgage instrument.

    Attributes
    ----------
    id: str
        Identifier referenced by modifiers through their ``plan_id``.
    principal: Decimal
        The original borrowed amount.
    annual_rate: Decimal
        Nominal annual interest rate in percent (``Decimal("6")`` is 6 %).
    term_months: int
        Number of monthly periods.
    start_date: date
        Anchor of the timeline. Period ``n`` falls ``n`` months after it.
    cpi_linked: bool
        When true the outstanding balance is indexed to the CPI series.
    balloon_value: Decimal
        Balance left for the final installment to settle in one lump sum.
        Zero for a fully amortizing loan.
    """

    id: str
    principal: Decimal
    annual_rate: Decimal
    term_months: int
    start_date: date
    cpi_linked: bool = False
    name: Optional[str] = None
    enabled: bool = True
    balloon_value: Decimal = Decimal("0")

    @property
    def initial_amount(self) -> Decimal:
        return self.principal


@dataclass(frozen=True)
class RateChange:
    """A scheduled change of a plan's annual rate.

    Either ``effective_date`` or ``period`` locates the change. It applies from
    the first period whose date is on or after the effective date.
    """

    plan_id: str
    new_annual_rate: Decimal
    effective_date: Optional[date] = None
    period: Optional[int] = None
    enabled: bool = True


@dataclass(frozen=True)
class GracePeriod:
    """An inclusive range of periods during which amortization is suspended.

    ``mode`` is ``"interest-only"`` (interest is paid, principal untouched) or
    ``"deferred"`` (interest is added to the balance, nothing is paid).
    """

    plan_id: str
    start_period: int
    end_period: int
    mode: str = GRACE_INTEREST_ONLY
    enabled: bool = True


@dataclass(frozen=True)
class ExtraPayment:
    """A one-time additional principal payment.

    ``strategy`` is ``"reduce-term"`` (keep the installment, finish earlier) or
    ``"reduce-payment"`` (keep the end date, lower the installment).
    """

    plan_id: str
    amount: Decimal
    period: Optional[int] = None
    payment_date: Optional[date] = None
    strategy: str = REDUCE_TERM
    enabled: bool = True


@dataclass(frozen=True)
class CPIPoint:
    """A consumer price index value published for ``date``."""

    date: date
    value: Decimal


@dataclass(frozen=True)
class RowTag:
    """A human-readable annotation on a schedule row.

    ``kind`` is one of ``grace-period``, ``extra-payment``, ``rate-change``,
    ``cpi`` or ``balloon``. ``value`` holds the raw number behind the label
    (extra amount, new rate, indexation amount, balloon settled) so callers
    can format it themselves.
    """

    kind: str
    label: str
    value: Optional[Decimal] = None


@dataclass(frozen=True)
class AmortizationRow:
    """One period of a plan's schedule.

    Money fields are rounded to cents. ``principal_component`` includes any
    extra payment applied in the period, which is also reported on its own in
    ``extra_payment_applied``. ``scheduled_payment`` is the regular installment
    (interest plus regular principal) and excludes the extra payment.
    """

    plan_id: str
    period: int
    date: date
    opening_balance: Decimal
    applied_rate: Decimal
    scheduled_payment: Decimal
    interest_component: Decimal
    principal_component: Decimal
    extra_payment_applied: Decimal
    cpi_adjustment: Decimal
    closing_balance: Decimal
    is_grace_period: bool = False
    grace_mode: Optional[str] = None
    cpi_missing: bool = False
    currency: Optional[str] = None
    tags: Tuple[RowTag, ...] = ()

    @property
    def total_payment(self) -> Decimal:
        return self.scheduled_payment + self.extra_payment_applied


@dataclass(frozen=True)
class PlanIssue:
    """A structured validation error for a single plan."""

    plan_id: str
    field: str
    message: str


@dataclass(frozen=True)
class ScheduleResult:
    """Output of a multi-plan engine run.

    ``rows`` are sorted by date (ties keep plan input order). Plans that failed
    validation contribute no rows and are described in ``errors``.
    """

    rows: Tuple[AmortizationRow, ...]
    errors: Tuple[PlanIssue, ...] = ()
    currency: Optional[str] = None

    def rows_for(self, plan_id: str) -> Tuple[AmortizationRow, ...]:
        return tuple(row for row in self.rows if row.plan_id == plan_id)

    def plan_ids(self) -> Tuple[str, ...]:
        seen = []
        for row in self.rows:
            if row.plan_id not in seen:
                seen.append(row.plan_id)
        return tuple(seen)
