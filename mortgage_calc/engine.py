"""Core calculation engine for the mortgage schedule.

This module implements the period-by-period amortization of one or more
plans. Each plan is an independent fold over its monthly timeline; the state
carried between periods (balance, installment, remaining term) lives in local
variables of ``compute_plan_schedule`` only. Within a period the effects are
applied in a fixed order:

1. CPI indexation of the outstanding balance (CPI-linked plans);
2. rate resolution;
3. grace handling (interest-only or deferred);
4. installment recompute when a rate change, grace exit or reduce-payment
   extra payment asks for it;
5. regular amortization;
6. extra payment.

Installments amortize down to the plan's balloon value, which is settled
together with the last installment. A reduce-term extra payment made during a
grace period keeps the installment owed without it and shortens the term once
amortization resumes.

Amounts are ``Decimal`` throughout. Rows are rounded to cents when emitted
while the running balance keeps full precision.
"""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal, ROUND_CEILING
import logging
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

from .aggregator import merge_schedules
from .data_models import (
    GRACE_DEFERRED,
    GRACE_INTEREST_ONLY,
    REDUCE_PAYMENT,
    AmortizationRow,
    CPIPoint,
    ExtraPayment,
    GracePeriod,
    Plan,
    PlanIssue,
    RateChange,
    RowTag,
    ScheduleResult,
)
from .modifiers import CPISeries, ModifierIndex
from .timeline import build_timeline
from .utils import round_money
from .validation import InvalidPlanError, ensure_valid

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
ONE = Decimal("1")
# balances at or below half a cent count as paid off
EPSILON = Decimal("0.005")

LabelFunction = Callable[[str], str]
CPIInput = Union[CPISeries, Iterable[CPIPoint], None]

DEFAULT_LABELS: Dict[str, str] = {
    "grace.interest_only": "Grace: Interest Only",
    "grace.deferred": "Grace: Capitalized",
    "extra_payment": "Extra payment",
    "rate_change": "Rate change",
    "cpi_indexation": "CPI indexation",
    "cpi_missing": "Missing CPI data",
    "balloon": "Balloon payment",
}


def default_label(key: str) -> str:
    return DEFAULT_LABELS.get(key, key)


def monthly_rate(annual_rate: Decimal) -> Decimal:
    """Convert an annual percentage rate into a monthly decimal rate."""
    return annual_rate / Decimal(100) / Decimal(12)


def calculate_annuity_payment(
    principal: Decimal, rate_per_month: Decimal, term: int, future_value: Decimal = ZERO
) -> Decimal:
    """Return the annuity (equal installment) monthly payment for a loan.

    The formula is:

        payment = (P * (1 + i)^n - FV) * i / ((1 + i)^n - 1)

    where ``P`` is the principal, ``i`` is the monthly interest rate, ``n`` is
    the number of payments and ``FV`` the balance left after the last of them
    (the balloon; zero for a fully amortizing loan). When the interest rate is
    zero, the payment simplifies to ``(P - FV) / n``.
    """
    if term <= 0:
        raise ValueError("Term must be positive")
    if rate_per_month == 0:
        return (principal - future_value) / Decimal(term)
    factor = (1 + rate_per_month) ** term
    return (principal * factor - future_value) * rate_per_month / (factor - 1)


def remaining_periods(
    balance: Decimal, rate_per_month: Decimal, payment: Decimal, future_value: Decimal = ZERO
) -> Optional[int]:
    """Number of installments of ``payment`` needed to bring ``balance`` down to ``future_value``.

    Returns ``None`` when the payment does not even cover the interest or the
    balance is already at or below ``future_value``.
    """
    if balance <= 0:
        return 0
    if payment <= 0 or balance <= future_value:
        return None
    if rate_per_month == 0:
        count = (balance - future_value) / payment
    else:
        remainder = payment - balance * rate_per_month
        if remainder <= 0:
            return None
        target = payment - future_value * rate_per_month
        count = (target / remainder).ln() / (ONE + rate_per_month).ln()
    # guard against 7.000000000001 turning into 8
    count -= Decimal("1e-9")
    return max(int(count.to_integral_value(rounding=ROUND_CEILING)), 1)


def as_cpi_series(cpi_data: CPIInput) -> CPISeries:
    if isinstance(cpi_data, CPISeries):
        return cpi_data
    return CPISeries(cpi_data or ())


def _row_tags(
    label: LabelFunction,
    grace_mode: Optional[str],
    extra: Decimal,
    rate_change: Optional[RateChange],
    indexation: Decimal,
    cpi_missing: bool,
    balloon: Decimal = ZERO,
) -> Tuple[RowTag, ...]:
    tags: List[RowTag] = []
    if grace_mode == GRACE_INTEREST_ONLY:
        tags.append(RowTag("grace-period", label("grace.interest_only")))
    elif grace_mode == GRACE_DEFERRED:
        tags.append(RowTag("grace-period", label("grace.deferred")))
    if extra > 0:
        tags.append(RowTag("extra-payment", label("extra_payment"), round_money(extra)))
    if rate_change is not None:
        tags.append(RowTag("rate-change", label("rate_change"), rate_change.new_annual_rate))
    if indexation != 0:
        tags.append(RowTag("cpi", label("cpi_indexation"), round_money(indexation)))
    if cpi_missing:
        tags.append(RowTag("cpi", label("cpi_missing")))
    if balloon > 0:
        tags.append(RowTag("balloon", label("balloon"), round_money(balloon)))
    return tuple(tags)


def _settle_last_row(rows: List[AmortizationRow], amortized_total: Decimal) -> AmortizationRow:
    """Absorb rounding residue into the final row.

    The principal components of a paid-off schedule must add up exactly to the
    amount that was amortized: the principal plus CPI revaluation plus any
    interest capitalized during deferred grace periods.
    """
    last = rows[-1]
    paid_before = sum((row.principal_component for row in rows[:-1]), ZERO)
    principal = round_money(amortized_total) - paid_before
    scheduled = last.scheduled_payment
    if not last.is_grace_period:
        scheduled = last.interest_component + principal - last.extra_payment_applied
    return replace(
        last,
        principal_component=principal,
        scheduled_payment=scheduled,
        closing_balance=round_money(ZERO),
    )


def compute_plan_schedule(
    plan: Plan,
    extra_payments: Iterable[ExtraPayment] = (),
    rate_changes: Iterable[RateChange] = (),
    grace_periods: Iterable[GracePeriod] = (),
    cpi_data: CPIInput = None,
    currency: Optional[str] = None,
    label: Optional[LabelFunction] = None,
) -> List[AmortizationRow]:
    """Compute the amortization schedule of a single plan.

    Modifiers belonging to other plans are ignored, so the full lists of a
    portfolio can be passed in. Rows stop early once the balance is paid off.

    Raises
    ------
    InvalidPlanError
        If the plan or one of its modifiers is invalid.
    """
    ensure_valid(plan)
    periods = build_timeline(plan)
    index = ModifierIndex(plan, rate_changes, grace_periods, extra_payments)
    series = as_cpi_series(cpi_data)
    label = label or default_label

    balloon = plan.balloon_value
    balance = plan.principal
    amortized_total = plan.principal
    payment: Optional[Decimal] = None
    payment_rate: Optional[Decimal] = None
    recompute = True
    term_end = plan.term_months
    # reduce-term extras paid during grace, applied when amortization resumes
    grace_reduction = ZERO
    last_index = series.index_at(plan.start_date) if plan.cpi_linked else None

    rows: List[AmortizationRow] = []
    for period in periods:
        number = period.number

        # 1. CPI indexation
        factor = ONE
        indexation = ZERO
        cpi_missing = False
        if plan.cpi_linked:
            current_index = series.index_at(period.date)
            if current_index is None or not last_index:
                cpi_missing = True
                if not last_index:
                    last_index = current_index
            else:
                factor = current_index / last_index
                last_index = current_index
                indexation = balance * (factor - ONE)
                balance += indexation
                amortized_total += indexation
                if payment is not None:
                    if balloon:
                        recompute = True
                    else:
                        payment *= factor
        opening = balance

        # 2. rate resolution
        annual_rate = index.rate_at(number)
        rate = monthly_rate(annual_rate)
        if payment_rate is not None and annual_rate != payment_rate:
            recompute = True

        # 3-5. grace or regular amortization
        grace_mode = index.grace_at(number)
        interest = balance * rate
        balloon_due = ZERO
        if grace_mode is not None:
            regular = ZERO
            if grace_mode == GRACE_DEFERRED:
                scheduled = ZERO
                balance += interest
                amortized_total += interest
            else:
                scheduled = interest
            recompute = True
        else:
            if recompute or payment is None:
                remaining = max(term_end - number + 1, 1)
                target = min(balloon, balance)
                fresh = calculate_annuity_payment(balance, rate, remaining, target)
                if grace_reduction > 0:
                    # keep the installment owed without the extra and finish earlier
                    if payment is not None and payment_rate == annual_rate:
                        kept = payment
                    else:
                        before = balance + grace_reduction
                        kept = calculate_annuity_payment(before, rate, remaining, min(balloon, before))
                    payment = max(kept, fresh)
                    needed = remaining_periods(balance, rate, payment, target)
                    if needed is not None:
                        term_end = min(term_end, number + needed - 1)
                    grace_reduction = ZERO
                else:
                    payment = fresh
                payment_rate = annual_rate
                recompute = False
            due = min(max(payment - interest, ZERO), balance)
            if number >= term_end:
                regular = balance
                if balloon:
                    balloon_due = balance - due
            else:
                regular = due
            balance -= regular
            scheduled = interest + regular

        # 6. extra payment
        extra = ZERO
        extra_due = index.extra_at(number)
        if extra_due is not None and balance > 0:
            extra = min(extra_due.amount, balance)
            balance -= extra
            if extra_due.strategy == REDUCE_PAYMENT:
                recompute = True
            elif grace_mode is not None:
                grace_reduction += extra
            elif payment is not None and balance > EPSILON:
                needed = remaining_periods(balance, rate, payment, min(balloon, balance))
                if needed is not None:
                    term_end = min(term_end, number + needed)

        if ZERO < balance <= EPSILON:
            if extra > 0:
                extra += balance
            else:
                regular += balance
                scheduled += balance
            balance = ZERO

        rows.append(
            AmortizationRow(
                plan_id=plan.id,
                period=number,
                date=period.date,
                opening_balance=round_money(opening),
                applied_rate=annual_rate,
                scheduled_payment=round_money(scheduled),
                interest_component=round_money(interest),
                principal_component=round_money(regular + extra),
                extra_payment_applied=round_money(extra),
                cpi_adjustment=factor,
                closing_balance=round_money(balance),
                is_grace_period=grace_mode is not None,
                grace_mode=grace_mode,
                cpi_missing=cpi_missing,
                currency=currency,
                tags=_row_tags(
                    label,
                    grace_mode,
                    extra,
                    index.rate_change_at(number),
                    indexation,
                    cpi_missing,
                    balloon_due,
                ),
            )
        )
        if balance == ZERO:
            break

    if rows and balance == ZERO:
        rows[-1] = _settle_last_row(rows, amortized_total)
    elif balance > 0:
        logger.debug("Plan %s ends with outstanding balance %s", plan.id, balance)
    return rows


def compute_schedule(
    plans: Iterable[Plan],
    extra_payments: Iterable[ExtraPayment] = (),
    rate_changes: Iterable[RateChange] = (),
    grace_periods: Iterable[GracePeriod] = (),
    currency: Optional[str] = None,
    cpi_data: CPIInput = None,
    label: Optional[LabelFunction] = None,
) -> ScheduleResult:
    """Compute the combined schedule of a portfolio of plans.

    Disabled plans and modifiers are skipped. A plan that fails validation is
    left out of the rows and reported in ``ScheduleResult.errors``; the other
    plans are still computed.
    """
    series = as_cpi_series(cpi_data)
    active_plans = [p for p in plans if p.enabled]
    extras = [e for e in extra_payments if e.enabled]
    changes = [c for c in rate_changes if c.enabled]
    graces = [g for g in grace_periods if g.enabled]

    schedules: List[List[AmortizationRow]] = []
    errors: List[PlanIssue] = []
    seen = set()
    for plan in active_plans:
        if plan.id in seen:
            logger.warning("Duplicate plan id %s excluded from schedule", plan.id)
            errors.append(PlanIssue(plan.id, "id", "duplicate plan id"))
            continue
        seen.add(plan.id)
        try:
            schedules.append(
                compute_plan_schedule(plan, extras, changes, graces, series, currency, label)
            )
        except InvalidPlanError as exc:
            logger.warning("Plan %s excluded from schedule: %s", plan.id, exc)
            errors.extend(exc.issues)

    return ScheduleResult(rows=merge_schedules(schedules), errors=tuple(errors), currency=currency)
