"""Plan validation.

Invalid plans are reported as ``PlanIssue`` records. The single-plan engine
raises them wrapped in ``InvalidPlanError``; the multi-plan entry point turns
the exception back into data so one bad plan does not stop the others.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, List

from .data_models import Plan, PlanIssue


class InvalidPlanError(ValueError):
    """Raised when a plan or one of its modifiers cannot be scheduled."""

    def __init__(self, issues: Iterable[PlanIssue]) -> None:
        self.issues: List[PlanIssue] = list(issues)
        message = "; ".join(f"{i.plan_id}.{i.field}: {i.message}" for i in self.issues)
        super().__init__(message or "invalid plan")


def validate_plan(plan: Plan) -> List[PlanIssue]:
    """Return every problem found in ``plan`` (empty when it is valid)."""
    issues: List[PlanIssue] = []
    if not plan.id:
        issues.append(PlanIssue(plan.id, "id", "plan id must not be empty"))
    if plan.term_months < 1:
        issues.append(PlanIssue(plan.id, "term_months", "term must be at least one month"))
    if plan.principal <= Decimal("0"):
        issues.append(PlanIssue(plan.id, "principal", "principal must be positive"))
    if plan.annual_rate < Decimal("0"):
        issues.append(PlanIssue(plan.id, "annual_rate", "rate must not be negative"))
    if plan.balloon_value < Decimal("0"):
        issues.append(PlanIssue(plan.id, "balloon_value", "balloon must not be negative"))
    elif plan.principal > 0 and plan.balloon_value >= plan.principal:
        issues.append(PlanIssue(plan.id, "balloon_value", "balloon must be below the principal"))
    return issues


def ensure_valid(plan: Plan) -> None:
    issues = validate_plan(plan)
    if issues:
        raise InvalidPlanError(issues)
