"""Shared fixtures.

Base plan: 100,000 borrowed at 6 % for 12 months starting 2024-01-01, so
the first installment falls on 2024-02-01 and the constant payment is
8,606.64.
"""

from datetime import date
from decimal import Decimal

import pytest

from mortgage_calc.data_models import CPIPoint, Plan


@pytest.fixture
def base_plan() -> Plan:
    return Plan(
        id="home",
        principal=Decimal("100000"),
        annual_rate=Decimal("6"),
        term_months=12,
        start_date=date(2024, 1, 1),
    )


@pytest.fixture
def cpi_plan(base_plan) -> Plan:
    return Plan(
        id="linked",
        principal=base_plan.principal,
        annual_rate=base_plan.annual_rate,
        term_months=base_plan.term_months,
        start_date=base_plan.start_date,
        cpi_linked=True,
    )


@pytest.fixture
def cpi_points() -> list:
    """Index rises 5 % in the first month, then stays flat."""
    return [
        CPIPoint(date(2024, 1, 1), Decimal("100")),
        CPIPoint(date(2024, 2, 1), Decimal("105")),
    ]


@pytest.fixture
def portfolio_dict() -> dict:
    return {
        "currency": "usd",
        "plans": [
            {
                "id": "home",
                "principal": "100000",
                "annual_rate": "6",
                "term_months": 12,
                "start_date": "2024-01-01",
            },
            {
                "id": "car",
                "name": "Car loan",
                "principal": "12000",
                "annual_rate": "0",
                "term_months": 12,
                "start_date": "2024-01-01",
            },
        ],
        "extra_payments": [
            {"plan_id": "home", "period": 3, "amount": "10000", "strategy": "reduce-term"}
        ],
        "rate_changes": [],
        "grace_periods": [],
    }
