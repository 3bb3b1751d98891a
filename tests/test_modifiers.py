from datetime import date
from decimal import Decimal

import pytest

from mortgage_calc.data_models import CPIPoint, ExtraPayment, GracePeriod, RateChange
from mortgage_calc.modifiers import CPISeries, ModifierIndex
from mortgage_calc.validation import InvalidPlanError


class TestCPISeries:
    series = CPISeries(
        [
            CPIPoint(date(2024, 3, 1), Decimal("102")),
            CPIPoint(date(2024, 1, 1), Decimal("100")),
        ]
    )

    def test_points_sorted(self):
        assert [p.date for p in self.series.points] == [date(2024, 1, 1), date(2024, 3, 1)]
        assert len(self.series) == 2

    def test_lookup_before_first_point(self):
        assert self.series.index_at(date(2023, 12, 31)) is None

    def test_lookup_uses_latest_point_at_or_before(self):
        assert self.series.index_at(date(2024, 1, 1)) == Decimal("100")
        assert self.series.index_at(date(2024, 2, 15)) == Decimal("100")
        assert self.series.index_at(date(2024, 3, 1)) == Decimal("102")
        assert self.series.index_at(date(2030, 1, 1)) == Decimal("102")

    def test_equality_ignores_input_order(self):
        same = CPISeries(list(reversed(self.series.points)))
        assert same == self.series
        assert hash(same) == hash(self.series)


class TestModifierIndex:
    def test_rates_carry_forward(self, base_plan):
        index = ModifierIndex(base_plan, rate_changes=[RateChange("home", Decimal("8"), period=4)])
        assert index.rate_at(3) == Decimal("6")
        assert index.rate_at(4) == Decimal("8")
        assert index.rate_at(12) == Decimal("8")
        assert index.rate_change_at(4).new_annual_rate == Decimal("8")
        assert index.rate_change_at(5) is None

    def test_rate_change_after_term_ignored(self, base_plan):
        index = ModifierIndex(base_plan, rate_changes=[RateChange("home", Decimal("8"), period=40)])
        assert index.rate_at(12) == Decimal("6")

    def test_modifiers_for_other_plans_ignored(self, base_plan):
        index = ModifierIndex(
            base_plan,
            rate_changes=[RateChange("x", Decimal("8"), period=2)],
            grace_periods=[GracePeriod("x", 1, 2)],
            extra_payments=[ExtraPayment("x", Decimal("100"), period=2)],
        )
        assert index.rate_at(2) == Decimal("6")
        assert index.grace_at(1) is None
        assert index.extra_at(2) is None

    def test_grace_clipped_to_term(self, base_plan):
        index = ModifierIndex(base_plan, grace_periods=[GracePeriod("home", 11, 20, "deferred")])
        assert index.grace_at(10) is None
        assert index.grace_at(11) == "deferred"
        assert index.grace_at(12) == "deferred"

    def test_extras_summed_with_first_strategy(self, base_plan):
        index = ModifierIndex(
            base_plan,
            extra_payments=[
                ExtraPayment("home", Decimal("100"), period=2, strategy="reduce-payment"),
                ExtraPayment("home", Decimal("50"), payment_date=date(2024, 3, 1)),
            ],
        )
        due = index.extra_at(2)
        assert due.amount == Decimal("150")
        assert due.strategy == "reduce-payment"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"rate_changes": [RateChange("home", Decimal("-1"), period=2)]},
            {"rate_changes": [RateChange("home", Decimal("5"))]},
            {"grace_periods": [GracePeriod("home", 4, 2)]},
            {"grace_periods": [GracePeriod("home", 0, 2)]},
            {"extra_payments": [ExtraPayment("home", Decimal("0"), period=2)]},
            {"extra_payments": [ExtraPayment("home", Decimal("10"), period=0)]},
            {"extra_payments": [ExtraPayment("home", Decimal("10"), period=2, strategy="skip")]},
        ],
    )
    def test_invalid_modifiers_rejected(self, base_plan, kwargs):
        with pytest.raises(InvalidPlanError) as excinfo:
            ModifierIndex(base_plan, **kwargs)
        assert excinfo.value.issues[0].plan_id == "home"
