from decimal import Decimal

from mortgage_calc.cache import ScheduleCache
from mortgage_calc.data_models import ExtraPayment


class TestScheduleCache:
    def test_equal_inputs_hit(self, base_plan):
        cache = ScheduleCache()
        first = cache.get([base_plan], [ExtraPayment("home", Decimal("100"), period=2)])
        second = cache.get((base_plan,), (ExtraPayment("home", Decimal("100"), period=2),))
        assert second is first
        assert cache.hits == 1
        assert cache.misses == 1

    def test_changed_input_recomputes(self, base_plan):
        cache = ScheduleCache()
        first = cache.get([base_plan])
        second = cache.get([base_plan], currency="EUR")
        assert second is not first
        assert second.currency == "EUR"
        assert cache.misses == 2

    def test_only_latest_result_kept(self, base_plan, cpi_plan):
        cache = ScheduleCache()
        cache.get([base_plan])
        cache.get([cpi_plan])
        cache.get([base_plan])
        assert cache.hits == 0
        assert cache.misses == 3

    def test_cpi_change_invalidates(self, cpi_plan, cpi_points):
        cache = ScheduleCache()
        cache.get([cpi_plan], cpi_data=cpi_points)
        cache.get([cpi_plan], cpi_data=list(cpi_points))
        cache.get([cpi_plan], cpi_data=cpi_points[:1])
        assert cache.hits == 1
        assert cache.misses == 2

    def test_clear(self, base_plan):
        cache = ScheduleCache()
        cache.get([base_plan])
        cache.clear()
        cache.get([base_plan])
        assert cache.misses == 2
