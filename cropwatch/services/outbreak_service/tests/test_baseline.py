"""Tests for baseline statistics and the baseline cache."""
from datetime import date
from unittest.mock import MagicMock

import pytest

from cropwatch.shared.models import BaselineStat, Crop, DailyCellCount
from cropwatch.services.outbreak_service.baseline import (
    BaselineStatisticsService,
    compute_baseline_stats,
    floored_pstdev,
    lower_median,
)
from cropwatch.services.outbreak_service.config import OutbreakConfig


def _rows(cell, counts):
    return [
        DailyCellCount(geohash5=cell, date=f"2026-10-{day + 1:02d}", count=c)
        for day, c in enumerate(counts)
    ]


class TestLowerMedian:
    """Tests for the lower-middle order statistic."""

    def test_even_length_takes_lower_middle(self):
        assert lower_median([1, 3, 5, 7]) == 3

    def test_order_independent(self):
        assert lower_median([7, 1, 5, 3]) == 3

    def test_odd_length_takes_middle(self):
        assert lower_median([9, 2, 4]) == 4

    def test_single_value(self):
        assert lower_median([6]) == 6

    def test_empty_rejected(self):
        with pytest.raises(ValueError):
            lower_median([])


class TestFlooredPstdev:
    """Tests for population sigma with floor."""

    def test_population_not_sample(self):
        # Population sigma of [2, 4, 4, 4, 5, 5, 7, 9] is exactly 2
        assert floored_pstdev([2, 4, 4, 4, 5, 5, 7, 9]) == pytest.approx(2.0)

    def test_flat_history_floored(self):
        assert floored_pstdev([4, 4, 4]) == 1e-6

    def test_single_day_floored(self):
        assert floored_pstdev([12]) == 1e-6

    def test_empty_floored(self):
        assert floored_pstdev([]) == 1e-6


class TestComputeBaselineStats:
    """Tests for per-cell aggregation of daily rows."""

    def test_groups_by_cell(self):
        rows = _rows("w4rqq", [1, 3, 5, 7]) + _rows("w4rqr", [2, 2])

        stats = {s.geohash5: s for s in compute_baseline_stats(rows)}

        assert stats["w4rqq"].median == 3
        assert stats["w4rqq"].sigma == pytest.approx(2.2360679, rel=1e-6)
        assert stats["w4rqr"].median == 2
        assert stats["w4rqr"].sigma == 1e-6

    def test_cells_without_rows_absent(self):
        assert compute_baseline_stats([]) == []

    def test_custom_floor(self):
        stats = compute_baseline_stats(_rows("w4rqq", [1, 1]), sigma_floor=0.5)

        assert stats[0].sigma == 0.5


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def repository():
    repo = MagicMock()
    repo.get_baseline_stats.side_effect = lambda cells, crop, days: [
        BaselineStat(geohash5=c, median=2.0, sigma=1.0) for c in cells if c != "w4rqx"
    ]
    return repo


class TestBaselineStatisticsService:
    """Tests for the service and its TTL cache."""

    def test_returns_stats_keyed_by_cell(self, repository):
        service = BaselineStatisticsService(repository, OutbreakConfig(baseline_cache_ttl_seconds=0))

        stats = service.get_stats(["w4rqq", "w4rqx"], Crop.RICE)

        assert set(stats) == {"w4rqq"}
        repository.get_baseline_stats.assert_called_once_with(["w4rqq", "w4rqx"], Crop.RICE, 30)

    def test_default_stat(self, repository):
        service = BaselineStatisticsService(repository)

        stat = service.default_stat("w4rqx")

        assert stat.median == 0.0
        assert stat.sigma == 1e-6

    def test_cache_serves_repeat_lookups(self, repository):
        service = BaselineStatisticsService(repository, clock=FakeClock())

        first = service.get_stats(["w4rqq", "w4rqx"], Crop.RICE)
        second = service.get_stats(["w4rqq", "w4rqx"], Crop.RICE)

        assert first == second
        assert repository.get_baseline_stats.call_count == 1

    def test_cache_fetches_only_missing_cells(self, repository):
        service = BaselineStatisticsService(repository, clock=FakeClock())

        service.get_stats(["w4rqq"], Crop.RICE)
        service.get_stats(["w4rqq", "w4rqr"], Crop.RICE)

        assert repository.get_baseline_stats.call_args_list[1].args[0] == ["w4rqr"]

    def test_cache_expires_after_ttl(self, repository):
        clock = FakeClock()
        service = BaselineStatisticsService(
            repository, OutbreakConfig(baseline_cache_ttl_seconds=60), clock=clock
        )

        service.get_stats(["w4rqq"], Crop.RICE)
        clock.now += 61
        service.get_stats(["w4rqq"], Crop.RICE)

        assert repository.get_baseline_stats.call_count == 2

    def test_cache_expires_at_day_boundary(self, repository):
        today = {"value": date(2026, 10, 19)}
        service = BaselineStatisticsService(
            repository, clock=FakeClock(), today=lambda: today["value"]
        )

        service.get_stats(["w4rqq"], Crop.RICE)
        today["value"] = date(2026, 10, 20)
        service.get_stats(["w4rqq"], Crop.RICE)

        assert repository.get_baseline_stats.call_count == 2

    def test_cache_keyed_by_crop(self, repository):
        service = BaselineStatisticsService(repository, clock=FakeClock())

        service.get_stats(["w4rqq"], Crop.RICE)
        service.get_stats(["w4rqq"], Crop.DURIAN)

        assert repository.get_baseline_stats.call_count == 2

    def test_invalidate(self, repository):
        service = BaselineStatisticsService(repository, clock=FakeClock())

        service.get_stats(["w4rqq"], Crop.RICE)
        service.invalidate()
        service.get_stats(["w4rqq"], Crop.RICE)

        assert repository.get_baseline_stats.call_count == 2

    def test_storage_errors_propagate(self, repository):
        repository.get_baseline_stats.side_effect = ConnectionError("db down")
        service = BaselineStatisticsService(repository)

        with pytest.raises(ConnectionError):
            service.get_stats(["w4rqq"], Crop.RICE)


class TestCacheBounds:
    """The cache only holds live entries and never exceeds its cap."""

    def test_expired_entries_evicted(self, repository):
        clock = FakeClock()
        service = BaselineStatisticsService(
            repository, OutbreakConfig(baseline_cache_ttl_seconds=60), clock=clock
        )

        for i in range(5000):
            service.get_stats([f"w{i:04d}"], Crop.RICE)
            clock.now += 61

        assert service.cache_size == 1

    def test_previous_day_entries_evicted(self, repository):
        today = {"value": date(2026, 10, 19)}
        service = BaselineStatisticsService(
            repository, clock=FakeClock(), today=lambda: today["value"]
        )

        service.get_stats(["w4rqq", "w4rqr", "w4rqx"], Crop.RICE)
        today["value"] = date(2026, 10, 20)
        service.get_stats(["w4rqn"], Crop.RICE)

        assert service.cache_size == 1

    def test_size_capped(self, repository):
        service = BaselineStatisticsService(
            repository, OutbreakConfig(baseline_cache_max_entries=100), clock=FakeClock()
        )

        for i in range(0, 5000, 50):
            service.get_stats([f"w{j:04d}" for j in range(i, i + 50)], Crop.RICE)

        assert service.cache_size == 100

    def test_cap_drops_oldest_first(self, repository):
        service = BaselineStatisticsService(
            repository, OutbreakConfig(baseline_cache_max_entries=2), clock=FakeClock()
        )

        service.get_stats(["w4rqq"], Crop.RICE)
        service.get_stats(["w4rqr"], Crop.RICE)
        service.get_stats(["w4rqn"], Crop.RICE)
        repository.get_baseline_stats.reset_mock()

        service.get_stats(["w4rqr", "w4rqn"], Crop.RICE)
        repository.get_baseline_stats.assert_not_called()

        service.get_stats(["w4rqq"], Crop.RICE)
        repository.get_baseline_stats.assert_called_once_with(["w4rqq"], Crop.RICE, 30)
