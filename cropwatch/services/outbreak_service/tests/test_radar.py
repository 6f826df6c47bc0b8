"""Tests for the multi-cell radar assembler."""
import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from cropwatch.shared.database import RepositoryError
from cropwatch.shared.models import (
    BaselineStat,
    CellCount,
    Crop,
    ReportSource,
    ReportSubmission,
    Severity,
)
from cropwatch.services.outbreak_service.config import OutbreakConfig, SigmaBands
from cropwatch.services.outbreak_service.outbreak_repository import InMemoryOutbreakRepository
from cropwatch.services.outbreak_service.radar import RadarAssembler

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

NO_CACHE = OutbreakConfig(baseline_cache_ttl_seconds=0)


def _mock_repo(counts, stats):
    repo = MagicMock()
    repo.get_radar_buckets.return_value = counts
    repo.get_baseline_stats.return_value = stats
    return repo


class TestRadarAssembly:
    """Tests for joining counts with baselines."""

    def test_surging_against_baseline(self):
        repo = _mock_repo(
            [CellCount("w4rqq", 5)],
            [BaselineStat("w4rqq", median=2, sigma=1)],
        )

        radar = RadarAssembler(repo, NO_CACHE).get_radar(["w4rqq"], Crop.RICE)

        assert len(radar.buckets) == 1
        assert radar.buckets[0].count == 5
        assert radar.buckets[0].severity == Severity.SURGING

    def test_each_band(self):
        repo = _mock_repo(
            [CellCount("aaaaa", 2), CellCount("bbbbb", 4), CellCount("ccccc", 9)],
            [
                BaselineStat("aaaaa", median=2, sigma=1),
                BaselineStat("bbbbb", median=2, sigma=1.5),
                BaselineStat("ccccc", median=2, sigma=1),
            ],
        )

        radar = RadarAssembler(repo, NO_CACHE).get_radar(["aaaaa", "bbbbb", "ccccc"], Crop.RICE)

        assert [b.severity for b in radar.buckets] == [
            Severity.STABLE, Severity.RISING, Severity.SURGING,
        ]

    def test_missing_baseline_uses_default(self):
        repo = _mock_repo([CellCount("w4rqq", 3)], [])

        radar = RadarAssembler(repo, NO_CACHE).get_radar(["w4rqq"], Crop.RICE)

        assert radar.buckets[0].severity == Severity.SURGING

    def test_legend_and_window(self):
        repo = _mock_repo([], [])

        radar = RadarAssembler(repo, NO_CACHE).get_radar(["w4rqq"], Crop.RICE, since_hours=24)

        assert radar.since_hours == 24
        assert radar.buckets == []
        assert radar.legend == {
            "stable": "#A0D468",
            "rising": "#FFCE54",
            "surging": "#ED5565",
        }

    def test_baseline_window_fixed_and_threshold_passed_to_counts(self):
        repo = _mock_repo([], [])

        RadarAssembler(repo, NO_CACHE).get_radar(
            ["w4rqq", "w4rqq", "w4rqr"], Crop.DURIAN, since_hours=48, min_confidence=0.5
        )

        repo.get_radar_buckets.assert_called_once_with(["w4rqq", "w4rqr"], Crop.DURIAN, 48, 0.5)
        repo.get_baseline_stats.assert_called_once_with(["w4rqq", "w4rqr"], Crop.DURIAN, 30)

    def test_custom_bands(self):
        repo = _mock_repo([CellCount("w4rqq", 5)], [BaselineStat("w4rqq", median=2, sigma=1)])
        config = OutbreakConfig(sigma_bands=SigmaBands(rising=2.0, surging=4.0), baseline_cache_ttl_seconds=0)

        radar = RadarAssembler(repo, config).get_radar(["w4rqq"], Crop.RICE)

        assert radar.buckets[0].severity == Severity.RISING


class TestConcurrency:
    """Counts and baselines are fetched together and fail together."""

    def test_reads_overlap(self):
        barrier = threading.Barrier(2, timeout=5)
        repo = MagicMock()

        def counts(*args):
            barrier.wait()
            return [CellCount("w4rqq", 1)]

        def stats(*args):
            barrier.wait()
            return []

        repo.get_radar_buckets.side_effect = counts
        repo.get_baseline_stats.side_effect = stats

        radar = RadarAssembler(repo, NO_CACHE).get_radar(["w4rqq"], Crop.RICE)

        assert len(radar.buckets) == 1

    def test_baseline_failure_fails_radar(self):
        repo = _mock_repo([CellCount("w4rqq", 1)], [])
        repo.get_baseline_stats.side_effect = RepositoryError("timeout")

        with pytest.raises(RepositoryError):
            RadarAssembler(repo, NO_CACHE).get_radar(["w4rqq"], Crop.RICE)


class TestEndToEnd:
    """Radar over the in-memory store."""

    def test_quiet_history_then_spike(self):
        repo = InMemoryOutbreakRepository(clock=lambda: NOW)

        def report(hours_ago):
            repo.insert_report(ReportSubmission(
                geohash5="w4rqq",
                crop=Crop.RICE,
                label="rice_blast",
                observed_at=NOW - timedelta(hours=hours_ago),
                source=ReportSource.PARTNER,
            ))

        # One report a day for the prior two weeks
        for day in range(4, 18):
            report(24 * day)
        # Spike of six within the last day
        for hour in range(1, 7):
            report(hour)

        radar = RadarAssembler(repo).get_radar(["w4rqq"], Crop.RICE)

        # Six in the window against a baseline of median 1
        assert radar.buckets[0].count == 6
        assert radar.buckets[0].severity == Severity.SURGING
