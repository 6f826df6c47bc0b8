"""Multi-cell radar overlay.

Current-window counts and 30-day baselines are fetched concurrently,
joined by cell, and classified. Cells without a baseline are compared
against median 0 and the sigma floor, so even a handful of reports in a
previously quiet cell reads as surging.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Sequence

from cropwatch.shared.models import Crop, RadarBucket, RadarResponse

from .baseline import BaselineStatisticsService
from .config import OutbreakConfig, RADAR_LEGEND
from .outbreak_repository import OutbreakRepository
from .severity import classify_severity

logger = logging.getLogger(__name__)


class RadarAssembler:
    """Builds the severity overlay for a set of cells."""

    def __init__(
        self,
        repository: OutbreakRepository,
        config: Optional[OutbreakConfig] = None,
        baseline_service: Optional[BaselineStatisticsService] = None,
    ):
        """Initialize assembler.

        Args:
            repository: Storage port for current-window counts
            config: Engine configuration
            baseline_service: Baseline source (injected to share its cache)
        """
        self.repository = repository
        self.config = config or OutbreakConfig()
        self.baseline_service = baseline_service or BaselineStatisticsService(
            repository, self.config
        )

    def get_radar(
        self,
        geohashes: Sequence[str],
        crop: Crop,
        since_hours: Optional[int] = None,
        min_confidence: Optional[float] = None,
    ) -> RadarResponse:
        """Classify every requested cell that has activity in the window.

        Args:
            geohashes: Cells on the map
            crop: Crop to filter on
            since_hours: Window length (default 72)
            min_confidence: Threshold for current counts only; baselines
                always use the configured threshold

        Returns:
            RadarResponse with one bucket per active cell
        """
        since = since_hours if since_hours is not None else self.config.window_hours_default
        min_conf = min_confidence if min_confidence is not None else self.config.min_confidence
        cells = list(dict.fromkeys(geohashes))

        with ThreadPoolExecutor(max_workers=2) as executor:
            counts_f = executor.submit(
                self.repository.get_radar_buckets, cells, crop, since, min_conf
            )
            stats_f = executor.submit(
                self.baseline_service.get_stats, cells, crop, self.config.baseline_days
            )
            counts = counts_f.result()
            stats = stats_f.result()

        buckets = []
        for cell_count in counts:
            stat = stats.get(cell_count.geohash5) or self.baseline_service.default_stat(
                cell_count.geohash5
            )
            buckets.append(RadarBucket(
                geohash5=cell_count.geohash5,
                count=cell_count.count,
                severity=classify_severity(
                    cell_count.count, stat.median, stat.sigma, self.config.sigma_bands
                ),
            ))

        logger.info(
            "OUTBREAK_RADAR_ASSEMBLED",
            extra={
                "crop": crop.value,
                "requested_cells": len(cells),
                "active_cells": len(buckets),
                "window_hours": since,
            }
        )

        return RadarResponse(
            buckets=buckets,
            legend=dict(RADAR_LEGEND),
            since_hours=since,
        )
