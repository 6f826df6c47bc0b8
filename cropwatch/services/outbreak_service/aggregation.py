"""Single-cell outbreak aggregation.

Issues four independent reads against the storage port concurrently and
joins them into an OutbreakResponse. A failing read fails the whole
aggregation; storage errors reach the caller unchanged.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Optional

from cropwatch.shared.models import ConfidenceInfo, Crop, OutbreakResponse

from .config import OutbreakConfig
from .outbreak_repository import OutbreakRepository

logger = logging.getLogger(__name__)


class AggregationService:
    """Computes the outbreak summary for one cell."""

    def __init__(
        self,
        repository: OutbreakRepository,
        config: Optional[OutbreakConfig] = None,
    ):
        self.repository = repository
        self.config = config or OutbreakConfig()

    def get_outbreaks(
        self,
        geohash5: str,
        crop: Crop,
        since_hours: Optional[int] = None,
        min_confidence: Optional[float] = None,
    ) -> OutbreakResponse:
        """Summarize recent activity in a cell.

        Args:
            geohash5: Cell to summarize
            crop: Crop to filter on
            since_hours: Window length (default 72)
            min_confidence: Scan confidence threshold (default 0.75)

        Returns:
            OutbreakResponse with trend, top labels, totals and the
            k-anonymity flag. Nothing is redacted here.
        """
        since = since_hours if since_hours is not None else self.config.window_hours_default
        min_conf = min_confidence if min_confidence is not None else self.config.min_confidence
        repo = self.repository

        with ThreadPoolExecutor(max_workers=4) as executor:
            trend_f = executor.submit(repo.get_counts_by_day, geohash5, crop, since, min_conf)
            labels_f = executor.submit(repo.get_top_labels, geohash5, crop, since, min_conf)
            total_f = executor.submit(repo.get_total, geohash5, crop, since, min_conf)
            fields_f = executor.submit(repo.get_unique_fields, geohash5, crop, since, min_conf)

            trend = trend_f.result()
            top_labels = labels_f.result()
            total = total_f.result()
            unique_fields = fields_f.result()

        k_anonymity = total >= self.config.k_anon

        logger.info(
            "OUTBREAK_AGGREGATED",
            extra={
                "geohash5": geohash5,
                "crop": crop.value,
                "window_hours": since,
                "total_reports": total,
                "k_anonymity": k_anonymity,
            }
        )

        return OutbreakResponse(
            geohash5=geohash5,
            crop=crop,
            window_hours=since,
            total_reports=total,
            unique_fields=unique_fields,
            top_labels=list(top_labels),
            trend=list(trend),
            confidence=ConfidenceInfo(k_anonymity=k_anonymity, min_confidence=min_conf),
            last_updated=datetime.now(timezone.utc),
        )
