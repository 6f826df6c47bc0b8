"""Storage port for outbreak reports.

The engine depends only on OutbreakRepository. Reports are append-only:
the port exposes an insert and windowed, confidence-filtered reads, and
never an update or delete.

Confidence filter used by every read:
    confidence IS NULL OR confidence >= min_confidence
Manual and partner reports carry no confidence and always count.
"""
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from cropwatch.shared.models import (
    BaselineStat,
    CellCount,
    Crop,
    DailyCellCount,
    DailyCount,
    LabelCount,
    OutbreakReport,
    ReportSubmission,
)
from .baseline import compute_baseline_stats
from .config import OutbreakConfig

logger = logging.getLogger(__name__)


def new_report_id() -> str:
    """Opaque, never-reused report identifier."""
    return f"obr_{uuid.uuid4().hex}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_day(moment: datetime) -> str:
    """UTC calendar day of a timestamp as YYYY-MM-DD."""
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%d")


class OutbreakRepository(ABC):
    """Capability contract the outbreak engine reads from and writes to."""

    def __init__(self, config: Optional[OutbreakConfig] = None):
        self.config = config or OutbreakConfig()

    @abstractmethod
    def insert_report(self, submission: ReportSubmission) -> str:
        """Append a report and return its generated id."""

    @abstractmethod
    def get_counts_by_day(
        self,
        geohash5: str,
        crop: Crop,
        since_hours: int,
        min_confidence: Optional[float] = None,
    ) -> List[DailyCount]:
        """Daily counts in the window, oldest day first.

        min_confidence defaults to the configured threshold.
        """

    @abstractmethod
    def get_top_labels(
        self,
        geohash5: str,
        crop: Crop,
        since_hours: int,
        min_confidence: float,
    ) -> List[LabelCount]:
        """Most frequent labels, count descending then label ascending."""

    @abstractmethod
    def get_total(
        self,
        geohash5: str,
        crop: Crop,
        since_hours: int,
        min_confidence: float,
    ) -> int:
        """Number of qualifying reports in the window."""

    @abstractmethod
    def get_unique_fields(
        self,
        geohash5: str,
        crop: Crop,
        since_hours: int,
        min_confidence: float,
    ) -> Optional[int]:
        """Distinct fields affected; reports without field_id count individually."""

    @abstractmethod
    def get_radar_buckets(
        self,
        geohashes: Sequence[str],
        crop: Crop,
        since_hours: int,
        min_confidence: float,
    ) -> List[CellCount]:
        """Per-cell counts in the window. Cells with no reports are omitted."""

    @abstractmethod
    def get_daily_cell_counts(
        self,
        geohashes: Sequence[str],
        crop: Crop,
        days: int,
        min_confidence: float,
    ) -> List[DailyCellCount]:
        """Per-cell, per-day counts over the trailing days."""

    def get_baseline_stats(
        self,
        geohashes: Sequence[str],
        crop: Crop,
        days: int,
    ) -> List[BaselineStat]:
        """Median and sigma of daily counts per cell.

        Always filtered at the configured confidence threshold, whatever
        threshold the current-window read uses.
        """
        rows = self.get_daily_cell_counts(geohashes, crop, days, self.config.min_confidence)
        return compute_baseline_stats(rows, sigma_floor=self.config.sigma_floor)

    def health_check(self) -> Dict[str, Any]:
        return {"status": "ok", "healthy": True}


class InMemoryOutbreakRepository(OutbreakRepository):
    """List-backed storage port for development and tests.

    Query semantics match the PostgreSQL implementation.
    """

    def __init__(
        self,
        config: Optional[OutbreakConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        super().__init__(config)
        self._clock = clock
        self._lock = threading.Lock()
        self._reports: List[OutbreakReport] = []

        logger.info("OUTBREAK_REPOSITORY_INITIALIZED", extra={"backend": "memory"})

    @property
    def reports(self) -> Tuple[OutbreakReport, ...]:
        """Snapshot of every stored report, in insertion order."""
        with self._lock:
            return tuple(self._reports)

    def insert_report(self, submission: ReportSubmission) -> str:
        report_id = new_report_id()
        report = OutbreakReport.from_submission(report_id, submission)
        with self._lock:
            self._reports.append(report)

        logger.debug(
            "OUTBREAK_REPORT_STORED_MEMORY",
            extra={
                "report_id": report_id,
                "geohash5": report.geohash5,
                "crop": report.crop.value,
            }
        )
        return report_id

    def _select(
        self,
        geohashes: Iterable[str],
        crop: Crop,
        since: timedelta,
        min_confidence: float,
    ) -> List[OutbreakReport]:
        cells = set(geohashes)
        cutoff = self._clock() - since
        with self._lock:
            return [
                r for r in self._reports
                if r.geohash5 in cells
                and r.crop == crop
                and r.observed_at >= cutoff
                and r.passes_confidence(min_confidence)
            ]

    def get_counts_by_day(self, geohash5, crop, since_hours, min_confidence=None):
        if min_confidence is None:
            min_confidence = self.config.min_confidence
        reports = self._select([geohash5], crop, timedelta(hours=since_hours), min_confidence)
        per_day = Counter(utc_day(r.observed_at) for r in reports)
        return [DailyCount(date=day, count=n) for day, n in sorted(per_day.items())]

    def get_top_labels(self, geohash5, crop, since_hours, min_confidence):
        reports = self._select([geohash5], crop, timedelta(hours=since_hours), min_confidence)
        per_label = Counter(r.label for r in reports)
        ranked = sorted(per_label.items(), key=lambda item: (-item[1], item[0]))
        return [
            LabelCount(label=label, count=n)
            for label, n in ranked[:self.config.top_labels_limit]
        ]

    def get_total(self, geohash5, crop, since_hours, min_confidence):
        return len(self._select([geohash5], crop, timedelta(hours=since_hours), min_confidence))

    def get_unique_fields(self, geohash5, crop, since_hours, min_confidence):
        reports = self._select([geohash5], crop, timedelta(hours=since_hours), min_confidence)
        return len({r.field_id if r.field_id is not None else r.id for r in reports})

    def get_radar_buckets(self, geohashes, crop, since_hours, min_confidence):
        reports = self._select(geohashes, crop, timedelta(hours=since_hours), min_confidence)
        per_cell = Counter(r.geohash5 for r in reports)
        return [CellCount(geohash5=cell, count=n) for cell, n in sorted(per_cell.items())]

    def get_daily_cell_counts(self, geohashes, crop, days, min_confidence):
        reports = self._select(geohashes, crop, timedelta(days=days), min_confidence)
        per_cell_day = Counter((r.geohash5, utc_day(r.observed_at)) for r in reports)
        return [
            DailyCellCount(geohash5=cell, date=day, count=n)
            for (cell, day), n in sorted(per_cell_day.items())
        ]

    def health_check(self) -> Dict[str, Any]:
        return {
            "status": "memory",
            "healthy": True,
            "report_count": len(self.reports),
        }
