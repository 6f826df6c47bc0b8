"""PostgreSQL storage port for outbreak reports.

Stores reports in an append-only outbreak_reports table. The application
role should hold INSERT and SELECT only; no UPDATE or DELETE is issued.
Windows are computed relative to the application clock and days are
bucketed in UTC.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from cropwatch.shared.database import BaseRepository, ConnectionManager
from cropwatch.shared.models import (
    CellCount,
    Contact,
    DailyCellCount,
    DailyCount,
    Evidence,
    LabelCount,
    OutbreakReport,
    ReportSubmission,
)

from .config import OutbreakConfig
from .outbreak_repository import OutbreakRepository, new_report_id, utc_now

logger = logging.getLogger(__name__)

TABLE_NAME = "outbreak_reports"

SCHEMA_SQL = f"""
CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
    id           TEXT PRIMARY KEY,
    geohash5     CHAR(5) NOT NULL,
    crop         TEXT NOT NULL CHECK (crop IN ('rice', 'durian')),
    label        TEXT NOT NULL,
    confidence   DOUBLE PRECISION
                 CHECK (confidence IS NULL OR (confidence >= 0 AND confidence <= 1)),
    observed_at  TIMESTAMPTZ NOT NULL,
    source       TEXT NOT NULL CHECK (source IN ('scan', 'manual', 'partner')),
    photo_hash   TEXT,
    ticket_id    TEXT,
    co_op_id     TEXT,
    shop_id      TEXT,
    device_id    TEXT,
    field_id     TEXT,
    created_at   TIMESTAMPTZ NOT NULL DEFAULT now()
);
CREATE INDEX IF NOT EXISTS {TABLE_NAME}_cell_idx
    ON {TABLE_NAME} (geohash5, crop, observed_at);
"""

_CONFIDENCE_FILTER = "(confidence IS NULL OR confidence >= %s)"
_UTC_DAY = "to_char(observed_at AT TIME ZONE 'UTC', 'YYYY-MM-DD')"


class PostgresOutbreakRepository(BaseRepository[OutbreakReport], OutbreakRepository):
    """Table-backed implementation of the outbreak storage port."""

    def __init__(
        self,
        connection_manager: ConnectionManager,
        config: Optional[OutbreakConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize repository.

        Args:
            connection_manager: Database connection manager
            config: Engine configuration (threshold, top-label limit)
            clock: Source of "now" for window cutoffs
        """
        BaseRepository.__init__(self, connection_manager, TABLE_NAME)
        OutbreakRepository.__init__(self, config)
        self._clock = clock

    def create_schema(self) -> None:
        """Create the reports table and index if they do not exist."""
        self._execute(SCHEMA_SQL, commit=True)
        logger.info("OUTBREAK_SCHEMA_ENSURED", extra={"table_name": TABLE_NAME})

    def _entity_to_params(self, entity: OutbreakReport) -> Dict[str, Any]:
        evidence = entity.evidence or Evidence()
        contact = entity.contact or Contact()
        return {
            "id": entity.id,
            "geohash5": entity.geohash5,
            "crop": entity.crop.value,
            "label": entity.label,
            "confidence": entity.confidence,
            "observed_at": entity.observed_at,
            "source": entity.source.value,
            "photo_hash": evidence.photo_hash,
            "ticket_id": evidence.ticket_id,
            "co_op_id": contact.co_op_id,
            "shop_id": contact.shop_id,
            "device_id": entity.device_id,
            "field_id": entity.field_id,
        }

    def _cutoff(self, since: timedelta) -> datetime:
        return self._clock() - since

    def insert_report(self, submission: ReportSubmission) -> str:
        report_id = new_report_id()
        self.insert(OutbreakReport.from_submission(report_id, submission))

        logger.info(
            "OUTBREAK_REPORT_STORED_POSTGRES",
            extra={
                "report_id": report_id,
                "geohash5": submission.geohash5,
                "crop": submission.crop.value,
            }
        )
        return report_id

    def get_counts_by_day(self, geohash5, crop, since_hours, min_confidence=None):
        if min_confidence is None:
            min_confidence = self.config.min_confidence
        rows = self._execute(
            f"""
            SELECT {_UTC_DAY} AS day, COUNT(*)
              FROM {TABLE_NAME}
             WHERE geohash5 = %s AND crop = %s AND observed_at >= %s
               AND {_CONFIDENCE_FILTER}
             GROUP BY day
             ORDER BY day ASC
            """,
            (geohash5, crop.value, self._cutoff(timedelta(hours=since_hours)), min_confidence),
            fetch="all",
        )
        return [DailyCount(date=row[0], count=int(row[1])) for row in rows]

    def get_top_labels(self, geohash5, crop, since_hours, min_confidence):
        rows = self._execute(
            f"""
            SELECT label, COUNT(*) AS n
              FROM {TABLE_NAME}
             WHERE geohash5 = %s AND crop = %s AND observed_at >= %s
               AND {_CONFIDENCE_FILTER}
             GROUP BY label
             ORDER BY n DESC, label ASC
             LIMIT %s
            """,
            (
                geohash5,
                crop.value,
                self._cutoff(timedelta(hours=since_hours)),
                min_confidence,
                self.config.top_labels_limit,
            ),
            fetch="all",
        )
        return [LabelCount(label=row[0], count=int(row[1])) for row in rows]

    def get_total(self, geohash5, crop, since_hours, min_confidence):
        row = self._execute(
            f"""
            SELECT COUNT(*)
              FROM {TABLE_NAME}
             WHERE geohash5 = %s AND crop = %s AND observed_at >= %s
               AND {_CONFIDENCE_FILTER}
            """,
            (geohash5, crop.value, self._cutoff(timedelta(hours=since_hours)), min_confidence),
            fetch="one",
        )
        return int(row[0]) if row else 0

    def get_unique_fields(self, geohash5, crop, since_hours, min_confidence):
        row = self._execute(
            f"""
            SELECT COUNT(DISTINCT COALESCE(field_id, id))
              FROM {TABLE_NAME}
             WHERE geohash5 = %s AND crop = %s AND observed_at >= %s
               AND {_CONFIDENCE_FILTER}
            """,
            (geohash5, crop.value, self._cutoff(timedelta(hours=since_hours)), min_confidence),
            fetch="one",
        )
        return int(row[0]) if row else None

    def get_radar_buckets(self, geohashes, crop, since_hours, min_confidence):
        if not geohashes:
            return []
        rows = self._execute(
            f"""
            SELECT geohash5, COUNT(*)
              FROM {TABLE_NAME}
             WHERE geohash5 = ANY(%s) AND crop = %s AND observed_at >= %s
               AND {_CONFIDENCE_FILTER}
             GROUP BY geohash5
             ORDER BY geohash5
            """,
            (list(geohashes), crop.value, self._cutoff(timedelta(hours=since_hours)), min_confidence),
            fetch="all",
        )
        return [CellCount(geohash5=row[0], count=int(row[1])) for row in rows]

    def get_daily_cell_counts(self, geohashes, crop, days, min_confidence):
        if not geohashes:
            return []
        rows = self._execute(
            f"""
            SELECT geohash5, {_UTC_DAY} AS day, COUNT(*)
              FROM {TABLE_NAME}
             WHERE geohash5 = ANY(%s) AND crop = %s AND observed_at >= %s
               AND {_CONFIDENCE_FILTER}
             GROUP BY geohash5, day
             ORDER BY geohash5, day
            """,
            (list(geohashes), crop.value, self._cutoff(timedelta(days=days)), min_confidence),
            fetch="all",
        )
        return [
            DailyCellCount(geohash5=row[0], date=row[1], count=int(row[2]))
            for row in rows
        ]

    def health_check(self) -> Dict[str, Any]:
        return self.connection_manager.health_check()
