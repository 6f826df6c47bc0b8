"""Outbreak Service: Crowd-sourced disease radar with privacy gating.

Ingests crop-disease observations tagged with a coarse geohash5 cell and
answers two questions:
- Is disease activity in a cell anomalous relative to its own history?
- Can the aggregate be shown without breaking k-anonymity (k >= 3)?

This service provides:
- Report acceptance policy (validation, pending_review vs queued)
- Windowed, confidence-filtered single-cell aggregation
- Per-cell baseline statistics (lower median, population sigma)
- Severity classification (stable, rising, surging)
- Multi-cell radar overlay
- K-anonymity redaction at the HTTP boundary

Endpoints:
- GET /health - Health check
- GET /ready - Readiness check
- GET /outbreaks - Single-cell summary
- GET /outbreaks/radar - Radar overlay
- POST /outbreaks/report - Submit a report
"""

from .config import OutbreakConfig, SigmaBands, SIGMA_BANDS, RADAR_LEGEND
from .severity import classify_severity
from .baseline import BaselineStatisticsService, compute_baseline_stats, lower_median
from .outbreak_repository import OutbreakRepository, InMemoryOutbreakRepository
from .postgres_repository import PostgresOutbreakRepository
from .acceptance import ReportAcceptancePolicy, parse_submission
from .aggregation import AggregationService
from .radar import RadarAssembler
from .k_anonymity import KAnonymityEnforcer, AggregateResult
from .handler import OutbreakHandler, app

__all__ = [
    "OutbreakConfig",
    "SigmaBands",
    "SIGMA_BANDS",
    "RADAR_LEGEND",
    "classify_severity",
    "BaselineStatisticsService",
    "compute_baseline_stats",
    "lower_median",
    "OutbreakRepository",
    "InMemoryOutbreakRepository",
    "PostgresOutbreakRepository",
    "ReportAcceptancePolicy",
    "parse_submission",
    "AggregationService",
    "RadarAssembler",
    "KAnonymityEnforcer",
    "AggregateResult",
    "OutbreakHandler",
    "app",
]
