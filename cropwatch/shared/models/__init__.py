"""Shared domain models for CropWatch services."""
from .outbreak import (
    ValidationError,
    Crop,
    ReportSource,
    ReportStatus,
    Severity,
    Evidence,
    Contact,
    ReportSubmission,
    OutbreakReport,
    SubmissionResult,
    DailyCount,
    LabelCount,
    CellCount,
    DailyCellCount,
    BaselineStat,
    ConfidenceInfo,
    OutbreakResponse,
    RadarBucket,
    RadarResponse,
)

__all__ = [
    "ValidationError",
    "Crop",
    "ReportSource",
    "ReportStatus",
    "Severity",
    "Evidence",
    "Contact",
    "ReportSubmission",
    "OutbreakReport",
    "SubmissionResult",
    "DailyCount",
    "LabelCount",
    "CellCount",
    "DailyCellCount",
    "BaselineStat",
    "ConfidenceInfo",
    "OutbreakResponse",
    "RadarBucket",
    "RadarResponse",
]
