"""Outbreak report and aggregate domain models.

Reports are immutable observations; every aggregate below is recomputed
on demand and never persisted.
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class ValidationError(Exception):
    """Submitted report is missing a required field or is malformed."""

    def __init__(self, message: str, fields: Optional[List[str]] = None):
        super().__init__(message)
        self.fields = fields or []


class Crop(Enum):
    """Crops the outbreak radar tracks."""
    RICE = "rice"
    DURIAN = "durian"


class ReportSource(Enum):
    """Where a report came from. Drives the acceptance policy."""
    SCAN = "scan"           # Camera scan, carries model confidence
    MANUAL = "manual"       # Farmer-entered, no confidence
    PARTNER = "partner"     # Co-op or shop submitted


class ReportStatus(Enum):
    """Acceptance status returned to the submitter. Derived, not stored."""
    QUEUED = "queued"
    PENDING_REVIEW = "pending_review"


class Severity(Enum):
    """Radar severity band relative to a cell's own baseline."""
    STABLE = "stable"
    RISING = "rising"
    SURGING = "surging"


@dataclass(frozen=True)
class Evidence:
    """Supporting artifact references."""
    photo_hash: Optional[str] = None
    ticket_id: Optional[str] = None


@dataclass(frozen=True)
class Contact:
    """Attribution for partner-sourced reports."""
    co_op_id: Optional[str] = None
    shop_id: Optional[str] = None


@dataclass(frozen=True)
class ReportSubmission:
    """A validated candidate report that has not been assigned an id yet."""
    geohash5: str
    crop: Crop
    label: str
    observed_at: datetime
    source: ReportSource
    confidence: Optional[float] = None
    evidence: Optional[Evidence] = None
    contact: Optional[Contact] = None
    device_id: Optional[str] = None
    field_id: Optional[str] = None

    def __post_init__(self):
        if self.confidence is not None and not 0.0 <= self.confidence <= 1.0:
            raise ValidationError(
                f"Confidence must be 0.0-1.0, got {self.confidence}",
                fields=["confidence"],
            )

    @property
    def photo_hash(self) -> Optional[str]:
        return self.evidence.photo_hash if self.evidence else None


@dataclass(frozen=True)
class OutbreakReport:
    """A stored observation. Never mutated or deleted once inserted."""
    id: str
    geohash5: str
    crop: Crop
    label: str
    observed_at: datetime
    source: ReportSource
    confidence: Optional[float] = None
    evidence: Optional[Evidence] = None
    contact: Optional[Contact] = None
    device_id: Optional[str] = None
    field_id: Optional[str] = None

    @classmethod
    def from_submission(cls, report_id: str, submission: ReportSubmission) -> "OutbreakReport":
        return cls(
            id=report_id,
            geohash5=submission.geohash5,
            crop=submission.crop,
            label=submission.label,
            observed_at=submission.observed_at,
            source=submission.source,
            confidence=submission.confidence,
            evidence=submission.evidence,
            contact=submission.contact,
            device_id=submission.device_id,
            field_id=submission.field_id,
        )

    def passes_confidence(self, min_confidence: float) -> bool:
        """Manual and partner reports carry no confidence and always count."""
        return self.confidence is None or self.confidence >= min_confidence


@dataclass(frozen=True)
class SubmissionResult:
    """Outcome of a report submission."""
    id: str
    status: ReportStatus

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "status": self.status.value}


@dataclass(frozen=True)
class DailyCount:
    """Reports observed on one UTC day."""
    date: str               # YYYY-MM-DD
    count: int


@dataclass(frozen=True)
class LabelCount:
    label: str
    count: int


@dataclass(frozen=True)
class CellCount:
    geohash5: str
    count: int


@dataclass(frozen=True)
class DailyCellCount:
    """Per-cell, per-day count used to build baselines."""
    geohash5: str
    date: str
    count: int


@dataclass(frozen=True)
class BaselineStat:
    """Historical median and spread of a cell's daily counts."""
    geohash5: str
    median: float
    sigma: float


@dataclass(frozen=True)
class ConfidenceInfo:
    """Privacy and filtering metadata attached to every single-cell aggregate."""
    k_anonymity: bool
    min_confidence: float


@dataclass(frozen=True)
class OutbreakResponse:
    """Single-cell outbreak summary over a time window."""
    geohash5: str
    crop: Crop
    window_hours: int
    total_reports: int
    unique_fields: Optional[int]
    top_labels: List[LabelCount]
    trend: List[DailyCount]
    confidence: ConfidenceInfo
    last_updated: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "geohash5": self.geohash5,
            "crop": self.crop.value,
            "window_hours": self.window_hours,
            "total_reports": self.total_reports,
            "unique_fields": self.unique_fields,
            "top_labels": [{"label": t.label, "count": t.count} for t in self.top_labels],
            "trend": [{"date": p.date, "count": p.count} for p in self.trend],
            "confidence": {
                "k_anonymity": self.confidence.k_anonymity,
                "min_confidence": self.confidence.min_confidence,
            },
            "last_updated": self.last_updated.isoformat(),
        }


@dataclass(frozen=True)
class RadarBucket:
    """One cell on the radar overlay."""
    geohash5: str
    count: int
    severity: Severity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "geohash5": self.geohash5,
            "count": self.count,
            "severity": self.severity.value,
        }


@dataclass(frozen=True)
class RadarResponse:
    """Multi-cell radar overlay with its display legend."""
    buckets: List[RadarBucket]
    legend: Dict[str, str]
    since_hours: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "buckets": [b.to_dict() for b in self.buckets],
            "legend": dict(self.legend),
            "since_hours": self.since_hours,
        }
