"""Report acceptance policy.

Every report that passes validation is persisted, including low-confidence
scans kept for audit and model training. Those are excluded from all
aggregates by the storage port's confidence filter, so the status returned
here is informational: it is derived, never stored.

Policy:
- scan with confidence below threshold -> pending_review
- manual without a photo hash          -> pending_review
- anything else                        -> queued
"""
import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Union

from cropwatch.shared.models import (
    Contact,
    Crop,
    Evidence,
    ReportSource,
    ReportStatus,
    ReportSubmission,
    SubmissionResult,
    ValidationError,
)
from cropwatch.shared.utils import hash_optional_pii, is_valid_geohash
from cropwatch.shared.utils.geohash import normalize as normalize_geohash

from .config import OutbreakConfig
from .outbreak_repository import OutbreakRepository

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("crop", "label", "geohash5", "observed_at", "source")


def _parse_enum(enum_cls, value: Any, field_name: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        allowed = [member.value for member in enum_cls]
        raise ValidationError(
            f"Invalid {field_name} {value!r}, expected one of {allowed}",
            fields=[field_name],
        )


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValidationError(
                f"observed_at must be an ISO-8601 timestamp, got {value!r}",
                fields=["observed_at"],
            )
    else:
        raise ValidationError("observed_at must be an ISO-8601 timestamp", fields=["observed_at"])

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _parse_confidence(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValidationError("confidence must be a number", fields=["confidence"])
    try:
        return float(value)
    except ValueError:
        raise ValidationError(f"confidence must be a number, got {value!r}", fields=["confidence"])


def _parse_optional_object(value: Any, cls, field_name: str):
    if value is None or isinstance(value, cls):
        return value
    if not isinstance(value, Mapping):
        raise ValidationError(f"{field_name} must be an object", fields=[field_name])
    known = {name: value.get(name) for name in cls.__dataclass_fields__}
    if all(v is None for v in known.values()):
        return None
    return cls(**known)


def parse_submission(payload: Mapping[str, Any]) -> ReportSubmission:
    """Validate a report submission payload.

    Args:
        payload: Mapping shaped like the report submission request

    Returns:
        ReportSubmission ready to insert

    Raises:
        ValidationError: If a required field is missing or a value is malformed
    """
    missing = [
        name for name in REQUIRED_FIELDS
        if payload.get(name) is None or (isinstance(payload.get(name), str) and not payload[name].strip())
    ]
    if missing:
        raise ValidationError(f"Missing required fields: {missing}", fields=missing)

    geohash5 = normalize_geohash(str(payload["geohash5"]))
    if not is_valid_geohash(geohash5):
        raise ValidationError(
            f"geohash5 must be a 5-character geohash, got {payload['geohash5']!r}",
            fields=["geohash5"],
        )

    return ReportSubmission(
        geohash5=geohash5,
        crop=_parse_enum(Crop, payload["crop"], "crop"),
        label=str(payload["label"]).strip(),
        observed_at=_parse_timestamp(payload["observed_at"]),
        source=_parse_enum(ReportSource, payload["source"], "source"),
        confidence=_parse_confidence(payload.get("confidence")),
        evidence=_parse_optional_object(payload.get("evidence"), Evidence, "evidence"),
        contact=_parse_optional_object(payload.get("contact"), Contact, "contact"),
        device_id=payload.get("device_id"),
        field_id=payload.get("field_id"),
    )


class ReportAcceptancePolicy:
    """Validates, classifies and stores incoming outbreak reports."""

    def __init__(
        self,
        repository: OutbreakRepository,
        config: Optional[OutbreakConfig] = None,
    ):
        """Initialize policy.

        Args:
            repository: Storage port receiving the insert
            config: Engine configuration (confidence threshold)
        """
        self.repository = repository
        self.config = config or OutbreakConfig()

    def classify(self, submission: ReportSubmission) -> ReportStatus:
        """Decide the acceptance status for a validated submission."""
        if submission.source == ReportSource.SCAN:
            confidence = submission.confidence if submission.confidence is not None else 0.0
            if confidence < self.config.min_confidence:
                return ReportStatus.PENDING_REVIEW
        elif submission.source == ReportSource.MANUAL and not submission.photo_hash:
            return ReportStatus.PENDING_REVIEW
        return ReportStatus.QUEUED

    def submit(
        self,
        report: Union[ReportSubmission, Mapping[str, Any]],
    ) -> SubmissionResult:
        """Validate and persist a report.

        Args:
            report: Validated submission or raw payload

        Returns:
            SubmissionResult with the generated id and status

        Raises:
            ValidationError: Before any storage call, if the payload is invalid
            RuntimeError: Before any storage call, if the PII salt is not configured
        """
        submission = report if isinstance(report, ReportSubmission) else parse_submission(report)
        status = self.classify(submission)
        device_id_hash = hash_optional_pii(submission.device_id)
        field_id_hash = hash_optional_pii(submission.field_id)
        report_id = self.repository.insert_report(submission)

        logger.info(
            "OUTBREAK_REPORT_ACCEPTED",
            extra={
                "report_id": report_id,
                "status": status.value,
                "source": submission.source.value,
                "crop": submission.crop.value,
                "geohash5": submission.geohash5,
                "device_id_hash": device_id_hash,
                "field_id_hash": field_id_hash,
            }
        )
        return SubmissionResult(id=report_id, status=status)
