"""K-anonymity gate for outbreak aggregates.

The engine only computes the k-anonymity signal. Redaction happens here,
at the render boundary, before anything reaches an end user:

- single cell: top_labels and trend are blanked below K reports
- radar: a bucket below K loses its count and is shown as stable
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, TypeVar

from cropwatch.shared.models import OutbreakResponse, RadarResponse, Severity

from .config import K_ANON

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass(frozen=True)
class AggregateResult(Generic[T]):
    """Result of a k-anonymity check.

    Attributes:
        data: The aggregated data (None if suppressed)
        group_size: Number of reports behind the aggregate
        suppressed: True if data was suppressed
        suppression_reason: Explanation if suppressed
    """
    data: Optional[T]
    group_size: int
    suppressed: bool
    suppression_reason: Optional[str] = None


class KAnonymityEnforcer:
    """Suppresses aggregates built from fewer than k reports."""

    def __init__(self, k_threshold: int = K_ANON):
        """Initialize enforcer.

        Args:
            k_threshold: Minimum group size (default 3)
        """
        self.k_threshold = k_threshold

        logger.info(
            "K_ANONYMITY_ENFORCER_INITIALIZED",
            extra={"k_threshold": k_threshold}
        )

    def check_and_suppress(
        self,
        data: T,
        group_size: int,
        context: Optional[str] = None,
    ) -> AggregateResult[T]:
        """Check group size and suppress if below threshold.

        Args:
            data: The aggregated data to potentially suppress
            group_size: Number of reports in the group
            context: Description of the query for logging

        Returns:
            AggregateResult with data or suppression info
        """
        if group_size < self.k_threshold:
            logger.info(
                "K_ANONYMITY_SUPPRESSED",
                extra={
                    "group_size": group_size,
                    "k_threshold": self.k_threshold,
                    "context": context,
                }
            )
            return AggregateResult(
                data=None,
                group_size=group_size,
                suppressed=True,
                suppression_reason=(
                    f"Group size ({group_size}) below k-anonymity "
                    f"threshold ({self.k_threshold})"
                ),
            )

        return AggregateResult(
            data=data,
            group_size=group_size,
            suppressed=False,
        )

    def redact_outbreak(self, response: OutbreakResponse) -> Dict[str, Any]:
        """Render a single-cell response, blanking detail below k.

        The engine's own k_anonymity flag is trusted so the rendered
        response never disagrees with it.
        """
        payload = response.to_dict()
        if not response.confidence.k_anonymity:
            logger.info(
                "K_ANONYMITY_SUPPRESSED",
                extra={
                    "group_size": response.total_reports,
                    "k_threshold": self.k_threshold,
                    "context": f"outbreak:{response.geohash5}",
                }
            )
            payload["top_labels"] = []
            payload["trend"] = []
        return payload

    def redact_radar(self, response: RadarResponse) -> Dict[str, Any]:
        """Render a radar response, hiding counts and severity below k."""
        payload = response.to_dict()
        rendered = []
        for bucket in response.buckets:
            result = self.check_and_suppress(
                data=bucket.to_dict(),
                group_size=bucket.count,
                context=f"radar:{bucket.geohash5}",
            )
            if result.suppressed:
                rendered.append({
                    "geohash5": bucket.geohash5,
                    "count": None,
                    "severity": Severity.STABLE.value,
                    "suppressed": True,
                })
            else:
                rendered.append({**result.data, "suppressed": False})
        payload["buckets"] = rendered
        return payload

