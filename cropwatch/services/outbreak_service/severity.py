"""Severity classification against a cell's baseline."""
from cropwatch.shared.models import Severity

from .config import SIGMA_BANDS, SigmaBands


def classify_severity(
    count: float,
    median: float,
    sigma: float,
    bands: SigmaBands = SIGMA_BANDS,
) -> Severity:
    """Map current activity to a severity band.

    Args:
        count: Reports in the current window
        median: Baseline median of daily counts
        sigma: Baseline standard deviation (already floored)
        bands: Multipliers for the rising and surging thresholds

    Returns:
        SURGING above median + surging*sigma, RISING above
        median + rising*sigma, otherwise STABLE
    """
    if count > median + bands.surging * sigma:
        return Severity.SURGING
    if count > median + bands.rising * sigma:
        return Severity.RISING
    return Severity.STABLE
