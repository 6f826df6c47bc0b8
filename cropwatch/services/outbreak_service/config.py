"""Outbreak engine configuration.

Module constants are the defaults. Services receive an OutbreakConfig at
construction; from_env() builds one from OUTBREAK_* variables.
"""
import os
from dataclasses import dataclass, field
from typing import Dict

# Minimum scan confidence for a report to count toward aggregates
MIN_CONFIDENCE = 0.75

# Default aggregation window
WINDOW_HOURS_DEFAULT = 72

# Longest window a caller may request (90 days)
MAX_WINDOW_HOURS = 24 * 90

# Minimum group size before an aggregate may be shown
K_ANON = 3

# Trailing history used for per-cell baselines
BASELINE_DAYS = 30

# Keeps the classifier defined for cells with no variance
SIGMA_FLOOR = 1e-6

TOP_LABELS_LIMIT = 5

# Seconds a cell's baseline may be served from cache
BASELINE_CACHE_TTL_SECONDS = 900

# Upper bound on cached (cell, crop, window) baselines
BASELINE_CACHE_MAX_ENTRIES = 10000

# Display hint shipped with every radar response
RADAR_LEGEND: Dict[str, str] = {
    "stable": "#A0D468",
    "rising": "#FFCE54",
    "surging": "#ED5565",
}


@dataclass(frozen=True)
class SigmaBands:
    """Standard-deviation multipliers above the median for each band."""
    rising: float = 1.0
    surging: float = 2.0

    def __post_init__(self):
        if self.rising < 0 or self.surging < self.rising:
            raise ValueError(
                f"Sigma bands must satisfy 0 <= rising <= surging, "
                f"got rising={self.rising} surging={self.surging}"
            )


SIGMA_BANDS = SigmaBands()


@dataclass(frozen=True)
class OutbreakConfig:
    """Tunable policy for the outbreak engine."""
    min_confidence: float = MIN_CONFIDENCE
    window_hours_default: int = WINDOW_HOURS_DEFAULT
    max_window_hours: int = MAX_WINDOW_HOURS
    k_anon: int = K_ANON
    sigma_bands: SigmaBands = field(default_factory=SigmaBands)
    baseline_days: int = BASELINE_DAYS
    sigma_floor: float = SIGMA_FLOOR
    top_labels_limit: int = TOP_LABELS_LIMIT
    baseline_cache_ttl_seconds: int = BASELINE_CACHE_TTL_SECONDS
    baseline_cache_max_entries: int = BASELINE_CACHE_MAX_ENTRIES

    def __post_init__(self):
        if not 0.0 <= self.min_confidence <= 1.0:
            raise ValueError(f"min_confidence must be 0.0-1.0, got {self.min_confidence}")
        if self.k_anon < 1:
            raise ValueError(f"k_anon must be at least 1, got {self.k_anon}")
        if self.window_hours_default <= 0 or self.baseline_days <= 0:
            raise ValueError("Windows must be positive")
        if self.max_window_hours < self.window_hours_default:
            raise ValueError(
                f"max_window_hours ({self.max_window_hours}) is below the default window "
                f"({self.window_hours_default})"
            )
        if self.sigma_floor <= 0:
            raise ValueError(f"sigma_floor must be positive, got {self.sigma_floor}")
        if self.baseline_cache_max_entries < 1:
            raise ValueError(
                f"baseline_cache_max_entries must be at least 1, got {self.baseline_cache_max_entries}"
            )

    @classmethod
    def from_env(cls) -> "OutbreakConfig":
        """Create config from environment variables.

        Environment variables:
            OUTBREAK_MIN_CONFIDENCE: Confidence threshold (default 0.75)
            OUTBREAK_WINDOW_HOURS: Default window (default 72)
            OUTBREAK_MAX_WINDOW_HOURS: Longest accepted window (default 2160)
            OUTBREAK_K_ANON: Minimum group size (default 3)
            OUTBREAK_SIGMA_RISING: Rising band multiplier (default 1.0)
            OUTBREAK_SIGMA_SURGING: Surging band multiplier (default 2.0)
            OUTBREAK_BASELINE_DAYS: Baseline history (default 30)
            OUTBREAK_BASELINE_CACHE_TTL: Cache TTL in seconds, 0 disables (default 900)
            OUTBREAK_BASELINE_CACHE_MAX_ENTRIES: Cache size cap (default 10000)
        """
        return cls(
            min_confidence=float(os.getenv("OUTBREAK_MIN_CONFIDENCE", str(MIN_CONFIDENCE))),
            window_hours_default=int(os.getenv("OUTBREAK_WINDOW_HOURS", str(WINDOW_HOURS_DEFAULT))),
            max_window_hours=int(os.getenv("OUTBREAK_MAX_WINDOW_HOURS", str(MAX_WINDOW_HOURS))),
            k_anon=int(os.getenv("OUTBREAK_K_ANON", str(K_ANON))),
            sigma_bands=SigmaBands(
                rising=float(os.getenv("OUTBREAK_SIGMA_RISING", "1.0")),
                surging=float(os.getenv("OUTBREAK_SIGMA_SURGING", "2.0")),
            ),
            baseline_days=int(os.getenv("OUTBREAK_BASELINE_DAYS", str(BASELINE_DAYS))),
            baseline_cache_ttl_seconds=int(
                os.getenv("OUTBREAK_BASELINE_CACHE_TTL", str(BASELINE_CACHE_TTL_SECONDS))
            ),
            baseline_cache_max_entries=int(
                os.getenv("OUTBREAK_BASELINE_CACHE_MAX_ENTRIES", str(BASELINE_CACHE_MAX_ENTRIES))
            ),
        )
