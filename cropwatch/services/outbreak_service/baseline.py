"""Per-cell baseline statistics over trailing daily counts.

The median is the lower middle order statistic, index (n - 1) // 2 of the
sorted daily counts, so even-length histories resolve to the smaller of
the two middle values. Sigma is the population standard deviation,
floored so the severity classifier stays defined for flat histories.

Baselines re-scan weeks of history, so the service keeps a short-lived
per-cell cache that also expires at the UTC day boundary.
"""
import logging
import statistics
import threading
import time
from datetime import date, datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from cropwatch.shared.models import BaselineStat, Crop, DailyCellCount

from .config import OutbreakConfig, SIGMA_FLOOR

logger = logging.getLogger(__name__)


def lower_median(counts: Sequence[int]) -> int:
    """Return the daily count at sorted index (n - 1) // 2.

    Raises:
        ValueError: If counts is empty
    """
    if not counts:
        raise ValueError("lower_median() requires at least one count")
    ordered = sorted(counts)
    return ordered[(len(ordered) - 1) // 2]


def floored_pstdev(counts: Sequence[int], floor: float = SIGMA_FLOOR) -> float:
    """Population standard deviation, never below floor."""
    if not counts:
        return floor
    return max(statistics.pstdev(counts), floor)


def compute_baseline_stats(
    rows: Iterable[DailyCellCount],
    sigma_floor: float = SIGMA_FLOOR,
) -> List[BaselineStat]:
    """Derive median and sigma per cell from per-day counts.

    Cells without rows produce no entry.

    Args:
        rows: One row per (cell, day) with at least one report
        sigma_floor: Minimum sigma

    Returns:
        BaselineStat per cell, ordered by geohash
    """
    by_cell: Dict[str, List[int]] = {}
    for row in rows:
        by_cell.setdefault(row.geohash5, []).append(row.count)

    return [
        BaselineStat(
            geohash5=cell,
            median=float(lower_median(counts)),
            sigma=floored_pstdev(counts, sigma_floor),
        )
        for cell, counts in sorted(by_cell.items())
    ]


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


class BaselineStatisticsService:
    """Serves per-cell baselines from the storage port with a TTL cache."""

    def __init__(
        self,
        repository,
        config: Optional[OutbreakConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        today: Callable[[], date] = _utc_today,
    ):
        """Initialize the service.

        Args:
            repository: Storage port providing get_baseline_stats()
            config: Engine configuration (TTL, baseline window, sigma floor)
            clock: Monotonic clock, injectable for tests
            today: Current UTC date, injectable for tests
        """
        self.repository = repository
        self.config = config or OutbreakConfig()
        self._clock = clock
        self._today = today
        self._lock = threading.Lock()
        # (geohash5, crop, days) -> (stat or None, expires_at, computed_on)
        self._cache: Dict[Tuple[str, Crop, int], Tuple[Optional[BaselineStat], float, date]] = {}

        logger.info(
            "BASELINE_SERVICE_INITIALIZED",
            extra={
                "baseline_days": self.config.baseline_days,
                "cache_ttl_seconds": self.config.baseline_cache_ttl_seconds,
            }
        )

    @property
    def cache_enabled(self) -> bool:
        return self.config.baseline_cache_ttl_seconds > 0

    def default_stat(self, geohash5: str) -> BaselineStat:
        """Baseline used for cells with no history."""
        return BaselineStat(geohash5=geohash5, median=0.0, sigma=self.config.sigma_floor)

    def get_stats(
        self,
        geohashes: Sequence[str],
        crop: Crop,
        days: Optional[int] = None,
    ) -> Dict[str, BaselineStat]:
        """Get baselines keyed by cell. Cells without history are absent.

        Args:
            geohashes: Cells to look up
            crop: Crop to filter on
            days: Trailing history (defaults to config.baseline_days)

        Returns:
            Mapping of geohash5 to BaselineStat
        """
        days = days or self.config.baseline_days
        cells = list(dict.fromkeys(geohashes))

        if not self.cache_enabled:
            stats = self.repository.get_baseline_stats(cells, crop, days)
            return {s.geohash5: s for s in stats}

        result: Dict[str, BaselineStat] = {}
        missing = []
        now = self._clock()
        today = self._today()
        with self._lock:
            for cell in cells:
                entry = self._cache.get((cell, crop, days))
                if entry is None or entry[1] <= now or entry[2] != today:
                    missing.append(cell)
                elif entry[0] is not None:
                    result[cell] = entry[0]

        logger.debug(
            "BASELINE_CACHE_LOOKUP",
            extra={
                "crop": crop.value,
                "requested": len(cells),
                "misses": len(missing),
            }
        )

        if missing:
            fetched = {
                s.geohash5: s
                for s in self.repository.get_baseline_stats(missing, crop, days)
            }
            stored_at = self._clock()
            expires_at = stored_at + self.config.baseline_cache_ttl_seconds
            with self._lock:
                self._evict(stored_at, today)
                for cell in missing:
                    stat = fetched.get(cell)
                    key = (cell, crop, days)
                    # Re-insert so dict order stays oldest-first
                    self._cache.pop(key, None)
                    self._cache[key] = (stat, expires_at, today)
                    if stat is not None:
                        result[cell] = stat
                self._trim()

        return result

    def _evict(self, now: float, today: date) -> None:
        """Drop expired and previous-day entries. Caller holds the lock."""
        stale = [
            key for key, (_, expires_at, computed_on) in self._cache.items()
            if expires_at <= now or computed_on != today
        ]
        for key in stale:
            del self._cache[key]

    def _trim(self) -> None:
        """Enforce the entry cap, oldest first. Caller holds the lock."""
        excess = len(self._cache) - self.config.baseline_cache_max_entries
        if excess > 0:
            for key in list(self._cache)[:excess]:
                del self._cache[key]

    @property
    def cache_size(self) -> int:
        with self._lock:
            return len(self._cache)

    def invalidate(self) -> None:
        """Drop every cached baseline."""
        with self._lock:
            self._cache.clear()
        logger.info("BASELINE_CACHE_INVALIDATED")
