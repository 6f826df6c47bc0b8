"""Geohash encoding for coarse outbreak cells.

Reports are stored against a 5-character geohash (roughly 4.9 km x 4.9 km)
so that a single farm cannot be singled out from the cell it reports in.
"""
from typing import Optional

BASE32 = "0123456789bcdefghjkmnpqrstuvwxyz"
_BASE32_SET = frozenset(BASE32)

CELL_PRECISION = 5


def encode(latitude: float, longitude: float, precision: int = CELL_PRECISION) -> str:
    """Encode a coordinate pair into a geohash string.

    Args:
        latitude: Latitude in degrees, -90..90
        longitude: Longitude in degrees, -180..180
        precision: Number of characters in the result

    Returns:
        Geohash of the requested precision

    Raises:
        ValueError: If the coordinates are out of range
    """
    if not -90.0 <= latitude <= 90.0:
        raise ValueError(f"Latitude must be -90..90, got {latitude}")
    if not -180.0 <= longitude <= 180.0:
        raise ValueError(f"Longitude must be -180..180, got {longitude}")
    if precision < 1:
        raise ValueError(f"Precision must be positive, got {precision}")

    lat_range = [-90.0, 90.0]
    lon_range = [-180.0, 180.0]
    chars = []
    bits = 0
    bit_count = 0
    even = True  # longitude first

    while len(chars) < precision:
        if even:
            mid = (lon_range[0] + lon_range[1]) / 2
            if longitude >= mid:
                bits = (bits << 1) | 1
                lon_range[0] = mid
            else:
                bits = bits << 1
                lon_range[1] = mid
        else:
            mid = (lat_range[0] + lat_range[1]) / 2
            if latitude >= mid:
                bits = (bits << 1) | 1
                lat_range[0] = mid
            else:
                bits = bits << 1
                lat_range[1] = mid
        even = not even
        bit_count += 1

        if bit_count == 5:
            chars.append(BASE32[bits])
            bits = 0
            bit_count = 0

    return "".join(chars)


def normalize(value: Optional[str]) -> Optional[str]:
    """Strip and lower-case a geohash, passing None through."""
    if value is None:
        return None
    return value.strip().lower()


def is_valid_geohash(value: Optional[str], precision: int = CELL_PRECISION) -> bool:
    """Check that a value is a geohash of exactly the given precision."""
    if not isinstance(value, str) or len(value) != precision:
        return False
    return all(ch in _BASE32_SET for ch in value.lower())
