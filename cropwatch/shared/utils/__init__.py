"""Shared utilities for CropWatch services."""
from .pii import hash_pii, hash_optional_pii, configure_pii_salt
from .geohash import encode as encode_geohash, is_valid_geohash

__all__ = [
    "hash_pii",
    "hash_optional_pii",
    "configure_pii_salt",
    "encode_geohash",
    "is_valid_geohash",
]
