"""Identifier hashing for crowd-sourced outbreak reports.

Device and field identifiers can be joined back to an individual farm, so
they are hashed before they reach application logs.
"""
import hashlib
import logging
from typing import Optional

logger = logging.getLogger(__name__)


# Loaded from the environment or Secrets Manager at startup
_PII_SALT: Optional[str] = None

MIN_SALT_LENGTH = 32


def configure_pii_salt(salt: str) -> None:
    """Configure the identifier hashing salt.

    Must be called during application startup before any hashing.

    Args:
        salt: Secret salt value

    Raises:
        ValueError: If salt is empty or too short
    """
    global _PII_SALT
    if not salt or len(salt) < MIN_SALT_LENGTH:
        logger.critical(
            "PII_SALT_CONFIGURATION_FAILED",
            extra={"reason": "Salt too short or empty", "min_length": MIN_SALT_LENGTH}
        )
        raise ValueError(f"PII salt must be at least {MIN_SALT_LENGTH} characters")

    _PII_SALT = salt
    logger.info("PII_SALT_CONFIGURED", extra={"salt_length": len(salt)})


def hash_pii(value: str) -> str:
    """Hash a farm-identifying value for safe logging.

    Uses SHA-256 with a secret salt so the same device or field always
    maps to the same opaque token.

    Args:
        value: The identifier to hash (device id, field id, ...)

    Returns:
        64-char hex digest

    Raises:
        RuntimeError: If the salt has not been configured
    """
    if _PII_SALT is None:
        logger.critical(
            "PII_HASH_FAILED",
            extra={"reason": "Salt not configured", "action": "call configure_pii_salt()"}
        )
        raise RuntimeError("PII salt not configured. Call configure_pii_salt() first.")

    salted = f"{_PII_SALT}{value}"
    return hashlib.sha256(salted.encode()).hexdigest()


def hash_optional_pii(value: Optional[str]) -> Optional[str]:
    """Hash an optional identifier, passing None through."""
    if value is None:
        return None
    return hash_pii(value)
