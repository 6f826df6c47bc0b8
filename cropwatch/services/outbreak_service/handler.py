"""Outbreak Service HTTP handler - Radar and report endpoints.

This is the render boundary: aggregates computed by the engine are passed
through the k-anonymity gate here before being returned.

Endpoints:
- GET /health - Health check
- GET /ready - Readiness check (includes storage health)
- GET /outbreaks - Single-cell outbreak summary
- GET /outbreaks/radar - Multi-cell severity overlay
- POST /outbreaks/report - Submit an outbreak report
"""
import logging
import os
from typing import Any, Dict, List, Optional

from flask import Flask, request, jsonify

from cropwatch.shared.database import ConnectionManager, DatabaseConfig, RepositoryError
from cropwatch.shared.models import Crop, ReportSource, ValidationError
from cropwatch.shared.utils import configure_pii_salt, encode_geohash, is_valid_geohash
from cropwatch.shared.utils.geohash import normalize as normalize_geohash

from .acceptance import ReportAcceptancePolicy
from .aggregation import AggregationService
from .baseline import BaselineStatisticsService
from .config import OutbreakConfig
from .k_anonymity import KAnonymityEnforcer
from .outbreak_repository import InMemoryOutbreakRepository, OutbreakRepository
from .postgres_repository import PostgresOutbreakRepository
from .radar import RadarAssembler

logger = logging.getLogger(__name__)

app = Flask(__name__)

# Configure PII salt
pii_salt = os.getenv("PII_HASH_SALT", "default_dev_salt_change_in_production_32chars")
configure_pii_salt(pii_salt)


def create_repository(config: Optional[OutbreakConfig] = None) -> OutbreakRepository:
    """Build the storage port selected by OUTBREAK_STORAGE.

    Environment variables:
        OUTBREAK_STORAGE: "memory" (default) or "postgres"
        DB_SECRET_ARN: Load database credentials from Secrets Manager
        AWS_REGION: Region for Secrets Manager (default us-east-1)
    """
    backend = os.getenv("OUTBREAK_STORAGE", "memory").lower()

    if backend == "memory":
        return InMemoryOutbreakRepository(config)

    if backend == "postgres":
        secret_arn = os.getenv("DB_SECRET_ARN")
        if secret_arn:
            db_config = DatabaseConfig.from_secrets_manager(
                secret_arn, region=os.getenv("AWS_REGION", "us-east-1")
            )
        else:
            db_config = DatabaseConfig.from_env()
        manager = ConnectionManager(db_config)
        manager.initialize()
        return PostgresOutbreakRepository(manager, config)

    raise ValueError(f"Unknown OUTBREAK_STORAGE backend: {backend}")


class OutbreakHandler:
    """Wires the outbreak engine together for the HTTP layer."""

    def __init__(
        self,
        repository: Optional[OutbreakRepository] = None,
        config: Optional[OutbreakConfig] = None,
        k_enforcer: Optional[KAnonymityEnforcer] = None,
    ):
        """Initialize handler with dependencies.

        Args:
            repository: Storage port (defaults to create_repository())
            config: Engine configuration
            k_enforcer: K-anonymity gate (injected for testing)
        """
        self.config = config or OutbreakConfig()
        self.repository = repository or create_repository(self.config)
        self.baseline_service = BaselineStatisticsService(self.repository, self.config)
        self.acceptance = ReportAcceptancePolicy(self.repository, self.config)
        self.aggregation = AggregationService(self.repository, self.config)
        self.radar = RadarAssembler(self.repository, self.config, self.baseline_service)
        self.k_enforcer = k_enforcer or KAnonymityEnforcer(k_threshold=self.config.k_anon)

        logger.info(
            "OUTBREAK_HANDLER_INITIALIZED",
            extra={
                "backend": type(self.repository).__name__,
                "k_threshold": self.config.k_anon,
                "min_confidence": self.config.min_confidence,
            }
        )

    def get_outbreaks(
        self,
        geohash5: str,
        crop: Crop,
        since_hours: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Single-cell summary, redacted below k."""
        response = self.aggregation.get_outbreaks(geohash5, crop, since_hours)
        return self.k_enforcer.redact_outbreak(response)

    def get_radar(
        self,
        geohashes: List[str],
        crop: Crop,
        since_hours: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Radar overlay, redacted below k."""
        response = self.radar.get_radar(geohashes, crop, since_hours)
        return self.k_enforcer.redact_radar(response)

    def submit_report(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Validate and store a report."""
        return self.acceptance.submit(payload).to_dict()


# Global handler instance
_handler: Optional[OutbreakHandler] = None


def get_handler() -> OutbreakHandler:
    """Get or create the global handler instance."""
    global _handler
    if _handler is None:
        _handler = OutbreakHandler(config=OutbreakConfig.from_env())
    return _handler


def set_handler(handler: OutbreakHandler) -> None:
    """Set the global handler (for testing)."""
    global _handler
    _handler = handler


def _parse_crop(value: Optional[str]) -> Crop:
    try:
        return Crop(str(value).strip().lower())
    except ValueError:
        raise ValidationError(f"Invalid crop {value!r}", fields=["crop"])


def _parse_cell(value: str) -> str:
    cell = normalize_geohash(value)
    if not is_valid_geohash(cell):
        raise ValidationError(f"Invalid geohash5 {value!r}", fields=["geohash5"])
    return cell


def _parse_since_hours(value: Optional[str], max_hours: int) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        hours = int(value)
    except ValueError:
        raise ValidationError(f"since_hours must be an integer, got {value!r}", fields=["since_hours"])
    if hours <= 0:
        raise ValidationError("since_hours must be positive", fields=["since_hours"])
    if hours > max_hours:
        raise ValidationError(
            f"since_hours may not exceed {max_hours}", fields=["since_hours"]
        )
    return hours


def _coarsen_location(data: Dict[str, Any]) -> Dict[str, Any]:
    """Replace raw lat/lon with a geohash5 cell. Coordinates are dropped."""
    payload = {k: v for k, v in data.items() if k not in ("lat", "lon")}
    if payload.get("geohash5") or data.get("lat") is None or data.get("lon") is None:
        return payload
    try:
        payload["geohash5"] = encode_geohash(float(data["lat"]), float(data["lon"]))
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid location: {e}", fields=["lat", "lon"])
    return payload


def _validation_response(e: ValidationError):
    return jsonify({"error": str(e), "fields": e.fields}), 400


@app.route("/health", methods=["GET"])
def health():
    """Health check endpoint."""
    return jsonify({"status": "healthy", "service": "outbreak-service"}), 200


@app.route("/ready", methods=["GET"])
def ready():
    """Readiness check endpoint."""
    storage = get_handler().repository.health_check()
    if not storage.get("healthy"):
        return jsonify({"status": "not_ready", "storage": storage}), 503
    return jsonify({"status": "ready", "service": "outbreak-service", "storage": storage}), 200


@app.route("/outbreaks", methods=["GET"])
def outbreaks():
    """Get the outbreak summary for one cell.

    Query params:
        geohash5: Required - Cell identifier
        crop: Required - rice or durian
        since_hours: Optional - Window length (default 72)
    """
    geohash5 = request.args.get("geohash5")
    crop = request.args.get("crop")
    if not geohash5 or not crop:
        return jsonify({"error": "geohash5 & crop required"}), 400

    try:
        handler = get_handler()
        result = handler.get_outbreaks(
            geohash5=_parse_cell(geohash5),
            crop=_parse_crop(crop),
            since_hours=_parse_since_hours(
                request.args.get("since_hours"), handler.config.max_window_hours
            ),
        )
        return jsonify(result), 200

    except ValidationError as e:
        return _validation_response(e)
    except RepositoryError as e:
        logger.error("OUTBREAKS_STORAGE_ERROR", extra={"error": str(e)})
        return jsonify({"error": "Storage unavailable"}), 503
    except Exception as e:
        logger.error("OUTBREAKS_ERROR", extra={"error": str(e)})
        return jsonify({"error": "Failed to compute outbreaks"}), 500


@app.route("/outbreaks/radar", methods=["GET"])
def outbreak_radar():
    """Get the severity overlay for several cells.

    Query params:
        geohashes: Required - Comma-separated cells
        crop: Required - rice or durian
        since_hours: Optional - Window length (default 72)
    """
    raw = request.args.get("geohashes", "")
    cells = [c.strip() for c in raw.split(",") if c.strip()]
    crop = request.args.get("crop")
    if not cells or not crop:
        return jsonify({"error": "geohashes & crop required"}), 400

    try:
        handler = get_handler()
        result = handler.get_radar(
            geohashes=[_parse_cell(c) for c in cells],
            crop=_parse_crop(crop),
            since_hours=_parse_since_hours(
                request.args.get("since_hours"), handler.config.max_window_hours
            ),
        )
        return jsonify(result), 200

    except ValidationError as e:
        return _validation_response(e)
    except RepositoryError as e:
        logger.error("RADAR_STORAGE_ERROR", extra={"error": str(e)})
        return jsonify({"error": "Storage unavailable"}), 503
    except Exception as e:
        logger.error("RADAR_ERROR", extra={"error": str(e)})
        return jsonify({"error": "Failed to assemble radar"}), 500


@app.route("/outbreaks/report", methods=["POST"])
def report_outbreak():
    """Submit an outbreak report.

    Body:
        source: scan, manual or partner
        crop: rice or durian
        label: Disease or pest identifier
        geohash5: Cell (or lat/lon, coarsened here and never stored)
        observed_at: ISO-8601 timestamp
        confidence, evidence, contact, device_id, field_id: Optional
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Request body required"}), 400

    source = str(data.get("source") or "").strip().lower()
    if not data.get("device_id") and source != ReportSource.PARTNER.value:
        return jsonify({"error": "device_id required for non-partner"}), 400

    try:
        result = get_handler().submit_report(_coarsen_location(data))
        return jsonify(result), 201

    except ValidationError as e:
        return _validation_response(e)
    except RepositoryError as e:
        logger.error("REPORT_STORAGE_ERROR", extra={"error": str(e)})
        return jsonify({"error": "Storage unavailable"}), 503
    except Exception as e:
        logger.error("REPORT_ERROR", extra={"error": str(e)})
        return jsonify({"error": "Failed to submit report"}), 500


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    port = int(os.getenv("PORT", "8080"))
    app.run(host="0.0.0.0", port=port)
