"""CropWatch services.

- outbreak_service: report intake, per-cell aggregation and the radar overlay
- All services hash device and field identifiers before logging them
- Aggregates pass a k-anonymity gate before they are rendered
"""
