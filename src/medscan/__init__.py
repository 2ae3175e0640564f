"""medscan – medicine label scanning and expiry tracking.

The package turns OCR text from a photographed medicine package into a
structured record (name, expiry date, batch number) and classifies each
record by how close it is to expiry.

Modules:
- metadata.extractors: ordered pattern rules for name, batch and expiry token
- domain.normalize: expiry token → calendar date with fallback policy
- domain.expiry: urgency classification relative to an evaluation instant
- orchestrator: OCR, upload storage, SQLite persistence and the ingestion service
- web: Starlette HTTP API
"""

__version__ = "0.3.0"

__all__ = [
    "config",
    "logging",
    "paths",
]
