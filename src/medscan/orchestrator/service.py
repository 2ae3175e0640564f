from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import List, Optional, Protocol, Tuple

from ..domain.expiry import classify_expiry
from ..domain.models import ExpiryStatus, ExtractedFields, MedicineRecord, NormalizedDate
from ..domain.normalize import normalize_expiry_date
from ..errors import ProcessingFailed
from ..logging import get_logger
from ..metadata.extractors import extract_fields


LOG = get_logger("medicine-service")


class TextRecognizer(Protocol):
    def recognize(self, image_path: str) -> str: ...


class MedicineStore(Protocol):
    def insert(self, record: MedicineRecord) -> int: ...

    def list_by_owner(self, owner_id: str) -> List[MedicineRecord]: ...


@dataclass(frozen=True)
class IngestionResult:
    record: MedicineRecord
    fields: ExtractedFields
    expiry: NormalizedDate
    status: ExpiryStatus
    text: str


def _timestamp(now: datetime) -> str:
    return now.strftime("%Y-%m-%d %H:%M:%S")


class MedicineIngestionService:
    """Coordinates extraction, normalization, classification and persistence.

    Collaborators are injected: `store` persists records and `recognizer`
    (optional) turns an image path into OCR text.
    """

    def __init__(self, store: MedicineStore, recognizer: Optional[TextRecognizer] = None) -> None:
        self.store = store
        self.recognizer = recognizer

    @staticmethod
    def build_record(
        text: str,
        *,
        image_path: str,
        owner_id: str,
        now: Optional[datetime] = None,
    ) -> IngestionResult:
        """Run the pure pipeline on OCR text; performs no I/O."""
        created = now or datetime.now()
        fields = extract_fields(text or "")
        expiry = normalize_expiry_date(fields.raw_expiry_token, fields.expiry_order, now=created)
        status = classify_expiry(expiry.value, created)
        record = MedicineRecord(
            id=None,
            owner_id=owner_id,
            name=fields.name,
            expiry_date=expiry.iso(),
            batch_number=fields.batch_number,
            image_path=image_path,
            created_at=_timestamp(created),
        )
        return IngestionResult(record=record, fields=fields, expiry=expiry, status=status, text=text or "")

    def ingest_text(
        self,
        text: str,
        *,
        image_path: str,
        owner_id: str,
        now: Optional[datetime] = None,
    ) -> IngestionResult:
        result = self.build_record(text, image_path=image_path, owner_id=owner_id, now=now)
        try:
            new_id = self.store.insert(result.record)
        except Exception as exc:
            LOG.error(f"Persisting medicine for owner {owner_id} failed: {exc!r}")
            raise ProcessingFailed(str(exc) or type(exc).__name__, cause=exc) from exc
        record = replace(result.record, id=new_id)
        LOG.info(
            "Stored medicine id=%s name=%r expiry=%s%s urgency=%s",
            new_id,
            record.name,
            record.expiry_date,
            " (fallback)" if result.expiry.is_fallback else "",
            result.status.urgency.value,
        )
        return replace(result, record=record)

    def ingest_image(
        self,
        image_path: str,
        *,
        owner_id: str,
        stored_name: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> IngestionResult:
        """OCR the image, then extract and persist. Raises ProcessingFailed."""
        if not image_path:
            raise ProcessingFailed("No image provided")
        if self.recognizer is None:
            raise ProcessingFailed("No OCR recognizer configured")
        try:
            text = self.recognizer.recognize(image_path)
        except Exception as exc:
            # Any recognizer failure ends the upload flow as ProcessingFailed.
            LOG.error(f"OCR failed for {image_path}: {exc!r}")
            raise ProcessingFailed(str(exc) or type(exc).__name__, cause=exc) from exc
        LOG.debug(f"OCR text for {image_path}: {text!r}")
        return self.ingest_text(text, image_path=stored_name or image_path, owner_id=owner_id, now=now)

    def list_medicines(
        self,
        owner_id: str,
        *,
        now: Optional[datetime] = None,
    ) -> List[Tuple[MedicineRecord, ExpiryStatus]]:
        """Return the owner's records with urgency recomputed against `now`."""
        current = now or datetime.now()
        records = self.store.list_by_owner(owner_id)
        return [(r, classify_expiry(r.expiry(), current)) for r in records]
