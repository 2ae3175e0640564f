from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Mount, Route
from starlette.staticfiles import StaticFiles

from ..config import Settings, load_settings
from ..domain.models import ExpiryStatus, MedicineRecord
from ..errors import ProcessingFailed, StorageError
from ..logging import get_logger
from ..orchestrator.db import MedicineDatabase
from ..orchestrator.ocr import build_recognizer
from ..orchestrator.service import MedicineIngestionService, TextRecognizer
from ..orchestrator.storage import UploadStore, UploadTooLarge
from .auth import AuthError, TokenAuthenticator


LOG = get_logger("web-app")

UPLOADS_PREFIX = "/uploads"
READ_CHUNK_BYTES = 64 * 1024


def _image_url(stored_name: str) -> str:
    return f"{UPLOADS_PREFIX}/{stored_name}" if stored_name else ""


def _record_payload(record: MedicineRecord, status: ExpiryStatus) -> Dict[str, Any]:
    payload = asdict(record)
    payload.update(
        {
            "imageUrl": _image_url(record.image_path),
            "isExpiringSoon": status.is_expiring_soon,
            "isExpired": status.is_expired,
            "urgency": status.urgency.value,
        }
    )
    return payload


async def _read_limited(upload: UploadFile, uploads: UploadStore) -> bytes:
    """Read the upload in chunks, stopping as soon as it exceeds the limit."""
    buf = bytearray()
    while True:
        chunk = await upload.read(READ_CHUNK_BYTES)
        if not chunk:
            return bytes(buf)
        buf.extend(chunk)
        uploads.check_size(len(buf))


def create_app(
    settings: Optional[Settings] = None,
    *,
    recognizer: Optional[TextRecognizer] = None,
    authenticator: Optional[TokenAuthenticator] = None,
    clock: Callable[[], datetime] = datetime.now,
) -> Starlette:
    """Create the Starlette app exposing upload and listing endpoints."""

    settings = settings or load_settings()
    db = MedicineDatabase(settings.db_path)
    uploads = UploadStore(settings.upload_dir, max_bytes=settings.max_upload_bytes)
    service = MedicineIngestionService(db, recognizer or build_recognizer(settings))
    auth = authenticator or TokenAuthenticator(settings.api_tokens)

    async def health(_: Request) -> JSONResponse:
        try:
            totals = await run_in_threadpool(db.count)
        except StorageError as exc:
            LOG.error(f"Health check failed: {exc}")
            return JSONResponse({"status": "error", "error": str(exc)}, status_code=503)
        return JSONResponse(
            {"status": "ok", "db_path": db.db_path, "ocr_backend": settings.ocr_backend, **totals}
        )

    async def upload_medicine(request: Request) -> JSONResponse:
        owner_id = auth.owner_for(request.headers.get("authorization"))
        form = await request.form()
        upload = form.get("image")
        if not isinstance(upload, UploadFile):
            return JSONResponse({"error": "No image uploaded"}, status_code=400)

        try:
            data = await _read_limited(upload, uploads)
            stored = uploads.save(upload.filename or "image", data)
        except UploadTooLarge as exc:
            return JSONResponse({"error": str(exc)}, status_code=413)
        except StorageError as exc:
            LOG.error(f"Upload storage failed: {exc}")
            return JSONResponse({"error": f"Failed to process image: {exc}"}, status_code=500)

        LOG.info(f"Processing image: {stored}")
        try:
            result = await run_in_threadpool(
                service.ingest_image,
                uploads.path_for(stored),
                owner_id=owner_id,
                stored_name=stored,
                now=clock(),
            )
        except ProcessingFailed as exc:
            uploads.remove(stored)
            return JSONResponse({"error": f"Failed to process image: {exc}"}, status_code=500)

        record = result.record
        return JSONResponse(
            {
                "id": record.id,
                "name": record.name,
                "expiryDate": record.expiry_date,
                "batchNumber": record.batch_number,
                "imageUrl": _image_url(stored),
                "isExpiringSoon": result.status.is_expiring_soon,
                "isExpired": result.status.is_expired,
                "extractedText": result.text,
            }
        )

    async def medicines(request: Request) -> JSONResponse:
        owner_id = auth.owner_for(request.headers.get("authorization"))
        try:
            rows = await run_in_threadpool(service.list_medicines, owner_id, now=clock())
        except (StorageError, ValueError) as exc:
            LOG.error(f"Fetch medicines failed: {exc}")
            return JSONResponse({"error": "Failed to fetch medicines"}, status_code=500)
        return JSONResponse([_record_payload(record, status) for record, status in rows])

    async def auth_error(_: Request, exc: AuthError) -> JSONResponse:
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)

    routes = [
        Route("/api/health", health, methods=["GET"]),
        Route("/api/upload-medicine", upload_medicine, methods=["POST"]),
        Route("/api/medicines", medicines, methods=["GET"]),
        Mount(UPLOADS_PREFIX, app=StaticFiles(directory=uploads.upload_dir), name="uploads"),
    ]

    app = Starlette(debug=False, routes=routes, exception_handlers={AuthError: auth_error})

    origins = list(settings.allow_origins) or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if "*" in origins else origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    LOG.info(f"medscan API ready (uploads at {uploads.upload_dir})")
    return app


__all__ = ["create_app"]
