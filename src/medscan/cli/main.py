from __future__ import annotations

import argparse
import json
import os
import sys
from datetime import datetime
from typing import Any, Dict, Optional, Sequence

from ..config import Settings, load_settings
from ..errors import ProcessingFailed, StorageError
from ..logging import get_logger, set_level
from ..orchestrator.db import MedicineDatabase
from ..orchestrator.ocr import build_recognizer
from ..orchestrator.service import IngestionResult, MedicineIngestionService
from ..paths import expand_abs

LOG = get_logger("cli-main")


def _parse_now(value: Optional[str]) -> datetime:
    if not value:
        return datetime.now()
    try:
        return datetime.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"--now must be ISO formatted: {value!r}") from exc


def _result_payload(result: IngestionResult) -> Dict[str, Any]:
    record = result.record
    return {
        "id": record.id,
        "name": record.name,
        "expiryDate": record.expiry_date,
        "expiryFallback": result.expiry.is_fallback,
        "rawExpiryToken": result.fields.raw_expiry_token,
        "batchNumber": record.batch_number,
        "imagePath": record.image_path,
        "isExpiringSoon": result.status.is_expiring_soon,
        "isExpired": result.status.is_expired,
        "urgency": result.status.urgency.value,
    }


def _service(settings: Settings, *, with_ocr: bool = False) -> MedicineIngestionService:
    db = MedicineDatabase(settings.db_path)
    return MedicineIngestionService(db, build_recognizer(settings) if with_ocr else None)


def _handle_init(_: argparse.Namespace, settings: Settings) -> int:
    db = MedicineDatabase(settings.db_path)
    try:
        totals = db.count()
    except StorageError as exc:
        LOG.error(str(exc))
        return 1
    LOG.info(f"Medicine DB ready at: {db.db_path} ({totals['medicines']} medicine(s), {totals['owners']} owner(s))")
    print(db.db_path)
    return 0


def _handle_extract(ns: argparse.Namespace, settings: Settings) -> int:
    if ns.text is not None:
        text = ns.text
    else:
        with open(expand_abs(ns.text_file), "r", encoding="utf-8") as f:
            text = f.read()
    result = MedicineIngestionService.build_record(
        text,
        image_path="",
        owner_id=ns.owner or "",
        now=_parse_now(ns.now),
    )
    print(json.dumps(_result_payload(result), ensure_ascii=False))
    return 0


def _handle_scan(ns: argparse.Namespace, settings: Settings) -> int:
    svc = _service(settings, with_ocr=True)
    try:
        result = svc.ingest_image(expand_abs(ns.image), owner_id=ns.owner, now=_parse_now(ns.now))
    except ProcessingFailed as exc:
        LOG.error(f"Failed to process image: {exc}")
        return 1
    payload = _result_payload(result)
    payload["extractedText"] = result.text
    print(json.dumps(payload, ensure_ascii=False))
    return 0


def _handle_list(ns: argparse.Namespace, settings: Settings) -> int:
    svc = _service(settings)
    try:
        rows = svc.list_medicines(ns.owner, now=_parse_now(ns.now))
    except (StorageError, ValueError) as exc:
        LOG.error(f"Failed to fetch medicines: {exc}")
        return 1
    out = []
    for record, status in rows:
        out.append(
            {
                "id": record.id,
                "name": record.name,
                "expiryDate": record.expiry_date,
                "batchNumber": record.batch_number,
                "createdAt": record.created_at,
                "isExpiringSoon": status.is_expiring_soon,
                "isExpired": status.is_expired,
                "urgency": status.urgency.value,
            }
        )
    print(json.dumps(out, ensure_ascii=False))
    LOG.info(f"Listed {len(out)} medicine(s) for owner {ns.owner}")
    return 0


def _handle_serve(ns: argparse.Namespace, settings: Settings) -> int:
    from ..web.app import create_app
    import uvicorn

    app = create_app(settings)
    uvicorn.run(app, host=ns.host, port=ns.port, log_level=ns.log_level)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    provided = list(argv) if argv is not None else sys.argv[1:]
    LOG.debug(f"CLI invoked with arguments: {provided}")

    parser = argparse.ArgumentParser(
        prog="medscan",
        description="Extract medicine label details from OCR text and track expiry dates.",
    )
    parser.add_argument("--env-dir", default=None, help="Directory to start the .env lookup from (default: cwd)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_cmd = subparsers.add_parser("init", help="Create/ensure the medicine DB schema exists")
    init_cmd.set_defaults(handler=_handle_init)

    extract_cmd = subparsers.add_parser("extract", help="Extract fields from OCR text without storing anything")
    source = extract_cmd.add_mutually_exclusive_group(required=True)
    source.add_argument("--text", help="Raw OCR text")
    source.add_argument("--text-file", help="File containing raw OCR text")
    extract_cmd.add_argument("--owner", default="")
    extract_cmd.add_argument("--now", help="Evaluation instant (ISO format); defaults to now")
    extract_cmd.set_defaults(handler=_handle_extract)

    scan_cmd = subparsers.add_parser("scan", help="OCR a label photo, extract fields and store the record")
    scan_cmd.add_argument("--image", required=True)
    scan_cmd.add_argument("--owner", required=True)
    scan_cmd.add_argument("--now", help="Evaluation instant (ISO format); defaults to now")
    scan_cmd.set_defaults(handler=_handle_scan)

    list_cmd = subparsers.add_parser("list", help="List an owner's medicines with fresh expiry status")
    list_cmd.add_argument("--owner", required=True)
    list_cmd.add_argument("--now", help="Evaluation instant (ISO format); defaults to now")
    list_cmd.set_defaults(handler=_handle_list)

    serve_cmd = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_cmd.add_argument("--host", default="127.0.0.1")
    serve_cmd.add_argument("--port", type=int, default=5000)
    serve_cmd.add_argument("--log-level", default="info")
    serve_cmd.set_defaults(handler=_handle_serve)

    args = parser.parse_args(provided)
    if args.verbose:
        set_level("DEBUG")
    try:
        settings = load_settings(args.env_dir or os.getcwd())
        code = args.handler(args, settings)
    except argparse.ArgumentTypeError as exc:
        parser.error(str(exc))
    LOG.debug(f"Subcommand '{args.command}' finished with exit code {code}.")
    return code


if __name__ == "__main__":
    sys.exit(main())
