"""Collaborators and the ingestion service behind the upload and list flows."""

from .db import MedicineDatabase
from .ocr import OllamaRecognizer, TesseractRecognizer, build_recognizer
from .service import IngestionResult, MedicineIngestionService
from .storage import UploadStore, UploadTooLarge

__all__ = [
    "MedicineDatabase",
    "OllamaRecognizer",
    "TesseractRecognizer",
    "build_recognizer",
    "IngestionResult",
    "MedicineIngestionService",
    "UploadStore",
    "UploadTooLarge",
]
