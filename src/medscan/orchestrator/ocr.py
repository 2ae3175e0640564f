"""OCR collaborators that turn an uploaded label photo into raw text."""

from __future__ import annotations

import base64
import json
import os
from typing import List, Optional

import requests

from ..config import Settings
from ..errors import OcrError
from ..logging import get_logger

LOG = get_logger("orchestrator-ocr")


DEFAULT_INSTRUCTION = (
    "Transcribe all text printed on this medicine package EXACTLY, line by line. "
    "Output plain text only. When finished, print <eot> on a new line."
)


def _require_file(image_path: str) -> str:
    if not image_path or not os.path.isfile(image_path):
        raise OcrError(f"Image not found: {image_path!r}")
    return image_path


class TesseractRecognizer:
    """Local OCR through the tesseract binary (via pytesseract)."""

    def __init__(self, lang: str = "eng", tesseract_cmd: Optional[str] = None) -> None:
        self.lang = lang
        self.tesseract_cmd = tesseract_cmd

    def recognize(self, image_path: str) -> str:
        path = _require_file(image_path)
        import pytesseract
        from PIL import Image

        if self.tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = self.tesseract_cmd
        LOG.info(f"Running tesseract ({self.lang}) on {os.path.basename(path)}")
        try:
            with Image.open(path) as img:
                text = pytesseract.image_to_string(img, lang=self.lang)
        except (
            OSError,
            RuntimeError,
            Image.DecompressionBombError,
            pytesseract.TesseractError,
            pytesseract.TesseractNotFoundError,
        ) as exc:
            raise OcrError(f"Tesseract failed: {exc}") from exc
        LOG.info(f"Tesseract returned {len(text)} characters")
        return text or ""


class OllamaRecognizer:
    """OCR through a vision model served by Ollama's /api/chat endpoint."""

    def __init__(
        self,
        ollama_url: str,
        model: str,
        *,
        timeout: int = 300,
        instruction: str = DEFAULT_INSTRUCTION,
    ) -> None:
        self.url = ollama_url if ollama_url.endswith("/api/chat") else ollama_url.rstrip("/") + "/api/chat"
        self.model = model
        self.timeout = timeout
        self.instruction = instruction

    def recognize(self, image_path: str) -> str:
        path = _require_file(image_path)
        with open(path, "rb") as f:
            img_b64 = base64.b64encode(f.read()).decode("utf-8")
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": self.instruction, "images": [img_b64]}],
            "stream": True,
            "options": {"temperature": 0, "stop": ["<eot>"]},
        }
        LOG.info("Transcribing label via Ollama")
        LOG.debug(f"Ollama URL: {self.url}; model: {self.model}; timeout: {self.timeout}s")
        try:
            response = requests.post(self.url, json=payload, timeout=self.timeout, stream=True)
            response.raise_for_status()
            chunks: List[str] = []
            for raw_line in response.iter_lines(decode_unicode=True):
                if not raw_line:
                    continue
                line = raw_line.strip()
                if line.startswith("data:"):
                    line = line[5:].strip()
                try:
                    obj = json.loads(line)
                except ValueError:
                    chunks.append(line)
                    continue
                if not isinstance(obj, dict):
                    LOG.debug(f"Skipping non-object stream event: {line!r}")
                    continue
                if obj.get("error"):
                    raise OcrError(f"Ollama error: {obj['error']}")
                if obj.get("done") is True:
                    break
                msg = obj.get("message") or {}
                delta = (msg.get("content") if isinstance(msg, dict) else "") or obj.get("response") or ""
                if delta:
                    chunks.append(delta)
        except requests.RequestException as exc:
            raise OcrError(f"Ollama transcription failed: {exc}") from exc

        text = "".join(chunks).strip()
        if "<eot>" in text:
            text = text.split("<eot>", 1)[0].strip()
        LOG.info(f"Received transcript with {len(text)} characters")
        return text


def build_recognizer(settings: Settings):
    if settings.ocr_backend == "ollama":
        return OllamaRecognizer(settings.ollama_url, settings.ollama_model)
    return TesseractRecognizer(lang=settings.ocr_lang, tesseract_cmd=settings.tesseract_cmd)
