from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List

import pytest
import requests

from medscan.config import Settings
from medscan.errors import OcrError
from medscan.orchestrator import ocr
from medscan.orchestrator.ocr import OllamaRecognizer, TesseractRecognizer, build_recognizer


class _FakeResponse:
    def __init__(self, lines: List[str], status_ok: bool = True) -> None:
        self._lines = lines
        self._ok = status_ok

    def raise_for_status(self) -> None:
        if not self._ok:
            raise requests.HTTPError("500 Server Error")

    def iter_lines(self, decode_unicode: bool = False):
        return iter(self._lines)


def _image(tmp_path: Path) -> str:
    path = tmp_path / "label.jpg"
    path.write_bytes(b"\xff\xd8fake")
    return str(path)


def test_ollama_stream_is_concatenated(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    seen: Dict[str, Any] = {}
    events = [
        json.dumps({"message": {"content": "ParaceMax 500mg\n"}}),
        "",
        json.dumps({"message": {"content": "EXP: 12/08/24\n<eot>"}}),
        json.dumps({"done": True}),
    ]

    def fake_post(url: str, **kwargs: Any) -> _FakeResponse:
        seen["url"] = url
        seen["payload"] = kwargs["json"]
        return _FakeResponse(events)

    monkeypatch.setattr(ocr.requests, "post", fake_post)
    text = OllamaRecognizer("http://ollama:11434/", "vision").recognize(_image(tmp_path))
    assert text == "ParaceMax 500mg\nEXP: 12/08/24"
    assert seen["url"] == "http://ollama:11434/api/chat"
    assert seen["payload"]["model"] == "vision"
    assert seen["payload"]["messages"][0]["images"]


def test_ollama_error_event_raises(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(ocr.requests, "post", lambda url, **kw: _FakeResponse([json.dumps({"error": "no model"})]))
    with pytest.raises(OcrError):
        OllamaRecognizer("http://ollama:11434", "vision").recognize(_image(tmp_path))


def test_ollama_http_failure_raises(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(ocr.requests, "post", lambda url, **kw: _FakeResponse([], status_ok=False))
    with pytest.raises(OcrError):
        OllamaRecognizer("http://ollama:11434", "vision").recognize(_image(tmp_path))


def test_missing_image_raises_before_ocr(tmp_path: Path) -> None:
    with pytest.raises(OcrError):
        TesseractRecognizer().recognize(str(tmp_path / "missing.png"))


def test_build_recognizer_follows_backend(tmp_path: Path) -> None:
    base = dict(root_dir=str(tmp_path), db_path=str(tmp_path / "db"), upload_dir=str(tmp_path / "up"))
    assert isinstance(build_recognizer(Settings(**base)), TesseractRecognizer)
    assert isinstance(build_recognizer(Settings(ocr_backend="ollama", **base)), OllamaRecognizer)


def test_ollama_skips_non_object_events(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    events = ["42", json.dumps(["x"]), json.dumps({"message": {"content": "Zinc"}}), json.dumps({"done": True})]
    monkeypatch.setattr(ocr.requests, "post", lambda url, **kw: _FakeResponse(events))
    assert OllamaRecognizer("http://ollama:11434", "vision").recognize(_image(tmp_path)) == "Zinc"
