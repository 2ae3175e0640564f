from __future__ import annotations

from pathlib import Path

import pytest

from medscan.config import DEFAULT_MAX_UPLOAD_BYTES, load_settings, parse_api_tokens


_KEYS = (
    "MEDSCAN_DB_PATH",
    "MEDSCAN_UPLOAD_DIR",
    "MEDSCAN_MAX_UPLOAD_BYTES",
    "MEDSCAN_OCR_BACKEND",
    "MEDSCAN_OCR_LANG",
    "MEDSCAN_API_TOKENS",
    "MEDSCAN_ALLOW_ORIGINS",
    "TESSERACT_CMD",
    "OLLAMA_URL",
    "OLLAMA_MODEL",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in _KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults_live_under_var(tmp_path: Path) -> None:
    (tmp_path / "pyproject.toml").write_text("[project]\n", encoding="utf-8")
    settings = load_settings(str(tmp_path))
    assert settings.db_path == str(tmp_path / "var" / "medscan" / "medicines.sqlite3")
    assert settings.upload_dir == str(tmp_path / "var" / "uploads")
    assert settings.max_upload_bytes == DEFAULT_MAX_UPLOAD_BYTES
    assert settings.ocr_backend == "tesseract"
    assert settings.api_tokens == {}
    assert settings.allow_origins == ("*",)


def test_dotenv_values_are_read_from_parent(tmp_path: Path) -> None:
    (tmp_path / ".env").write_text(
        'MEDSCAN_OCR_BACKEND=ollama\nMEDSCAN_API_TOKENS="t1=alice, t2=bob"\nMEDSCAN_MAX_UPLOAD_BYTES=1024\n',
        encoding="utf-8",
    )
    sub = tmp_path / "src"
    sub.mkdir()
    settings = load_settings(str(sub))
    assert settings.ocr_backend == "ollama"
    assert settings.api_tokens == {"t1": "alice", "t2": "bob"}
    assert settings.max_upload_bytes == 1024


def test_environment_wins_over_dotenv(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / ".env").write_text("MEDSCAN_DB_PATH=/from/dotenv.sqlite3\n", encoding="utf-8")
    monkeypatch.setenv("MEDSCAN_DB_PATH", str(tmp_path / "env.sqlite3"))
    assert load_settings(str(tmp_path)).db_path == str(tmp_path / "env.sqlite3")


def test_invalid_values_fall_back(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MEDSCAN_OCR_BACKEND", "cuneiform")
    monkeypatch.setenv("MEDSCAN_MAX_UPLOAD_BYTES", "lots")
    settings = load_settings(str(tmp_path))
    assert settings.ocr_backend == "tesseract"
    assert settings.max_upload_bytes == DEFAULT_MAX_UPLOAD_BYTES


def test_parse_api_tokens_skips_malformed_entries() -> None:
    assert parse_api_tokens("a=alice,broken,,b = bob,c=") == {"a": "alice", "b": "bob"}
