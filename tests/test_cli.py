from __future__ import annotations

import json
from pathlib import Path

import pytest

from medscan.cli.main import main
from medscan.errors import StorageError
from medscan.orchestrator.db import MedicineDatabase


@pytest.fixture
def env_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("MEDSCAN_DB_PATH", str(tmp_path / "cli.sqlite3"))
    monkeypatch.setenv("MEDSCAN_UPLOAD_DIR", str(tmp_path / "uploads"))
    return tmp_path


def test_extract_prints_fields_as_json(env_dir: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = main(
        [
            "--env-dir",
            str(env_dir),
            "extract",
            "--text",
            "ParaceMax 500mg\nEXP: 12/08/24\nBatch: AB-1122",
            "--now",
            "2024-07-01T09:00:00",
        ]
    )
    assert code == 0
    out = json.loads(capsys.readouterr().out)
    assert out["name"] == "ParaceMax 500mg"
    assert out["expiryDate"] == "2024-08-12"
    assert out["rawExpiryToken"] == "12/08/24"
    assert out["batchNumber"] == "AB-1122"
    assert out["urgency"] == "expiring_soon"
    assert out["expiryFallback"] is False


def test_extract_reads_text_file(env_dir: Path, capsys: pytest.CaptureFixture[str]) -> None:
    text_file = env_dir / "ocr.txt"
    text_file.write_text("Batch No: XR99\n\nExpiry: 2025-01-01", encoding="utf-8")
    assert main(["--env-dir", str(env_dir), "extract", "--text-file", str(text_file), "--now", "2024-01-01"]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["batchNumber"] == "XR99"
    assert out["expiryDate"] == "2025-01-01"
    assert out["urgency"] == "safe"


def test_init_and_list_empty(env_dir: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["--env-dir", str(env_dir), "init"]) == 0
    assert capsys.readouterr().out.strip() == str(env_dir / "cli.sqlite3")
    assert main(["--env-dir", str(env_dir), "list", "--owner", "alice"]) == 0
    assert json.loads(capsys.readouterr().out) == []


def test_scan_missing_image_fails(env_dir: Path) -> None:
    assert main(["--env-dir", str(env_dir), "scan", "--image", str(env_dir / "nope.jpg"), "--owner", "alice"]) == 1


def test_list_storage_failure_exits_nonzero(env_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def broken(self, owner_id: str):
        raise StorageError("database is locked")

    monkeypatch.setattr(MedicineDatabase, "list_by_owner", broken)
    assert main(["--env-dir", str(env_dir), "list", "--owner", "alice"]) == 1
