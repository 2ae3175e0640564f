import os
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from dotenv import dotenv_values

from .logging import get_logger
from .paths import expand_abs, find_project_root, var_dir

log = get_logger("config")

DEFAULT_MAX_UPLOAD_BYTES = 5 * 1024 * 1024
DEFAULT_OLLAMA_URL = "http://localhost:11434"
DEFAULT_OLLAMA_MODEL = "llama3.2-vision:latest"
OCR_BACKENDS = ("tesseract", "ollama")


def _find_upwards(start_dir: str, filename: str) -> Optional[str]:
    """Return first matching file found when walking up from start_dir.

    This makes running tools from subdirectories (e.g., `src/`) still find
    repository-level config files like `.env`.
    """
    d = os.path.abspath(start_dir or ".")
    while True:
        candidate = os.path.join(d, filename)
        if os.path.isfile(candidate):
            return candidate
        parent = os.path.dirname(d)
        if parent == d:
            return None
        d = parent


def _read_dotenv(dotenv_dir: str) -> Dict[str, str]:
    """Return key/value pairs from the nearest .env; does not mutate os.environ."""
    path = _find_upwards(dotenv_dir, ".env")
    if not path:
        log.debug(f"No .env found starting from: {os.path.abspath(dotenv_dir)}")
        return {}
    env = {k: (v or "").strip() for k, v in dotenv_values(path).items()}
    log.debug(f"Loaded {len(env)} key(s) from .env at {path}")
    return env


def parse_api_tokens(raw: Optional[str]) -> Dict[str, str]:
    """Parse ``token=owner`` pairs separated by commas."""
    tokens: Dict[str, str] = {}
    for chunk in (raw or "").split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        if "=" not in chunk:
            log.warning("Ignoring malformed MEDSCAN_API_TOKENS entry without '='")
            continue
        token, owner = chunk.split("=", 1)
        token, owner = token.strip(), owner.strip()
        if token and owner:
            tokens[token] = owner
    return tokens


def _split_csv(raw: Optional[str]) -> Tuple[str, ...]:
    return tuple(part.strip() for part in (raw or "").split(",") if part.strip())


@dataclass(frozen=True)
class Settings:
    root_dir: str
    db_path: str
    upload_dir: str
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    ocr_backend: str = "tesseract"
    ocr_lang: str = "eng"
    tesseract_cmd: Optional[str] = None
    ollama_url: str = DEFAULT_OLLAMA_URL
    ollama_model: str = DEFAULT_OLLAMA_MODEL
    api_tokens: Dict[str, str] = field(default_factory=dict)
    allow_origins: Tuple[str, ...] = ("*",)


def load_settings(dotenv_dir: Optional[str] = None) -> Settings:
    """Build Settings from the environment, falling back to the nearest .env.

    Environment variables always win over values from the .env file.
    """
    base = dotenv_dir or os.getcwd()
    env = _read_dotenv(base)

    def _get(key: str, default: Optional[str] = None) -> Optional[str]:
        v = os.environ.get(key)
        if v is None or not v.strip():
            v = env.get(key)
        if v is None or not v.strip():
            return default
        return v.strip()

    root = find_project_root(base)
    db_path = _get("MEDSCAN_DB_PATH")
    upload_dir = _get("MEDSCAN_UPLOAD_DIR")

    raw_limit = _get("MEDSCAN_MAX_UPLOAD_BYTES")
    try:
        max_upload_bytes = int(raw_limit) if raw_limit else DEFAULT_MAX_UPLOAD_BYTES
    except ValueError:
        log.warning(f"Invalid MEDSCAN_MAX_UPLOAD_BYTES={raw_limit!r}; using default")
        max_upload_bytes = DEFAULT_MAX_UPLOAD_BYTES

    backend = (_get("MEDSCAN_OCR_BACKEND", "tesseract") or "tesseract").lower()
    if backend not in OCR_BACKENDS:
        log.warning(f"Unknown MEDSCAN_OCR_BACKEND={backend!r}; using tesseract")
        backend = "tesseract"

    settings = Settings(
        root_dir=root,
        db_path=expand_abs(db_path) if db_path else os.path.join(var_dir(root), "medscan", "medicines.sqlite3"),
        upload_dir=expand_abs(upload_dir) if upload_dir else os.path.join(var_dir(root), "uploads"),
        max_upload_bytes=max_upload_bytes,
        ocr_backend=backend,
        ocr_lang=_get("MEDSCAN_OCR_LANG", "eng") or "eng",
        tesseract_cmd=_get("TESSERACT_CMD"),
        ollama_url=_get("OLLAMA_URL", DEFAULT_OLLAMA_URL) or DEFAULT_OLLAMA_URL,
        ollama_model=_get("OLLAMA_MODEL", DEFAULT_OLLAMA_MODEL) or DEFAULT_OLLAMA_MODEL,
        api_tokens=parse_api_tokens(_get("MEDSCAN_API_TOKENS")),
        allow_origins=_split_csv(_get("MEDSCAN_ALLOW_ORIGINS", "*")) or ("*",),
    )
    log.debug(f"Settings resolved: db={settings.db_path} uploads={settings.upload_dir} ocr={settings.ocr_backend}")
    if not settings.api_tokens:
        log.info("MEDSCAN_API_TOKENS not set; authenticated endpoints will reject every request")
    return settings
