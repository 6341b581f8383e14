from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


# Defaults are relative to the project root (assetstore_backend/ -> project root).
PROJECT_ROOT = Path(__file__).resolve().parent.parent

DEFAULT_PORT = 8080
DEFAULT_HOST = "127.0.0.1"
DEFAULT_DB_LOCATION = PROJECT_ROOT / "temp.db"
DEFAULT_BASE_DIR = PROJECT_ROOT / "files"

# Upload limit (best-effort; also enforced by proxy typically).
DEFAULT_MAX_UPLOAD_BYTES = 50 * 1024 * 1024  # 50MB
# Room for multipart boundaries and part headers on top of the payload limit.
MULTIPART_OVERHEAD_BYTES = 16 * 1024

API_VERSION = 1
API_MESSAGE = "AssetStore API v1.0.0"
API_DESCRIPTION = "This API is a self-hosted version of AWS S3"

FALLBACK_MIME = "application/octet-stream"


@dataclass(frozen=True)
class Settings:
    port: int = DEFAULT_PORT
    host: str = DEFAULT_HOST
    db_location: Path = DEFAULT_DB_LOCATION
    base_dir: Path = DEFAULT_BASE_DIR
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    log_level: str = "INFO"


def _env_path(name: str, default: Path) -> Path:
    raw = os.environ.get(name)
    if raw and raw.strip():
        return Path(raw.strip()).resolve()
    return default.resolve()


def load_settings() -> Settings:
    """Resolve settings from the environment.

    PORT, HOST, DB_LOCATION and BASE_DIR keep the names the service has always
    used; the remaining knobs are prefixed with ASSETSTORE_.
    """
    return Settings(
        port=int(os.environ.get("PORT", str(DEFAULT_PORT))),
        host=os.environ.get("HOST", DEFAULT_HOST),
        db_location=_env_path("DB_LOCATION", DEFAULT_DB_LOCATION),
        base_dir=_env_path("BASE_DIR", DEFAULT_BASE_DIR),
        max_upload_bytes=int(os.environ.get("ASSETSTORE_MAX_UPLOAD_BYTES", str(DEFAULT_MAX_UPLOAD_BYTES))),
        log_level=os.environ.get("ASSETSTORE_LOG_LEVEL", "INFO").upper(),
    )
