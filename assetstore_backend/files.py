from __future__ import annotations

import logging
import os
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .errors import NotFound, StorageError
from .security import is_safe_basename, normalize_session_id, safe_join

logger = logging.getLogger(__name__)


STAGING_PREFIX = ".upload-"


@dataclass(frozen=True)
class FileStore:
    """Asset bytes on local disk, laid out as ``{base_dir}/{session}/{filename}``."""

    base_dir: Path

    def prepare(self) -> None:
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Could not create base directory: {e.strerror or e}") from e

    def session_dir(self, session_id: str) -> Path:
        return safe_join(self.base_dir, normalize_session_id(session_id))

    def asset_path(self, session_id: str, filename: str) -> Path:
        if not is_safe_basename(filename) or filename.startswith(STAGING_PREFIX):
            raise NotFound("Not found")
        return safe_join(self.session_dir(session_id), filename)

    def ensure_session_directory(self, session_id: str) -> Path:
        path = self.session_dir(session_id)
        try:
            path.mkdir()
            logger.info("Created directory for session %s", session_id)
        except FileExistsError:
            if not path.is_dir():
                raise StorageError(f"Session path for {session_id} exists and is not a directory")
        except OSError as e:
            raise StorageError(f"Could not create directory for session {session_id}: {e.strerror or e}") from e
        return path

    def staging_path(self, final_path: Path) -> Path:
        # Same directory as the destination so promote() is a plain rename.
        return final_path.parent / f"{STAGING_PREFIX}{uuid.uuid4().hex}-{final_path.name}"

    def write_asset(self, path: Path, data: bytes) -> None:
        try:
            with path.open("wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
        except OSError as e:
            raise StorageError(f"Could not write {path.name}: {e.strerror or e}") from e

    def set_aside(self, path: Path) -> Optional[Path]:
        """Hard-link an existing file under a staging name; None if there was nothing there.

        The original name keeps serving the old bytes until promote() replaces it.
        """
        backup = self.staging_path(path)
        try:
            os.link(path, backup)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Could not set aside {path.name}: {e.strerror or e}") from e
        return backup

    def promote(self, staging: Path, final_path: Path) -> None:
        try:
            os.replace(staging, final_path)
        except OSError as e:
            raise StorageError(f"Could not move {final_path.name} into place: {e.strerror or e}") from e

    def stat_size(self, path: Path) -> int:
        try:
            return path.stat().st_size
        except OSError as e:
            raise StorageError(f"Could not stat {path.name}: {e.strerror or e}") from e

    def require_file(self, path: Path) -> Path:
        if not path.exists() or not path.is_file():
            raise NotFound("Not found")
        return path

    def discard(self, path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError:
            logger.warning("Could not remove orphaned file %s", path, exc_info=True)
