from __future__ import annotations

import logging
import mimetypes
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from starlette.concurrency import run_in_threadpool

from .config import FALLBACK_MIME
from .errors import IntegrityMismatch, InvalidRequest, PayloadTooLarge
from .files import FileStore
from .hashing import file_digest
from .security import derive_asset_key, normalize_session_id
from .store import AssetDB

logger = logging.getLogger(__name__)


def guess_mime(filename: str) -> str:
    mime, _ = mimetypes.guess_type(filename, strict=False)
    return mime or FALLBACK_MIME


def _now_millis() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class UploadResult:
    session_id: str
    asset_key: str
    path: Path
    record: Dict[str, Any]
    created: bool


class UploadPipeline:
    """Write-verify-commit for one uploaded asset.

    Bytes are written to a staging file in the session directory, hashed by
    reading them back from disk and checked against the payload length. Only
    then is the file renamed into place and the record committed, both under
    the session's lock so the committed hash always describes the file at
    ``path``. Any stage failing raises and nothing after it runs.
    """

    def __init__(self, files: FileStore, db: AssetDB, max_upload_bytes: Optional[int] = None) -> None:
        self.files = files
        self.db = db
        self.max_upload_bytes = max_upload_bytes

    async def store(self, session_id: str, filename: str, data: Optional[bytes]) -> UploadResult:
        # Received
        if not filename:
            raise InvalidRequest("Filename is required")
        session_id = normalize_session_id(session_id)
        asset_key = derive_asset_key(filename)
        if data is None:
            raise InvalidRequest("Request body is missing")
        if self.max_upload_bytes is not None and len(data) > self.max_upload_bytes:
            raise PayloadTooLarge("Upload too large")
        final_path = self.files.asset_path(session_id, filename)
        logger.info("Incoming upload for session %s with file %s, size: %d bytes", session_id, filename, len(data))

        existing = await run_in_threadpool(self.db.find_one, session_id)
        if existing is None:
            logger.info("Session ID %s not found, it will be created", session_id)
        elif asset_key in existing["assets"]:
            logger.info("Asset %s already exists in session %s. It will be overwritten.", asset_key, session_id)

        # DirectoryEnsured
        await run_in_threadpool(self.files.ensure_session_directory, session_id)

        staging = self.files.staging_path(final_path)
        try:
            # Written
            await run_in_threadpool(self.files.write_asset, staging, data)
            # Hashed
            digest = await run_in_threadpool(file_digest, staging)
            # VerifiedSize
            size = await run_in_threadpool(self.files.stat_size, staging)
            if size != len(data):
                logger.error("Integrity check failed for %s/%s: %d bytes on disk, %d sent",
                             session_id, filename, size, len(data))
                raise IntegrityMismatch(filename, expected=len(data), actual=size)
            logger.debug("File on disk matches sent data for %s/%s", session_id, filename)

            fields = {
                "path": str(final_path),
                "modified": _now_millis(),
                "size": size,
                "mime": guess_mime(filename),
                "hash": digest,
            }
            record = await self._commit(session_id, asset_key, staging, final_path, fields)
        except BaseException:
            await run_in_threadpool(self.files.discard, staging)
            raise

        created = record["updated"] == 0
        return UploadResult(
            session_id=session_id,
            asset_key=asset_key,
            path=final_path,
            record=record,
            created=created,
        )

    async def _commit(self, session_id: str, asset_key: str, staging: Path, final_path: Path,
                      fields: Dict[str, Any]) -> Dict[str, Any]:
        async with self.db.session_lock(session_id):
            # The live file keeps a second link until the record is committed, so a
            # failed commit puts back exactly the bytes the old record describes.
            backup = await run_in_threadpool(self.files.set_aside, final_path)
            try:
                await run_in_threadpool(self.files.promote, staging, final_path)
                record, _ = await run_in_threadpool(self.db.upsert_asset, session_id, asset_key, fields)
            except BaseException:
                if backup is not None:
                    await run_in_threadpool(self.files.promote, backup, final_path)
                else:
                    await run_in_threadpool(self.files.discard, final_path)
                raise
            if backup is not None:
                await run_in_threadpool(self.files.discard, backup)
        return record
