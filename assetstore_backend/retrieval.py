from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

from starlette.concurrency import run_in_threadpool

from .errors import InvalidRequest, NotFound
from .files import FileStore
from .security import derive_asset_key, normalize_session_id
from .store import AssetDB

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedAsset:
    path: Path
    mime: str
    record: Dict[str, Any]


class AssetRetriever:
    def __init__(self, files: FileStore, db: AssetDB) -> None:
        self.files = files
        self.db = db

    async def session_document(self, session_id: str) -> Dict[str, Any]:
        try:
            session_id = normalize_session_id(session_id)
        except InvalidRequest:
            raise NotFound(f"Session ID {session_id} not found")
        logger.info("Incoming GET for session %s", session_id)
        doc = await run_in_threadpool(self.db.find_one, session_id)
        if doc is None:
            logger.info("Session ID %s not found", session_id)
            raise NotFound(f"Session ID {session_id} not found")
        return doc

    async def resolve(self, session_id: str, name: str) -> ResolvedAsset:
        """Find the file behind ``name`` (a filename or a bare asset key).

        The key is derived exactly as on upload, so ``tone.wav``, ``tone.txt``
        and ``tone`` all resolve to the asset stored under ``tone``.
        """
        try:
            asset_key = derive_asset_key(name)
        except InvalidRequest:
            raise NotFound(f"Asset {name} not found")
        doc = await self.session_document(session_id)
        record = doc["assets"].get(asset_key)
        if record is None:
            raise NotFound(f"Asset {asset_key} not found in session {doc['sessionId']}")

        path = Path(record["path"])
        try:
            await run_in_threadpool(self.files.require_file, path)
        except NotFound:
            logger.warning("Recorded file for %s/%s is missing at %s", doc["sessionId"], asset_key, path)
            raise NotFound(f"Asset {asset_key} not found in session {doc['sessionId']}")
        return ResolvedAsset(path=path, mime=record["mime"], record=record)
