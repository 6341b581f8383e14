"""Asset metadata store.

A small embedded document database keyed by session id. Documents live in
memory and are persisted to a single file, one JSON document per line, which
is rewritten atomically after every mutation.

Document shape::

    {
      "sessionId": "xxx123",
      "assets": {
        "metaphors": {
          "path": "files/xxx123/metaphors.wav",
          "modified": 1455138621072,
          "size": 48000,
          "mime": "audio/x-wav",
          "hash": "f13debc5...",
          "updated": 3
        }
      }
    }
"""
from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
import threading
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from pydantic import ValidationError

from .errors import DuplicateSession, StorageError, StoreInconsistency
from .models import SessionDocument

logger = logging.getLogger(__name__)


class AssetDB:
    def __init__(self, location: Path) -> None:
        self.location = Path(location)
        self._docs: List[Dict[str, Any]] = []
        self._mutex = threading.Lock()
        self._session_locks: Dict[str, list] = {}
        self._opened = False

    @property
    def is_open(self) -> bool:
        return self._opened

    def open(self) -> None:
        """Load documents from disk. A missing file is an empty store."""
        docs: List[Dict[str, Any]] = []
        if self.location.exists():
            try:
                lines = self.location.read_text(encoding="utf-8").splitlines()
            except OSError as e:
                raise StorageError(f"Could not read metadata store: {e.strerror or e}") from e
            for lineno, line in enumerate(lines, start=1):
                if not line.strip():
                    continue
                try:
                    doc = SessionDocument.model_validate(json.loads(line))
                except (json.JSONDecodeError, ValidationError) as e:
                    raise StorageError(f"Corrupt metadata store at line {lineno}") from e
                docs.append(doc.model_dump(by_alias=True))
        else:
            self.location.parent.mkdir(parents=True, exist_ok=True)
        with self._mutex:
            self._docs = docs
            self._opened = True
        logger.info("Loaded %d session document(s) from %s", len(docs), self.location)

    def close(self) -> None:
        with self._mutex:
            if not self._opened:
                return
            self._flush(self._docs)
            self._opened = False
        logger.info("Metadata store closed")

    @asynccontextmanager
    async def session_lock(self, session_id: str) -> AsyncIterator[None]:
        """Serialize metadata mutations for one session.

        A session's lock lives only while some request holds or waits on it.
        """
        entry = self._session_locks.get(session_id)
        if entry is None:
            entry = self._session_locks[session_id] = [asyncio.Lock(), 0]
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                del self._session_locks[session_id]

    def find_by_session(self, session_id: str) -> List[Dict[str, Any]]:
        with self._mutex:
            self._require_open()
            return [copy.deepcopy(d) for d in self._docs if d["sessionId"] == session_id]

    def find_one(self, session_id: str) -> Optional[Dict[str, Any]]:
        docs = self.find_by_session(session_id)
        if len(docs) > 1:
            logger.error("Found %d documents for session %s; refusing to pick one", len(docs), session_id)
            raise StoreInconsistency(f"Multiple documents found for session {session_id}")
        return docs[0] if docs else None

    def insert_session(self, document: Dict[str, Any]) -> Dict[str, Any]:
        doc = SessionDocument.model_validate(document).model_dump(by_alias=True)
        with self._mutex:
            self._require_open()
            if any(d["sessionId"] == doc["sessionId"] for d in self._docs):
                raise DuplicateSession(f"Session {doc['sessionId']} already exists")
            candidate = self._docs + [doc]
            self._flush(candidate)
            self._docs = candidate
        logger.info("Document inserted for session %s", doc["sessionId"])
        return copy.deepcopy(doc)

    def upsert_asset(self, session_id: str, asset_key: str, fields: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
        """Merge ``fields`` into ``assets[asset_key]`` of the session's document.

        ``updated`` is 0 for a key seen for the first time and incremented for
        an existing key; callers never set it. Inserts the document when the
        session has none. Returns the committed record and whether the
        document was inserted.
        """
        with self._mutex:
            self._require_open()
            matches = [i for i, d in enumerate(self._docs) if d["sessionId"] == session_id]
            if len(matches) > 1:
                logger.error("Found %d documents for session %s; refusing to upsert", len(matches), session_id)
                raise StoreInconsistency(f"Multiple documents found for session {session_id}")

            fields = {k: v for k, v in fields.items() if k != "updated"}
            if matches:
                index = matches[0]
                doc = copy.deepcopy(self._docs[index])
                previous = doc["assets"].get(asset_key)
                record = dict(previous or {})
                record.update(fields)
                record["updated"] = previous["updated"] + 1 if previous else 0
                doc["assets"][asset_key] = record
                candidate = list(self._docs)
                candidate[index] = self._validated(doc)
                inserted = False
            else:
                doc = {"sessionId": session_id, "assets": {asset_key: dict(fields, updated=0)}}
                candidate = self._docs + [self._validated(doc)]
                inserted = True

            self._flush(candidate)
            self._docs = candidate
            committed = copy.deepcopy(candidate[matches[0] if matches else -1]["assets"][asset_key])

        if inserted:
            logger.info("Document inserted for session %s", session_id)
        else:
            logger.info("Document updated for session %s (asset %s, updated=%d)", session_id, asset_key, committed["updated"])
        return committed, inserted

    def _validated(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return SessionDocument.model_validate(doc).model_dump(by_alias=True)
        except ValidationError as e:
            raise StorageError(f"Refusing to store malformed record for session {doc.get('sessionId')}") from e

    def _require_open(self) -> None:
        if not self._opened:
            raise StorageError("Metadata store is not open")

    def _flush(self, docs: List[Dict[str, Any]]) -> None:
        tmp = self.location.with_name(f"{self.location.name}.tmp")
        payload = "".join(json.dumps(d, sort_keys=True) + "\n" for d in docs)
        try:
            with tmp.open("w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp, self.location)
        except OSError as e:
            raise StorageError(f"Could not persist metadata store: {e.strerror or e}") from e
