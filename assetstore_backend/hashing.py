from __future__ import annotations

import hashlib
from pathlib import Path

from .errors import StorageError


CHUNK_SIZE = 65536  # 64KB for memory-efficient hashing


def stream_digest(stream) -> str:
    """MD5 hex digest of a binary stream, read to completion."""
    md5 = hashlib.md5()
    for chunk in iter(lambda: stream.read(CHUNK_SIZE), b""):
        md5.update(chunk)
    return md5.hexdigest()


def file_digest(path: Path) -> str:
    """Digest of the bytes actually on disk at ``path``.

    Always computed from the persisted file rather than the request buffer so
    the recorded hash matches what a later read returns.
    """
    try:
        with Path(path).open("rb") as fh:
            return stream_digest(fh)
    except OSError as e:
        raise StorageError(f"Could not hash {path}: {e.strerror or e}") from e
