from __future__ import annotations

import re
from pathlib import Path

from .errors import InvalidRequest


# Session ids are client-assigned; only accept characters that are safe as a
# single directory name on any platform.
_SESSION_ID_RE = re.compile(r"[A-Za-z0-9][A-Za-z0-9_.-]{0,127}")


def normalize_session_id(session_id: str) -> str:
    """Validate a session id and return it unchanged.

    Session ids double as directory names under the base dir, so anything that
    could be read as a path component ("..", separators) is rejected.
    """
    if not isinstance(session_id, str):
        raise InvalidRequest("Invalid session id")
    if not _SESSION_ID_RE.fullmatch(session_id) or session_id in {".", ".."}:
        raise InvalidRequest("Invalid session id")
    return session_id


def is_safe_basename(name: str) -> bool:
    """Allow only simple filenames (no directories)."""
    if not isinstance(name, str) or not name:
        return False
    if name in {".", ".."}:
        return False
    if name != Path(name).name:
        return False
    if "/" in name or "\\" in name or "\x00" in name:
        return False
    return True


def safe_join(base_dir: Path, *parts: str) -> Path:
    """Join paths and ensure the result stays within base_dir."""
    base_dir = base_dir.resolve()
    candidate = base_dir
    for part in parts:
        candidate = candidate / part
    resolved = candidate.resolve()
    if resolved == base_dir:
        return resolved
    if base_dir not in resolved.parents:
        raise InvalidRequest("Path traversal attempt")
    return resolved


def derive_asset_key(filename: str) -> str:
    """Asset key is the filename up to its first dot.

    ``tone.wav`` and ``tone.txt`` share the key ``tone``; ``a.b.wav`` is ``a``.
    """
    if not is_safe_basename(filename):
        raise InvalidRequest("Invalid filename")
    key = filename.split(".", 1)[0]
    if not key:
        raise InvalidRequest("Filename must not start with a dot")
    return key
