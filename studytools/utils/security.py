from __future__ import annotations

import re
import uuid
from pathlib import Path

_SESSION_ID_RE = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-4[0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}$"
)
_UNSAFE_CHARS_RE = re.compile(r"[^A-Za-z0-9._ -]+")


def normalize_session_id(session_id: str) -> str:
    """Validate and normalize a session id.

    Session ids double as download capabilities, so only canonical UUID4
    strings are accepted before any filesystem path is derived from them.
    """
    if not isinstance(session_id, str):
        raise ValueError("Invalid session id")
    session_id = session_id.strip()
    if not _SESSION_ID_RE.match(session_id):
        raise ValueError("Invalid session id")
    return str(uuid.UUID(session_id))


def sanitize_filename(name: str | None, default: str = "file") -> str:
    """Reduce a client-supplied filename to a safe basename."""
    raw = (name or "").replace("\\", "/").split("/")[-1]
    cleaned = _UNSAFE_CHARS_RE.sub("_", raw).strip(" .")
    if not cleaned:
        return default
    return cleaned[:150]


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
        raise ValueError("Path traversal attempt")
    return resolved
