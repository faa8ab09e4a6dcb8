from __future__ import annotations

import re
from pathlib import PurePosixPath

_safe_re = re.compile(r"[^a-zA-Z0-9._\-]+")


def sanitize(name: str) -> str:
    name = name.strip().strip("/")
    name = _safe_re.sub("_", name)
    # never let a name resolve to the directory itself or its parent
    if name in ("", ".", ".."):
        return "upload"
    return name


def object_filename(object_key: str) -> str:
    """Local file name for an object key: its sanitised basename."""
    return sanitize(PurePosixPath(object_key.rstrip("/")).name)
