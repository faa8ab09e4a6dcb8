from __future__ import annotations

import hashlib
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True, slots=True)
class FileDigest:
    """Content fingerprint of a downloaded object or build output."""

    sha256: str
    bytes: int


def sha256_file(path: Path) -> FileDigest:
    path = Path(path)
    with path.open("rb") as f:
        h = hashlib.file_digest(f, "sha256")
    return FileDigest(sha256=h.hexdigest(), bytes=path.stat().st_size)
