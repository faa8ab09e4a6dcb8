from __future__ import annotations

import tarfile
import zipfile
from pathlib import Path, PurePosixPath

from android_build_pipeline.core import UnsupportedFormatError

from .detect import MediaType


def _check_zip_member(name: str, dest: Path) -> None:
    p = PurePosixPath(name.replace("\\", "/"))
    if p.is_absolute() or ".." in p.parts:
        raise UnsupportedFormatError(f"Archive member escapes extraction dir: {name}")
    target = (dest / p).resolve()
    if not target.is_relative_to(dest.resolve()):
        raise UnsupportedFormatError(f"Archive member escapes extraction dir: {name}")


def _extract_zip(path: Path, dest: Path) -> int:
    try:
        with zipfile.ZipFile(path) as zf:
            members = zf.infolist()
            for m in members:
                _check_zip_member(m.filename, dest)
            zf.extractall(dest)
            return len(members)
    except zipfile.BadZipFile as e:
        raise UnsupportedFormatError(f"Corrupt zip archive {path.name}: {e}") from e


def _extract_tar(path: Path, dest: Path) -> int:
    try:
        with tarfile.open(path, "r:*") as tf:
            members = tf.getmembers()
            tf.extractall(dest, filter="data")
            return len(members)
    except tarfile.FilterError as e:
        raise UnsupportedFormatError(f"Unsafe tar member in {path.name}: {e}") from e
    except tarfile.TarError as e:
        raise UnsupportedFormatError(f"Corrupt tar archive {path.name}: {e}") from e


def extract_archive(path: Path, media_type: MediaType, dest: Path) -> int:
    """
    Expand `path` into `dest` and return the number of archive members.
    Members that would land outside `dest` abort the extraction.
    """
    if media_type is MediaType.ZIP:
        return _extract_zip(path, dest)
    return _extract_tar(path, dest)
