from __future__ import annotations

import os
import shutil
import stat
import tempfile
from pathlib import Path

_EXEC_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH


def ensure_parent(path: Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def safe_unlink(path: os.PathLike[str] | str) -> None:
    """Remove a file if it is there; a leftover temp file is not worth a failure."""
    try:
        Path(path).unlink(missing_ok=True)
    except OSError:
        return


def relpath_posix(path: Path, base_dir: Path) -> str:
    return Path(path).relative_to(base_dir).as_posix()


def fsync_dir(directory: Path) -> None:
    fd = os.open(directory, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def atomic_write_text(path: Path, text: str, *, encoding: str = "utf-8") -> None:
    """
    Replace `path` with `text` in one step.

    state.json is re-read by the next stage process, possibly after this one
    was killed, so a half-written file must never be visible under its name.
    """
    path = ensure_parent(path)
    with tempfile.NamedTemporaryFile(
        "w",
        encoding=encoding,
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
        delete=False,
    ) as tmp:
        tmp_path = Path(tmp.name)
        try:
            tmp.write(text)
            tmp.flush()
            os.fsync(tmp.fileno())
        except BaseException:
            tmp.close()
            safe_unlink(tmp_path)
            raise

    try:
        tmp_path.chmod(0o644)
        os.replace(tmp_path, path)
    except OSError:
        safe_unlink(tmp_path)
        raise
    fsync_dir(path.parent)


def atomic_move(src: Path, dest: Path) -> None:
    """Rename a completed download into place; src and dest share a filesystem."""
    ensure_parent(dest)
    os.replace(src, dest)
    fsync_dir(Path(dest).parent)


def reset_dir(path: Path) -> Path:
    """Empty directory at `path`, discarding whatever an earlier attempt left."""
    path = Path(path)
    shutil.rmtree(path, ignore_errors=True)
    path.mkdir(parents=True)
    return path


def make_executable(path: Path) -> None:
    # archives (zip in particular) routinely drop the mode bits of gradlew
    path.chmod(path.stat().st_mode | _EXEC_BITS)
