from __future__ import annotations

from pathlib import Path

from android_build_pipeline.core import ProjectDirectoryNotFoundError


# Archiver metadata, never a project.
_IGNORED_DIRS = frozenset({"__MACOSX"})


def _is_candidate(p: Path) -> bool:
    return p.is_dir() and p.name not in _IGNORED_DIRS and not p.name.startswith(".")


def top_level_dirs(extract_dir: Path) -> list[Path]:
    """Immediate subdirectories of the extraction root, in lexical order."""
    return sorted((p for p in extract_dir.iterdir() if _is_candidate(p)), key=lambda p: p.name)


def select_project_dir(extract_dir: Path, *, require_single: bool = False) -> Path:
    """
    The project root is the first top-level directory of the archive.

    Lexical order makes "first" independent of the filesystem's listing
    order. With `require_single`, more than one candidate is an error too.
    """
    dirs = top_level_dirs(extract_dir)
    if not dirs:
        raise ProjectDirectoryNotFoundError(
            f"Archive has no top-level directory under {extract_dir}"
        )
    if require_single and len(dirs) > 1:
        names = ", ".join(d.name for d in dirs)
        raise ProjectDirectoryNotFoundError(
            f"Archive has {len(dirs)} top-level directories ({names}); expected exactly one"
        )
    return dirs[0]
