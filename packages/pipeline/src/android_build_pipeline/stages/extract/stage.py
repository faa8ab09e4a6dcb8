from __future__ import annotations

from pathlib import Path
from typing import Any

from android_build_pipeline.core import UnsupportedFormatError, reset_dir
from android_build_pipeline.pipeline.context import RunContext
from android_build_pipeline.pipeline.events import EventType

from .archive import extract_archive
from .detect import ARCHIVE_TYPES, detect_media_type, is_extractable
from .project import select_project_dir, top_level_dirs


def stage_extract(ctx: RunContext) -> dict[str, Any]:
    state = ctx.state
    source = Path(state.require("source_path", stage="extract"))
    state.extract_dir = None
    state.project_dir = None
    if not source.is_file():
        raise UnsupportedFormatError(f"Fetched object is missing on disk: {source}")

    media_type = detect_media_type(source)
    state.media_type = media_type.value

    ctx.emit(
        EventType.EXTRACT_DETECTED,
        stage="extract",
        filename=state.filename,
        media_type=media_type.value,
    )

    if media_type not in ARCHIVE_TYPES:
        raise UnsupportedFormatError(
            f"{state.filename or source.name} is {media_type.value}, not an archive"
        )
    if not is_extractable(source, media_type):
        raise UnsupportedFormatError(
            f"{state.filename or source.name} is {media_type.value}, "
            "which is not a supported archive format (zip or tar)"
        )

    extract_dir = reset_dir(ctx.layout.extract_dir())
    members = extract_archive(source, media_type, extract_dir)
    state.extract_dir = str(extract_dir)

    candidates = top_level_dirs(extract_dir)
    project_dir = select_project_dir(
        extract_dir, require_single=ctx.settings.require_single_project_dir
    )
    state.project_dir = str(project_dir)

    warnings: list[str] = []
    if len(candidates) > 1:
        warnings.append(
            f"Archive has {len(candidates)} top-level directories; using {project_dir.name}"
        )

    ctx.emit(
        EventType.EXTRACT_FINISH,
        stage="extract",
        members=members,
        project_dir=str(project_dir),
        candidates=[c.name for c in candidates],
    )

    return {
        "media_type": media_type.value,
        "extract_dir": str(extract_dir),
        "project_dir": str(project_dir),
        "_warnings": warnings,
        "_metrics": {"members": members, "top_level_dirs": len(candidates)},
    }
