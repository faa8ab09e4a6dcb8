from __future__ import annotations

from pathlib import Path

APK_PATTERN = "*.apk"


def find_artifacts(project_dir: Path, *, pattern: str = APK_PATTERN) -> list[Path]:
    """Build outputs anywhere under the project tree, sorted for stable reports."""
    return sorted(p for p in project_dir.rglob(pattern) if p.is_file())
