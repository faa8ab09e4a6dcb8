from __future__ import annotations

import os
from pathlib import Path

from android_build_pipeline.core import fs


def test_atomic_write_text_replaces_content(tmp_path: Path) -> None:
    text_path = tmp_path / "d1" / "state.json"
    fs.atomic_write_text(text_path, "hello\n")
    assert text_path.read_text() == "hello\n"

    fs.atomic_write_text(text_path, "updated")
    assert text_path.read_text() == "updated"
    # no temp files left next to the target
    assert [p.name for p in text_path.parent.iterdir()] == ["state.json"]


def test_atomic_move_and_relpath(tmp_path: Path) -> None:
    tmp = tmp_path / "source" / ".tmp" / "app.zip.part"
    fs.ensure_parent(tmp)
    tmp.write_bytes(b"PK")

    final = tmp_path / "source" / "app.zip"
    fs.atomic_move(tmp, final)
    assert final.read_bytes() == b"PK"
    assert not tmp.exists()
    assert fs.relpath_posix(final, tmp_path) == "source/app.zip"


def test_reset_dir_empties_previous_contents(tmp_path: Path) -> None:
    d = tmp_path / "extracted"
    (d / "old").mkdir(parents=True)
    (d / "old" / "file.txt").write_text("x")

    out = fs.reset_dir(d)
    assert out == d
    assert d.is_dir() and list(d.iterdir()) == []


def test_make_executable_and_safe_unlink(tmp_path: Path) -> None:
    script = tmp_path / "gradlew"
    script.write_text("#!/bin/sh\nexit 0\n")
    script.chmod(0o644)

    fs.make_executable(script)
    assert os.access(script, os.X_OK)

    fs.safe_unlink(script)
    fs.safe_unlink(script)
    assert not script.exists()
