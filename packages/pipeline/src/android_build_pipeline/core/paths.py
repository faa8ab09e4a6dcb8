from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True, slots=True)
class ScratchLayout:
    """
    Per-build scratch space. Every upload gets its own root, so concurrent
    builds never share files:

      {root}/state.json
      {root}/source/{filename}
      {root}/source/.tmp/
      {root}/extracted/{project}/
      {root}/gradle/gradle-{version}/
      {root}/build.log
      {root}/runs/{run_id}/events.jsonl
      {root}/runs/{run_id}/run_report.json
    """

    root: Path

    @classmethod
    def for_build(cls, scratch_root: Path, build_id: str) -> "ScratchLayout":
        return cls(root=Path(scratch_root) / build_id)

    def state_json(self) -> Path:
        return self.root / "state.json"

    def source_dir(self) -> Path:
        return self.root / "source"

    def source_tmp_dir(self) -> Path:
        return self.source_dir() / ".tmp"

    def source_file(self, filename: str) -> Path:
        return self.source_dir() / filename

    def extract_dir(self) -> Path:
        return self.root / "extracted"

    def gradle_root(self) -> Path:
        return self.root / "gradle"

    def gradle_home(self, version: str) -> Path:
        return self.gradle_root() / f"gradle-{version}"

    def build_log(self) -> Path:
        return self.root / "build.log"

    def runs_root(self) -> Path:
        return self.root / "runs"

    def run_dir(self, run_id: str) -> Path:
        return self.runs_root() / run_id

    def ensure_dirs(self) -> None:
        for p in (self.root, self.source_tmp_dir(), self.runs_root()):
            p.mkdir(parents=True, exist_ok=True)
