from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from android_build_pipeline.core import (
    GENERIC_FAILURE_EXIT_CODE,
    StateFieldMissingError,
    atomic_write_text,
)


class BuildStatus(StrEnum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


@dataclass(frozen=True, slots=True)
class BuildOutcome:
    status: BuildStatus
    exit_code: int
    artifact_count: int

    @property
    def succeeded(self) -> bool:
        return self.status is BuildStatus.SUCCESS

    def to_dict(self) -> dict[str, object]:
        return {
            "status": self.status.value,
            "exit_code": self.exit_code,
            "artifact_count": self.artifact_count,
        }


def classify_build(*, exit_code: int, artifact_count: int) -> BuildOutcome:
    """
    A build passes only when Gradle exits 0 and at least one artifact exists;
    a zero exit code alone is not trusted.
    """
    ok = exit_code == 0 and artifact_count > 0
    return BuildOutcome(
        status=BuildStatus.SUCCESS if ok else BuildStatus.FAILURE,
        exit_code=exit_code,
        artifact_count=artifact_count,
    )


class ScratchState(BaseModel):
    """
    Scratch record carried from stage to stage. Each stage fills in its own
    fields; later stages read them through `require()`.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    # fetch
    filename: Optional[str] = None
    bucket_name: Optional[str] = None
    object_key: Optional[str] = None
    source_path: Optional[str] = None
    source_sha256: Optional[str] = None
    source_bytes: Optional[int] = Field(default=None, ge=0)

    # extract
    media_type: Optional[str] = None
    extract_dir: Optional[str] = None
    project_dir: Optional[str] = None

    # build
    build_success: Optional[bool] = None
    build_exit_code: Optional[int] = None
    artifact_count: Optional[int] = Field(default=None, ge=0)
    artifacts: list[str] = Field(default_factory=list)
    timed_out: bool = False

    def require(self, name: str, *, stage: str | None = None) -> Any:
        value = getattr(self, name)
        if value is None or value == "":
            raise StateFieldMissingError(name, stage=stage)
        return value

    def record_outcome(self, outcome: BuildOutcome, *, artifacts: list[str]) -> None:
        self.build_success = outcome.succeeded
        self.build_exit_code = outcome.exit_code
        self.artifact_count = outcome.artifact_count
        self.artifacts = list(artifacts)

    def outcome(self) -> BuildOutcome | None:
        """The recorded build outcome, or None when no build ever finished."""
        if self.build_success is None:
            return None
        if self.build_success:
            return BuildOutcome(
                status=BuildStatus.SUCCESS,
                exit_code=self.build_exit_code or 0,
                artifact_count=self.artifact_count or 0,
            )
        return BuildOutcome(
            status=BuildStatus.FAILURE,
            exit_code=(
                self.build_exit_code
                if self.build_exit_code is not None
                else GENERIC_FAILURE_EXIT_CODE
            ),
            artifact_count=self.artifact_count or 0,
        )


class StateStore:
    """
    JSON file holding the ScratchState between isolated stage processes.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> ScratchState:
        if not self.path.exists():
            return ScratchState()
        return ScratchState.model_validate_json(self.path.read_text(encoding="utf-8"))

    def save(self, state: ScratchState) -> None:
        atomic_write_text(self.path, state.model_dump_json(indent=2) + "\n")
