from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class FetchedObject:
    bucket: str
    object_key: str
    filename: str
    path: str
    sha256: str
    bytes: int
    content_type: str | None
    retrieved_at_utc: str

    def to_dict(self) -> dict[str, object]:
        return {
            "bucket": self.bucket,
            "object_key": self.object_key,
            "filename": self.filename,
            "path": self.path,
            "sha256": self.sha256,
            "bytes": self.bytes,
            "content_type": self.content_type,
            "retrieved_at_utc": self.retrieved_at_utc,
        }
