from __future__ import annotations

import base64
import json
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional


@dataclass(frozen=True, slots=True)
class ArtifactRef:
    """
    A reference to an artifact produced by a stage.
    """

    path: str
    bytes: int
    sha256: str
    content_type: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Event:
    """
    Structured event emitted by the pipeline.
    """

    type: str
    ts_utc: str
    run_id: str
    stage: Optional[str] = None
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class UploadEvent:
    """
    A storage-object-finalized notification, correlated with the build id the
    orchestrating platform issued for it. Fields may be empty: the event shape
    is not guaranteed upstream and the fetch stage checks it.
    """

    bucket: str
    object_key: str
    build_id: str
    event_type: Optional[str] = None
    generation: Optional[str] = None

    def to_dict(self) -> dict[str, object]:
        return {
            "bucket": self.bucket,
            "object_key": self.object_key,
            "build_id": self.build_id,
            "event_type": self.event_type,
            "generation": self.generation,
        }


def _decoded_data(message: Mapping[str, Any]) -> dict[str, Any]:
    raw = message.get("data")
    if not raw:
        return {}
    try:
        decoded = json.loads(base64.b64decode(raw))
    except (ValueError, TypeError):
        return {}
    return decoded if isinstance(decoded, dict) else {}


def upload_event_from_message(body: Mapping[str, Any], *, build_id: str) -> UploadEvent:
    """
    Accepts a Pub/Sub push body ({"message": {"attributes": {...}, "data": ...}}),
    a bare message, or a bare attribute mapping.

    Attributes win; the base64 JSON object resource in `data` (keys `bucket`
    and `name`) is only consulted when an attribute is missing.
    """
    message = body.get("message", body)
    if not isinstance(message, Mapping):
        message = {}
    attributes = message.get("attributes")
    if not isinstance(attributes, Mapping):
        attributes = message

    data = _decoded_data(message)

    bucket = str(attributes.get("bucketId") or data.get("bucket") or "").strip()
    object_key = str(attributes.get("objectId") or data.get("name") or "").strip()
    event_type = attributes.get("eventType")
    generation = attributes.get("objectGeneration") or data.get("generation")

    return UploadEvent(
        bucket=bucket,
        object_key=object_key,
        build_id=build_id,
        event_type=str(event_type) if event_type else None,
        generation=str(generation) if generation else None,
    )
