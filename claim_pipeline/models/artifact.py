"""Artifact data models."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class ArtifactKind(str, Enum):
    """Content kind inferred for an uploaded file."""
    IMAGE = "image"
    DOCUMENT = "document"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class Artifact:
    """
    A stored blob belonging to a claim job.

    Attributes:
        key: Store key, laid out as ``users/{userId}/{fileName}``
        size: Size in bytes as reported by the store
        last_modified: Last modification time, when the store reports one
        content_type: Content type, when known at listing time
        kind: Classification used to route the artifact to an extractor
    """
    key: str
    size: int = 0
    last_modified: Optional[datetime] = None
    content_type: Optional[str] = None
    kind: ArtifactKind = ArtifactKind.UNSUPPORTED

    @property
    def file_name(self) -> str:
        return self.key.rsplit("/", 1)[-1]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "size": self.size,
            "lastModified": self.last_modified.isoformat() if self.last_modified else None,
            "contentType": self.content_type,
            "kind": self.kind.value,
        }
