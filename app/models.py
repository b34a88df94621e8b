"""Data classes shared by the ingestion, storage and retrieval layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List


@dataclass(frozen=True)
class Chunk:
    """A bounded-length segment of a document's extracted text."""

    id: str
    text: str
    ordinal: int

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "text": self.text, "ordinal": self.ordinal}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Chunk":
        return cls(id=str(data["id"]), text=str(data["text"]), ordinal=int(data["ordinal"]))


@dataclass
class DocumentRecord:
    """Upload metadata plus the chunk sequence derived from the upload.

    The record is written and read as a whole; ``chunks`` keeps insertion
    order and may be empty when nothing could be extracted.
    """

    document_id: str
    original_name: str
    storage_key: str
    size_bytes: int
    mime_type: str
    uploaded_at: datetime
    chunks: List[Chunk] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Serialise to the camelCase layout used in the ``.meta.json`` sidecar."""
        return {
            "documentId": self.document_id,
            "originalName": self.original_name,
            "storageKey": self.storage_key,
            "sizeBytes": self.size_bytes,
            "mimeType": self.mime_type,
            "uploadedAt": self.uploaded_at.isoformat(),
            "chunks": [c.to_dict() for c in self.chunks],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DocumentRecord":
        """Rebuild a record; raises ``KeyError``/``ValueError`` on missing or bad fields."""
        return cls(
            document_id=str(data["documentId"]),
            original_name=str(data["originalName"]),
            storage_key=str(data["storageKey"]),
            size_bytes=int(data["sizeBytes"]),
            mime_type=str(data["mimeType"]),
            uploaded_at=datetime.fromisoformat(data["uploadedAt"]),
            chunks=[Chunk.from_dict(c) for c in data.get("chunks", [])],
        )
