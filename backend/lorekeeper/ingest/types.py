"""Common ingestion data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from lorekeeper.models.entities import DocumentMetadata, DocumentType


@dataclass(slots=True)
class DocumentInput:
    """A normalized document ready to be ingested."""

    instance_id: str
    title: str
    content: str
    type: DocumentType | str
    data_source_id: str | None = None
    url: str | None = None
    metadata: DocumentMetadata = field(default_factory=DocumentMetadata)


@dataclass(slots=True)
class ChunkPayload:
    """Chunk produced by the chunker prior to persistence."""

    id: str
    ordinal: int
    start_char: int
    end_char: int
    text: str
    vector: list[float]
    metadata: dict[str, Any]


__all__ = ["DocumentInput", "ChunkPayload"]
