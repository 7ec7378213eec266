"""Internal dataclasses representing persisted entities."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from lorekeeper.models.source_config import SourceConfig


class SourceType(str, Enum):
    CODE_REPO = "code_repo"
    WIKI_SPACE = "wiki_space"
    WORKSPACE_DB = "workspace_db"
    CHAT_CHANNELS = "chat_channels"


class SourceStatus(str, Enum):
    INACTIVE = "inactive"
    ACTIVE = "active"
    SYNCING = "syncing"
    ERROR = "error"


class DocumentType(str, Enum):
    MARKDOWN = "markdown"
    TEXT = "text"
    HTML = "html"
    PDF = "pdf"


class QueryStatus(str, Enum):
    PENDING = "pending"
    ANSWERED = "answered"
    FAILED = "failed"


class JobStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(slots=True)
class DataSource:
    id: str
    instance_id: str
    name: str
    type: SourceType
    config: SourceConfig
    status: SourceStatus
    last_sync: datetime | None
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None


@dataclass(slots=True)
class DocumentMetadata:
    author: str | None = None
    external_id: str | None = None
    source_path: str | None = None
    tags: list[str] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "author": self.author,
            "external_id": self.external_id,
            "source_path": self.source_path,
            "tags": list(self.tags),
            "extra": dict(self.extra),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "DocumentMetadata":
        data = data or {}
        return cls(
            author=data.get("author"),
            external_id=data.get("external_id"),
            source_path=data.get("source_path"),
            tags=list(data.get("tags") or []),
            extra=dict(data.get("extra") or {}),
        )


@dataclass(slots=True)
class Chunk:
    id: str
    document_id: str
    ordinal: int
    content: str
    start_char: int
    end_char: int
    embedding: list[float] | None
    metadata: dict[str, Any]


@dataclass(slots=True)
class Document:
    id: str
    instance_id: str
    data_source_id: str | None
    title: str
    content: str
    url: str | None
    type: DocumentType
    metadata: DocumentMetadata
    chunks: list[Chunk]
    embedding: list[float] | None
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None


@dataclass(slots=True)
class QueryContext:
    source: str = "api"
    channel: str | None = None
    thread_id: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "channel": self.channel,
            "thread_id": self.thread_id,
            "extra": dict(self.extra),
        }


@dataclass(slots=True)
class Query:
    id: str
    instance_id: str
    question: str
    context: QueryContext
    status: QueryStatus
    created_at: datetime
    error: str | None = None


@dataclass(slots=True)
class Citation:
    document_id: str
    chunk_id: str
    excerpt: str
    url: str | None
    title: str
    relevance: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_id": self.document_id,
            "chunk_id": self.chunk_id,
            "excerpt": self.excerpt,
            "url": self.url,
            "title": self.title,
            "relevance": self.relevance,
        }


@dataclass(slots=True)
class Feedback:
    is_helpful: bool
    rating: int
    comment: str | None
    created_at: datetime


@dataclass(slots=True)
class Answer:
    id: str
    query_id: str
    content: str
    citations: list[Citation]
    confidence: float
    model: str | None
    processing_ms: int
    created_at: datetime
    feedback: Feedback | None = None


@dataclass(slots=True)
class SyncJob:
    id: str
    data_source_id: str
    status: JobStatus
    started_at: datetime
    finished_at: datetime | None = None
    stats: dict[str, Any] = field(default_factory=dict)
    detail: str | None = None


__all__ = [
    "SourceType",
    "SourceStatus",
    "DocumentType",
    "QueryStatus",
    "JobStatus",
    "DataSource",
    "DocumentMetadata",
    "Chunk",
    "Document",
    "QueryContext",
    "Query",
    "Citation",
    "Feedback",
    "Answer",
    "SyncJob",
]
