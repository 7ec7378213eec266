"""Pydantic DTOs exposed via API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from lorekeeper.models.entities import (
    Answer,
    DataSource,
    Document,
    DocumentType,
    JobStatus,
    SourceStatus,
    SourceType,
    SyncJob,
)

SECRET_FIELDS = frozenset({"access_token", "api_token", "api_key", "token"})
MASK = "****"


def mask_config(config: dict[str, Any]) -> dict[str, Any]:
    """Replace credential values so they never leave the service."""
    return {key: (MASK if key in SECRET_FIELDS and value else value) for key, value in config.items()}


class SourceCreateRequest(BaseModel):
    instance_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    type: SourceType
    config: dict[str, Any] = Field(default_factory=dict)


class SourceUpdateRequest(BaseModel):
    name: str | None = None
    config: dict[str, Any] | None = None


class SourceResponse(BaseModel):
    id: str
    instance_id: str
    name: str
    type: SourceType
    config: dict[str, Any]
    status: SourceStatus
    last_sync: datetime | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, source: DataSource) -> "SourceResponse":
        return cls(
            id=source.id,
            instance_id=source.instance_id,
            name=source.name,
            type=source.type,
            config=mask_config(source.config.model_dump(mode="json")),
            status=source.status,
            last_sync=source.last_sync,
            created_at=source.created_at,
            updated_at=source.updated_at,
        )


class JobResponse(BaseModel):
    id: str
    data_source_id: str
    status: JobStatus
    started_at: datetime
    finished_at: datetime | None
    stats: dict[str, Any]
    detail: str | None

    @classmethod
    def from_entity(cls, job: SyncJob) -> "JobResponse":
        return cls(
            id=job.id,
            data_source_id=job.data_source_id,
            status=job.status,
            started_at=job.started_at,
            finished_at=job.finished_at,
            stats=job.stats,
            detail=job.detail,
        )


class DocumentCreateRequest(BaseModel):
    instance_id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    content: str = Field(min_length=1)
    type: DocumentType = DocumentType.TEXT
    data_source_id: str | None = None
    url: str | None = None
    author: str | None = None
    external_id: str | None = None
    tags: list[str] = Field(default_factory=list)


class ChunkResponse(BaseModel):
    id: str
    ordinal: int
    start_char: int
    end_char: int
    content: str


class DocumentResponse(BaseModel):
    id: str
    instance_id: str
    data_source_id: str | None
    title: str
    url: str | None
    type: DocumentType
    metadata: dict[str, Any]
    chunk_count: int
    chunks: list[ChunkResponse] | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, document: Document, include_chunks: bool = False) -> "DocumentResponse":
        chunks = None
        if include_chunks:
            chunks = [
                ChunkResponse(
                    id=chunk.id,
                    ordinal=chunk.ordinal,
                    start_char=chunk.start_char,
                    end_char=chunk.end_char,
                    content=chunk.content,
                )
                for chunk in document.chunks
            ]
        return cls(
            id=document.id,
            instance_id=document.instance_id,
            data_source_id=document.data_source_id,
            title=document.title,
            url=document.url,
            type=document.type,
            metadata=document.metadata.to_dict(),
            chunk_count=len(document.chunks),
            chunks=chunks,
            created_at=document.created_at,
            updated_at=document.updated_at,
        )


class AskRequest(BaseModel):
    instance_id: str = Field(min_length=1)
    question: str
    source: str = "api"
    channel: str | None = None
    thread_id: str | None = None


class CitationResponse(BaseModel):
    document_id: str
    chunk_id: str
    title: str
    url: str | None
    excerpt: str
    relevance: float


class FeedbackRequest(BaseModel):
    is_helpful: bool
    rating: int
    comment: str | None = None


class FeedbackResponse(BaseModel):
    is_helpful: bool
    rating: int
    comment: str | None
    created_at: datetime


class AnswerResponse(BaseModel):
    id: str
    query_id: str
    content: str
    citations: list[CitationResponse]
    confidence: float
    model: str | None
    processing_ms: int
    created_at: datetime
    feedback: FeedbackResponse | None = None

    @classmethod
    def from_entity(cls, answer: Answer) -> "AnswerResponse":
        feedback = None
        if answer.feedback is not None:
            feedback = FeedbackResponse(
                is_helpful=answer.feedback.is_helpful,
                rating=answer.feedback.rating,
                comment=answer.feedback.comment,
                created_at=answer.feedback.created_at,
            )
        return cls(
            id=answer.id,
            query_id=answer.query_id,
            content=answer.content,
            citations=[CitationResponse(**citation.to_dict()) for citation in answer.citations],
            confidence=answer.confidence,
            model=answer.model,
            processing_ms=answer.processing_ms,
            created_at=answer.created_at,
            feedback=feedback,
        )


class DeleteResponse(BaseModel):
    status: str = "ok"
    deleted: int


__all__ = [
    "SECRET_FIELDS",
    "mask_config",
    "SourceCreateRequest",
    "SourceUpdateRequest",
    "SourceResponse",
    "JobResponse",
    "DocumentCreateRequest",
    "ChunkResponse",
    "DocumentResponse",
    "AskRequest",
    "CitationResponse",
    "FeedbackRequest",
    "FeedbackResponse",
    "AnswerResponse",
    "DeleteResponse",
]
