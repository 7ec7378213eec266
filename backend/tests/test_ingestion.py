"""Tests for the ingestion pipeline."""

from __future__ import annotations

from unittest import mock

import pytest

from lorekeeper.core.errors import DocumentValidationError, NotFoundError, StorageError, SyncCancelledError
from lorekeeper.core.metrics import REGISTRY
from lorekeeper.ingest.chunker import ChunkSpan
from lorekeeper.ingest.embeddings import EmbeddingModel, cosine_similarity
from lorekeeper.ingest.types import DocumentInput
from lorekeeper.models.entities import DocumentMetadata, DocumentType
from lorekeeper.sync.context import SyncContext

LONG_TEXT = ("Release notes describe the deployment schedule. " * 5 + "\n\n") * 6


def _doc(**overrides) -> DocumentInput:
    values = {
        "instance_id": "inst-1",
        "title": "Release notes",
        "content": LONG_TEXT,
        "type": DocumentType.MARKDOWN,
    }
    values.update(overrides)
    return DocumentInput(**values)


def _chunk_count(db, document_id: str) -> int:
    return db.query_one("SELECT COUNT(*) AS n FROM chunks WHERE document_id = ?", [document_id])["n"]


def test_ingest_stores_document_with_ordered_chunks(ingestion) -> None:
    document = ingestion.ingest(_doc(url="https://docs/release"))
    assert document.title == "Release notes"
    assert document.type is DocumentType.MARKDOWN
    assert len(document.chunks) > 1
    assert [chunk.ordinal for chunk in document.chunks] == list(range(len(document.chunks)))
    for chunk in document.chunks:
        assert chunk.content == LONG_TEXT[chunk.start_char : chunk.end_char]
        assert chunk.metadata == {"position": chunk.ordinal}
        assert chunk.embedding is not None and len(chunk.embedding) == 384
    assert document.chunks[-1].end_char == len(LONG_TEXT)
    assert document.embedding is not None
    assert cosine_similarity(document.embedding, document.chunks[0].embedding) > 0.5
    assert REGISTRY.get_sample_value("lore_index_chunks") == len(document.chunks)


def test_short_document_has_one_chunk(ingestion) -> None:
    document = ingestion.ingest(_doc(content="A short note.", type="text"))
    assert len(document.chunks) == 1
    assert document.chunks[0].content == "A short note."
    assert document.type is DocumentType.TEXT


@pytest.mark.parametrize(
    "overrides",
    [
        {"title": ""},
        {"content": "   "},
        {"instance_id": ""},
        {"type": "spreadsheet"},
    ],
)
def test_invalid_documents_are_rejected(ingestion, db, overrides) -> None:
    with pytest.raises(DocumentValidationError):
        ingestion.ingest(_doc(**overrides))
    assert db.query_one("SELECT COUNT(*) AS n FROM documents")["n"] == 0


def test_cancelled_context_stores_nothing(ingestion, db) -> None:
    ctx = SyncContext()
    ctx.cancel()
    with pytest.raises(SyncCancelledError):
        ingestion.ingest(_doc(), ctx)
    assert db.query_one("SELECT COUNT(*) AS n FROM documents")["n"] == 0


def test_chunk_batch_failure_stores_nothing(ingestion, db) -> None:
    spans = [ChunkSpan(0, 10, "first one."), ChunkSpan(8, 4, "backwards")]
    with mock.patch("lorekeeper.ingest.pipeline.chunk_text", return_value=spans):
        with pytest.raises(StorageError):
            ingestion.ingest(_doc())
    assert db.query_one("SELECT COUNT(*) AS n FROM documents")["n"] == 0
    assert db.query_one("SELECT COUNT(*) AS n FROM chunks")["n"] == 0


def _ingest_guide(pipeline, source_id: str, content: str):
    return pipeline.ingest(
        _doc(data_source_id=source_id, metadata=DocumentMetadata(external_id="docs/guide.md"), content=content)
    )


def _assert_only_copy(ingestion, db, source_id: str, document) -> None:
    listed = ingestion.list_documents("inst-1", data_source_id=source_id)
    assert [item.id for item in listed] == [document.id]
    assert ingestion.get(document.id).content == "old text"
    assert _chunk_count(db, document.id) == len(document.chunks) == 1
    assert db.query_one("SELECT COUNT(*) AS n FROM documents")["n"] == 1


def test_failed_storage_keeps_previous_copy(ingestion, make_source, db) -> None:
    source = make_source("code_repo", {"access_token": "t", "repository": "acme/docs"})
    old = _ingest_guide(ingestion, source.id, "old text")
    spans = [ChunkSpan(0, 10, "first one."), ChunkSpan(8, 4, "backwards")]
    with mock.patch("lorekeeper.ingest.pipeline.chunk_text", return_value=spans):
        with pytest.raises(StorageError):
            _ingest_guide(ingestion, source.id, "new text")
    _assert_only_copy(ingestion, db, source.id, old)


def test_failed_embedding_keeps_previous_copy(ingestion, db, settings, make_source) -> None:
    from lorekeeper.ingest.pipeline import IngestionPipeline

    class BrokenEmbedder:
        def create_embedding(self, text: str, ctx=None) -> list[float]:
            raise RuntimeError("embedding provider down")

    source = make_source("code_repo", {"access_token": "t", "repository": "acme/docs"})
    old = _ingest_guide(ingestion, source.id, "old text")
    with pytest.raises(RuntimeError, match="provider down"):
        _ingest_guide(IngestionPipeline(db, settings, embedder=BrokenEmbedder()), source.id, "new text")
    _assert_only_copy(ingestion, db, source.id, old)


def test_cancellation_while_embedding_keeps_previous_copy(ingestion, db, settings, make_source) -> None:
    from lorekeeper.ingest.pipeline import IngestionPipeline

    ctx = SyncContext()
    received = []

    class CancellingEmbedder:
        def create_embedding(self, text: str, ctx=None) -> list[float]:
            received.append(ctx)
            ctx.cancel("shutting down")
            return EmbeddingModel.get("hashed").create_embedding(text)

    source = make_source("code_repo", {"access_token": "t", "repository": "acme/docs"})
    old = _ingest_guide(ingestion, source.id, "old text")
    pipeline = IngestionPipeline(db, settings, embedder=CancellingEmbedder())
    with pytest.raises(SyncCancelledError):
        pipeline.ingest(
            _doc(data_source_id=source.id, metadata=DocumentMetadata(external_id="docs/guide.md")),
            ctx,
        )
    assert received == [ctx]
    _assert_only_copy(ingestion, db, source.id, old)


def test_reingest_replaces_same_external_id(ingestion, make_source, db) -> None:
    source = make_source("code_repo", {"access_token": "t", "repository": "acme/docs"})
    first = ingestion.ingest(
        _doc(data_source_id=source.id, metadata=DocumentMetadata(external_id="docs/guide.md"), content="old text")
    )
    second = ingestion.ingest(
        _doc(data_source_id=source.id, metadata=DocumentMetadata(external_id="docs/guide.md"), content="new text")
    )
    with pytest.raises(NotFoundError):
        ingestion.get(first.id)
    assert _chunk_count(db, first.id) == 0
    assert ingestion.get(second.id).content == "new text"
    listed = ingestion.list_documents("inst-1", data_source_id=source.id)
    assert [document.id for document in listed] == [second.id]


def test_delete_document(ingestion, db) -> None:
    document = ingestion.ingest(_doc())
    ingestion.delete(document.id)
    with pytest.raises(NotFoundError):
        ingestion.get(document.id)
    assert _chunk_count(db, document.id) == 0
    with pytest.raises(NotFoundError):
        ingestion.delete(document.id)
    with pytest.raises(NotFoundError):
        ingestion.delete("missing")


def test_delete_for_source(ingestion, make_source) -> None:
    source = make_source("wiki_space", {"base_url": "https://w", "username": "u", "api_token": "t", "space_key": "K"})
    for index in range(3):
        ingestion.ingest(_doc(data_source_id=source.id, content=f"page {index} body"))
    kept = ingestion.ingest(_doc(content="unrelated"))
    assert ingestion.delete_for_source(source.id) == 3
    assert [document.id for document in ingestion.list_documents("inst-1")] == [kept.id]


def test_list_documents_is_scoped_by_instance(ingestion) -> None:
    ingestion.ingest(_doc(instance_id="a", content="alpha"))
    ingestion.ingest(_doc(instance_id="b", content="beta"))
    listed = ingestion.list_documents("a")
    assert [document.content for document in listed] == ["alpha"]
    assert listed[0].chunks == []


def test_custom_embedder_is_used(db, settings) -> None:
    from lorekeeper.ingest.pipeline import IngestionPipeline

    calls = []

    class RecordingEmbedder:
        def create_embedding(self, text: str, ctx=None) -> list[float]:
            calls.append(text)
            return EmbeddingModel.get("hashed").create_embedding(text)

    pipeline = IngestionPipeline(db, settings, embedder=RecordingEmbedder())
    document = pipeline.ingest(_doc(content="one chunk only"))
    assert calls == ["one chunk only"]
    assert len(document.chunks) == 1
