"""Ingest pipeline orchestration."""

from __future__ import annotations

import sqlite3
from typing import Protocol, Sequence

import orjson

from lorekeeper.core.config import Settings
from lorekeeper.core.errors import DocumentValidationError, NotFoundError, StorageError
from lorekeeper.core.logging import get_logger, log_context
from lorekeeper.core.metrics import DOCUMENTS_INGESTED, INDEX_SIZE
from lorekeeper.db.sqlite import SQLiteDatabase
from lorekeeper.ingest.chunker import chunk_text
from lorekeeper.ingest.embeddings import EmbeddingModel, as_bytes, from_bytes, mean_vector
from lorekeeper.ingest.types import ChunkPayload, DocumentInput
from lorekeeper.models.entities import Chunk, Document, DocumentMetadata, DocumentType
from lorekeeper.sync.context import SyncContext
from lorekeeper.utils.ids import new_id
from lorekeeper.utils.time import ms_to_datetime, now_ms

logger = get_logger(__name__)


class Embedder(Protocol):
    def create_embedding(self, text: str, ctx: SyncContext | None = None) -> list[float]: ...


class IngestionPipeline:
    """Validate, persist, chunk, and embed documents."""

    def __init__(
        self,
        database: SQLiteDatabase,
        settings: Settings,
        embedder: Embedder | None = None,
    ) -> None:
        self.db = database
        self.settings = settings
        self.embedder = embedder or EmbeddingModel.get(settings.embedding_model)

    def ingest(self, document: DocumentInput, ctx: SyncContext | None = None) -> Document:
        """Store ``document`` and its chunks, returning the persisted record.

        Every chunk is embedded before the database is touched. Replacing the
        live document with the same data source and external id, inserting the
        new row, and writing its chunks then happen in one transaction, so a
        failed embedding or a cancelled ``ctx`` leaves the previous copy intact
        and a failed write stores nothing.
        """
        doc_type = _validate(document)
        if ctx is not None:
            ctx.check()

        spans = chunk_text(
            document.content,
            max_size=self.settings.max_chunk_size,
            min_size=self.settings.min_chunk_size,
            overlap=self.settings.chunk_overlap,
        )
        payloads: list[ChunkPayload] = []
        for ordinal, span in enumerate(spans):
            if ctx is not None:
                ctx.check()
            payloads.append(
                ChunkPayload(
                    id=new_id(),
                    ordinal=ordinal,
                    start_char=span.start,
                    end_char=span.end,
                    text=span.text,
                    vector=self.embedder.create_embedding(span.text, ctx=ctx),
                    metadata={"position": ordinal},
                )
            )
        doc_vector = mean_vector([payload.vector for payload in payloads])

        document_id = new_id()
        external_id = document.metadata.external_id
        now = now_ms()
        try:
            with self.db.transaction() as cursor:
                if document.data_source_id and external_id:
                    _replace_existing(cursor, document.data_source_id, external_id, now)
                cursor.execute(
                    """
                    INSERT INTO documents (
                      id, instance_id, data_source_id, title, content, url, type,
                      external_id, meta_json, embedding, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        document_id,
                        document.instance_id,
                        document.data_source_id,
                        document.title,
                        document.content,
                        document.url,
                        doc_type.value,
                        external_id,
                        orjson.dumps(document.metadata.to_dict()).decode("utf-8"),
                        as_bytes(doc_vector) if doc_vector is not None else None,
                        now,
                        now,
                    ],
                )
                _insert_chunks(cursor, document_id, payloads, now)
        except sqlite3.Error as exc:
            logger.error(
                "Storing document %r rolled back: %s",
                document.title,
                exc,
                extra=log_context(document_id=document_id, chunks=len(payloads)),
            )
            raise StorageError(f"failed to store document {document.title!r}: {exc}") from exc

        DOCUMENTS_INGESTED.inc()
        self._update_index_metric()
        logger.debug(
            "Ingested document %s with %s chunks",
            document_id,
            len(payloads),
            extra=log_context(document_id=document_id, instance_id=document.instance_id),
        )
        return self.get(document_id)

    def delete(self, document_id: str) -> None:
        """Soft-delete the document and hard-delete its chunks."""
        with self.db.transaction() as cursor:
            row = cursor.execute(
                "SELECT id FROM documents WHERE id = ? AND deleted_at IS NULL",
                [document_id],
            ).fetchone()
            if row is None:
                raise NotFoundError(f"document {document_id} not found")
            _soft_delete(cursor, [document_id], now_ms())
        self._update_index_metric()

    def delete_for_source(self, data_source_id: str) -> int:
        """Soft-delete every live document of a data source; return the count."""
        with self.db.transaction() as cursor:
            rows = cursor.execute(
                "SELECT id FROM documents WHERE data_source_id = ? AND deleted_at IS NULL",
                [data_source_id],
            ).fetchall()
            ids = [row["id"] for row in rows]
            if ids:
                _soft_delete(cursor, ids, now_ms())
        self._update_index_metric()
        return len(ids)

    def get(self, document_id: str) -> Document:
        row = self.db.query_one(
            "SELECT * FROM documents WHERE id = ? AND deleted_at IS NULL",
            [document_id],
        )
        if row is None:
            raise NotFoundError(f"document {document_id} not found")
        chunk_rows = self.db.query(
            "SELECT * FROM chunks WHERE document_id = ? ORDER BY ordinal ASC",
            [document_id],
        )
        return _row_to_document(row, [_row_to_chunk(chunk) for chunk in chunk_rows])

    def list_documents(self, instance_id: str, data_source_id: str | None = None, limit: int = 100) -> list[Document]:
        """Live documents of an instance, newest first, without chunks."""
        sql = "SELECT * FROM documents WHERE instance_id = ? AND deleted_at IS NULL"
        params: list[object] = [instance_id]
        if data_source_id:
            sql += " AND data_source_id = ?"
            params.append(data_source_id)
        sql += " ORDER BY created_at DESC LIMIT ?"
        params.append(limit)
        return [_row_to_document(row, []) for row in self.db.query(sql, params)]

    # Internal helpers -------------------------------------------------

    def _update_index_metric(self) -> None:
        row = self.db.query_one(
            """
            SELECT COUNT(*) AS count FROM chunks
            JOIN documents ON documents.id = chunks.document_id
            WHERE documents.deleted_at IS NULL
            """
        )
        INDEX_SIZE.set(int(row["count"]) if row else 0)


def _validate(document: DocumentInput) -> DocumentType:
    missing = [
        name
        for name, value in (
            ("instance_id", document.instance_id),
            ("title", document.title),
            ("content", document.content),
            ("type", document.type),
        )
        if not value or not str(value).strip()
    ]
    if missing:
        raise DocumentValidationError(f"missing required field(s): {', '.join(missing)}")
    try:
        return DocumentType(document.type)
    except ValueError as exc:
        allowed = ", ".join(member.value for member in DocumentType)
        raise DocumentValidationError(f"invalid document type {document.type!r}; expected one of {allowed}") from exc


def _replace_existing(cursor: sqlite3.Cursor, data_source_id: str, external_id: str, timestamp: int) -> None:
    rows = cursor.execute(
        """
        SELECT id FROM documents
        WHERE data_source_id = ? AND external_id = ? AND deleted_at IS NULL
        """,
        [data_source_id, external_id],
    ).fetchall()
    ids = [row["id"] for row in rows]
    if ids:
        logger.debug("Replacing %s previous version(s) of %s", len(ids), external_id)
        _soft_delete(cursor, ids, timestamp)


def _insert_chunks(
    cursor: sqlite3.Cursor,
    document_id: str,
    payloads: Sequence[ChunkPayload],
    timestamp: int,
) -> None:
    cursor.executemany(
        """
        INSERT INTO chunks (
          id, document_id, ordinal, content, start_char, end_char, embedding, meta_json, created_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        [
            (
                payload.id,
                document_id,
                payload.ordinal,
                payload.text,
                payload.start_char,
                payload.end_char,
                as_bytes(payload.vector),
                orjson.dumps(payload.metadata).decode("utf-8"),
                timestamp,
            )
            for payload in payloads
        ],
    )


def _soft_delete(cursor: sqlite3.Cursor, document_ids: Sequence[str], timestamp: int) -> None:
    placeholders = ",".join("?" for _ in document_ids)
    cursor.execute(f"DELETE FROM chunks WHERE document_id IN ({placeholders})", list(document_ids))
    cursor.execute(
        f"UPDATE documents SET deleted_at = ?, updated_at = ? WHERE id IN ({placeholders})",
        [timestamp, timestamp, *document_ids],
    )


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        id=row["id"],
        document_id=row["document_id"],
        ordinal=row["ordinal"],
        content=row["content"],
        start_char=row["start_char"],
        end_char=row["end_char"],
        embedding=from_bytes(row["embedding"]),
        metadata=orjson.loads(row["meta_json"]) if row["meta_json"] else {},
    )


def _row_to_document(row: sqlite3.Row, chunks: list[Chunk]) -> Document:
    return Document(
        id=row["id"],
        instance_id=row["instance_id"],
        data_source_id=row["data_source_id"],
        title=row["title"],
        content=row["content"],
        url=row["url"],
        type=DocumentType(row["type"]),
        metadata=DocumentMetadata.from_dict(orjson.loads(row["meta_json"]) if row["meta_json"] else None),
        chunks=chunks,
        embedding=from_bytes(row["embedding"]),
        created_at=ms_to_datetime(row["created_at"]),
        updated_at=ms_to_datetime(row["updated_at"]),
        deleted_at=ms_to_datetime(row["deleted_at"]),
    )


__all__ = ["IngestionPipeline", "Embedder"]
