"""Cosine-similarity search over stored chunk embeddings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from lorekeeper.db.sqlite import SQLiteDatabase
from lorekeeper.ingest.embeddings import cosine_similarity, from_bytes

DEFAULT_MIN_SIMILARITY = 0.7


@dataclass(slots=True)
class SearchResult:
    chunk_id: str
    document_id: str
    title: str
    url: str | None
    content: str
    score: float


class VectorStore:
    """Similarity search scoped to one instance's live documents."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self.db = database

    def search_similar(
        self,
        instance_id: str,
        embedding: Sequence[float],
        limit: int = 5,
        min_similarity: float = DEFAULT_MIN_SIMILARITY,
    ) -> list[SearchResult]:
        """Top ``limit`` chunks scoring strictly above ``min_similarity``, best first."""
        if limit <= 0:
            return []
        rows = self.db.query(
            """
            SELECT
              chunks.id AS chunk_id,
              chunks.document_id,
              chunks.ordinal,
              chunks.content,
              chunks.embedding,
              documents.title,
              documents.url
            FROM chunks
            JOIN documents ON documents.id = chunks.document_id
            WHERE documents.instance_id = ?
              AND documents.deleted_at IS NULL
              AND chunks.embedding IS NOT NULL
            """,
            [instance_id],
        )
        results: list[tuple[float, str, int, SearchResult]] = []
        for row in rows:
            vector = from_bytes(row["embedding"])
            if not vector or len(vector) != len(embedding):
                continue
            score = cosine_similarity(vector, embedding)
            if score <= min_similarity:
                continue
            result = SearchResult(
                chunk_id=row["chunk_id"],
                document_id=row["document_id"],
                title=row["title"],
                url=row["url"],
                content=row["content"],
                score=score,
            )
            results.append((score, row["document_id"], row["ordinal"], result))
        results.sort(key=lambda item: (-item[0], item[1], item[2]))
        return [item[3] for item in results[:limit]]


__all__ = ["VectorStore", "SearchResult", "DEFAULT_MIN_SIMILARITY"]
