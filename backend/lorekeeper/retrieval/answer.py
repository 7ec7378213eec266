"""Retrieval-augmented answering and answer persistence."""

from __future__ import annotations

import sqlite3
import time
from typing import Sequence

import orjson

from lorekeeper.core.config import Settings
from lorekeeper.core.errors import EmptyQuestionError, NotFoundError, StorageError, ValidationError
from lorekeeper.core.logging import get_logger, log_context
from lorekeeper.core.metrics import ANSWER_LATENCY, ANSWERS_GENERATED
from lorekeeper.db.sqlite import SQLiteDatabase
from lorekeeper.models.entities import Answer, Citation, Feedback, Query, QueryContext, QueryStatus
from lorekeeper.retrieval.llm import LLMClient
from lorekeeper.retrieval.vector_index import SearchResult, VectorStore
from lorekeeper.utils.ids import new_id
from lorekeeper.utils.time import ms_to_datetime, now_ms

logger = get_logger(__name__)

NO_CONTEXT_ANSWER = "No relevant information found in the knowledge base."
EXCERPT_CHARS = 300

SYSTEM_PROMPT = """You are a helpful assistant that answers questions using only the provided context.
Your answers should be:
1. Accurate and based only on the provided context
2. Clear and well-structured
3. Professional but conversational in tone
4. Include relevant quotes or references to the source documents when appropriate

If the context does not contain enough information to answer the question fully,
say so and explain what information is missing."""


def build_prompt(question: str, results: Sequence[SearchResult]) -> str:
    """User prompt listing each retrieved chunk as ``[Document i: title]``."""
    parts = ["Context:\n"]
    for index, result in enumerate(results, start=1):
        parts.append(f"\n[Document {index}: {result.title}]\n{result.content}\n")
    parts.append(f"\nQuestion: {question}\n\nAnswer: ")
    return "".join(parts)


class AnswerStore:
    """Persistence for queries, answers, and answer feedback."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self.db = database

    def create_query(self, instance_id: str, question: str, context: QueryContext) -> Query:
        query_id = new_id()
        now = now_ms()
        self.db.write(
            """
            INSERT INTO queries (id, instance_id, question, context_json, status, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            [
                query_id,
                instance_id,
                question,
                orjson.dumps(context.to_dict()).decode("utf-8"),
                QueryStatus.PENDING.value,
                now,
                now,
            ],
        )
        return Query(
            id=query_id,
            instance_id=instance_id,
            question=question,
            context=context,
            status=QueryStatus.PENDING,
            created_at=ms_to_datetime(now),
        )

    def get_query(self, query_id: str) -> Query:
        row = self.db.query_one("SELECT * FROM queries WHERE id = ?", [query_id])
        if row is None:
            raise NotFoundError(f"query {query_id} not found")
        context = orjson.loads(row["context_json"]) if row["context_json"] else {}
        return Query(
            id=row["id"],
            instance_id=row["instance_id"],
            question=row["question"],
            context=QueryContext(**context),
            status=QueryStatus(row["status"]),
            created_at=ms_to_datetime(row["created_at"]),
            error=row["error"],
        )

    def mark_failed(self, query_id: str, error: str) -> None:
        self.db.write(
            "UPDATE queries SET status = ?, error = ?, updated_at = ? WHERE id = ?",
            [QueryStatus.FAILED.value, error, now_ms(), query_id],
        )

    def create_answer(self, answer: Answer) -> None:
        """Insert the answer and mark its query answered, atomically."""
        created = int(answer.created_at.timestamp() * 1000)
        try:
            with self.db.transaction() as cursor:
                cursor.execute(
                    """
                    INSERT INTO answers (
                      id, query_id, content, citations_json, confidence, model, processing_ms, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        answer.id,
                        answer.query_id,
                        answer.content,
                        orjson.dumps([citation.to_dict() for citation in answer.citations]).decode("utf-8"),
                        answer.confidence,
                        answer.model,
                        answer.processing_ms,
                        created,
                    ],
                )
                cursor.execute(
                    "UPDATE queries SET status = ?, updated_at = ? WHERE id = ?",
                    [QueryStatus.ANSWERED.value, created, answer.query_id],
                )
        except sqlite3.Error as exc:
            raise StorageError(f"failed to store answer for query {answer.query_id}: {exc}") from exc

    def get_answer(self, answer_id: str) -> Answer:
        row = self.db.query_one("SELECT * FROM answers WHERE id = ?", [answer_id])
        if row is None:
            raise NotFoundError(f"answer {answer_id} not found")
        feedback = None
        if row["feedback_at"] is not None:
            feedback = Feedback(
                is_helpful=bool(row["feedback_helpful"]),
                rating=row["feedback_rating"],
                comment=row["feedback_comment"],
                created_at=ms_to_datetime(row["feedback_at"]),
            )
        return Answer(
            id=row["id"],
            query_id=row["query_id"],
            content=row["content"],
            citations=[Citation(**item) for item in orjson.loads(row["citations_json"])],
            confidence=row["confidence"],
            model=row["model"],
            processing_ms=row["processing_ms"] or 0,
            created_at=ms_to_datetime(row["created_at"]),
            feedback=feedback,
        )

    def add_feedback(self, answer_id: str, is_helpful: bool, rating: int, comment: str | None = None) -> Answer:
        if not 1 <= rating <= 5:
            raise ValidationError("rating must be between 1 and 5")
        updated = self.db.write(
            """
            UPDATE answers
            SET feedback_helpful = ?, feedback_rating = ?, feedback_comment = ?, feedback_at = ?
            WHERE id = ?
            """,
            [int(is_helpful), rating, comment, now_ms(), answer_id],
        )
        if updated == 0:
            raise NotFoundError(f"answer {answer_id} not found")
        return self.get_answer(answer_id)


class RAGAnswerService:
    """Answer questions from an instance's indexed documents."""

    def __init__(
        self,
        store: AnswerStore,
        vector_store: VectorStore,
        llm: LLMClient,
        settings: Settings,
    ) -> None:
        self.store = store
        self.vector_store = vector_store
        self.llm = llm
        self.settings = settings

    def answer_question(
        self,
        instance_id: str,
        question: str,
        context: QueryContext | None = None,
    ) -> Answer:
        """Embed, retrieve, generate, and persist an answer.

        The query row is written first with status ``pending``. Any later
        failure marks it ``failed`` with the error text and re-raises; the
        query is never left pending silently.
        """
        if not question or not question.strip():
            raise EmptyQuestionError()
        started = time.perf_counter()
        query = self.store.create_query(instance_id, question, context or QueryContext())
        try:
            answer = self._generate(instance_id, query, started)
            self.store.create_answer(answer)
        except Exception as exc:
            logger.error(
                "Answering query %s failed: %s",
                query.id,
                exc,
                extra=log_context(query_id=query.id, instance_id=instance_id),
            )
            try:
                self.store.mark_failed(query.id, str(exc))
            except sqlite3.Error:
                logger.exception("Could not mark query %s as failed", query.id)
            raise

        ANSWERS_GENERATED.labels(grounded="true" if answer.citations else "false").inc()
        ANSWER_LATENCY.observe(time.perf_counter() - started)
        return answer

    def get_answer(self, answer_id: str) -> Answer:
        return self.store.get_answer(answer_id)

    def _generate(self, instance_id: str, query: Query, started: float) -> Answer:
        embedding = self.llm.create_embedding(query.question)
        results = self.vector_store.search_similar(
            instance_id,
            embedding,
            limit=self.settings.top_k,
            min_similarity=self.settings.min_similarity,
        )
        if not results:
            content = NO_CONTEXT_ANSWER
            model = None
        else:
            content = self.llm.complete(
                SYSTEM_PROMPT,
                build_prompt(query.question, results),
                temperature=self.settings.temperature,
                max_tokens=self.settings.max_tokens,
            )
            model = self.llm.model

        citations = [
            Citation(
                document_id=result.document_id,
                chunk_id=result.chunk_id,
                excerpt=result.content[:EXCERPT_CHARS],
                url=result.url,
                title=result.title,
                relevance=result.score,
            )
            for result in results
        ]
        confidence = sum(citation.relevance for citation in citations) / len(citations) if citations else 0.0
        now = now_ms()
        return Answer(
            id=new_id(),
            query_id=query.id,
            content=content,
            citations=citations,
            confidence=confidence,
            model=model,
            processing_ms=int((time.perf_counter() - started) * 1000),
            created_at=ms_to_datetime(now),
        )


__all__ = ["RAGAnswerService", "AnswerStore", "build_prompt", "SYSTEM_PROMPT", "NO_CONTEXT_ANSWER"]
