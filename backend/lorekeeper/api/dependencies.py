"""Shared FastAPI dependencies."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from lorekeeper.core.config import Settings
from lorekeeper.db.sqlite import SQLiteDatabase
from lorekeeper.ingest.pipeline import IngestionPipeline
from lorekeeper.retrieval import AnswerStore, LiteLLMClient, LLMClient, RAGAnswerService, VectorStore
from lorekeeper.sync.registry import build_connector
from lorekeeper.sync.service import ConnectorFactory, DataSourceService


@dataclass(slots=True)
class AppContainer:
    """Long-lived services owned by one application instance."""

    settings: Settings
    database: SQLiteDatabase
    llm: LLMClient
    ingestion: IngestionPipeline
    sources: DataSourceService
    answers: RAGAnswerService

    @classmethod
    def build(
        cls,
        settings: Settings,
        llm: LLMClient | None = None,
        connector_factory: ConnectorFactory = build_connector,
    ) -> "AppContainer":
        database = SQLiteDatabase(settings.db_path)
        database.ensure_schema()
        client = llm or LiteLLMClient(settings)
        # Documents and questions must be embedded by the same model.
        ingestion = IngestionPipeline(database, settings, embedder=client)
        sources = DataSourceService(database, settings, ingestion, connector_factory=connector_factory)
        answers = RAGAnswerService(AnswerStore(database), VectorStore(database), client, settings)
        return cls(
            settings=settings,
            database=database,
            llm=client,
            ingestion=ingestion,
            sources=sources,
            answers=answers,
        )

    def close(self) -> None:
        self.sources.shutdown(wait=True)
        self.database.close()


def get_container(request: Request) -> AppContainer:
    return request.app.state.container


def get_source_service(request: Request) -> DataSourceService:
    return get_container(request).sources


def get_ingestion(request: Request) -> IngestionPipeline:
    return get_container(request).ingestion


def get_answer_service(request: Request) -> RAGAnswerService:
    return get_container(request).answers


__all__ = [
    "AppContainer",
    "get_container",
    "get_source_service",
    "get_ingestion",
    "get_answer_service",
]
