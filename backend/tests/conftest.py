"""Test fixtures for Lorekeeper."""

from __future__ import annotations

import sys
import threading
from pathlib import Path
from typing import Any

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from lorekeeper.core.config import Settings, get_settings  # noqa: E402
from lorekeeper.db.sqlite import SQLiteDatabase  # noqa: E402
from lorekeeper.ingest.embeddings import EmbeddingModel  # noqa: E402
from lorekeeper.ingest.pipeline import IngestionPipeline  # noqa: E402
from lorekeeper.sync.context import SyncContext  # noqa: E402


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset cached singletons and environment between tests."""
    monkeypatch.setenv("LORE_DB_PATH", str(tmp_path / "lore.db"))
    monkeypatch.delenv("LORE_CONFIG", raising=False)
    EmbeddingModel._instances.clear()
    get_settings.cache_clear()
    yield
    EmbeddingModel._instances.clear()
    get_settings.cache_clear()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        db_path=tmp_path / "lore.db",
        max_chunk_size=200,
        min_chunk_size=20,
        chunk_overlap=20,
        sync_workers=3,
        max_retries=2,
        retry_base_delay=0.0,
        retry_max_delay=0.0,
        log_json=False,
    )


@pytest.fixture
def db(settings: Settings) -> SQLiteDatabase:
    database = SQLiteDatabase(settings.db_path)
    database.ensure_schema()
    yield database
    database.close()


@pytest.fixture
def ingestion(db: SQLiteDatabase, settings: Settings) -> IngestionPipeline:
    return IngestionPipeline(db, settings)


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, text: str | None = None) -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else ("" if payload is None else str(payload))

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("no JSON body")
        return self._payload


class FakeSession:
    """Stands in for ``requests.Session``; routes map URL suffixes to responses.

    A route value may be a payload (lists are JSON arrays), a FakeResponse,
    a tuple of either (served in order, the last one repeating), or a
    callable receiving ``(method, url, kwargs)``.
    """

    def __init__(self, routes: dict[str, Any] | None = None) -> None:
        self.routes: dict[str, Any] = dict(routes or {})
        self.headers: dict[str, str] = {}
        self.auth: Any = None
        self.calls: list[tuple[str, str, dict[str, Any]]] = []
        self.closed = False
        self._served: dict[str, int] = {}
        self._lock = threading.Lock()

    def request(self, method: str, url: str, timeout: float | None = None, **kwargs: Any) -> FakeResponse:
        with self._lock:
            self.calls.append((method, url, kwargs))
        for suffix in sorted(self.routes, key=len, reverse=True):
            if url.endswith(suffix):
                return self._resolve(suffix, method, url, kwargs)
        return FakeResponse(404, {"message": "not found"})

    def close(self) -> None:
        self.closed = True

    def calls_to(self, suffix: str) -> list[tuple[str, str, dict[str, Any]]]:
        return [call for call in self.calls if call[1].endswith(suffix)]

    def _resolve(self, suffix: str, method: str, url: str, kwargs: dict[str, Any]) -> FakeResponse:
        value = self.routes[suffix]
        if isinstance(value, tuple):
            with self._lock:
                index = self._served.get(suffix, 0)
                self._served[suffix] = index + 1
            value = value[min(index, len(value) - 1)]
        if callable(value):
            value = value(method, url, kwargs)
        if isinstance(value, FakeResponse):
            return value
        return FakeResponse(200, value)


class FakeLLM:
    """Deterministic LLM client using the hashed embedding model."""

    model = "fake/model"

    def __init__(self, reply: str = "Generated answer.", fail_with: Exception | None = None) -> None:
        self.reply = reply
        self.fail_with = fail_with
        self.prompts: list[tuple[str, str]] = []
        self.embedded: list[str] = []
        self._model = EmbeddingModel.get("hashed")

    def create_embedding(self, text: str, ctx: SyncContext | None = None) -> list[float]:
        self.embedded.append(text)
        return self._model.create_embedding(text)

    def complete(self, system_prompt: str, user_prompt: str, temperature: float, max_tokens: int) -> str:
        self.prompts.append((system_prompt, user_prompt))
        if self.fail_with is not None:
            raise self.fail_with
        return self.reply


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture(scope="session")
def sample_text() -> str:
    return "Title\n\nParagraph one.\n\nParagraph two is here."


@pytest.fixture
def make_source(db: SQLiteDatabase, settings: Settings, ingestion: IngestionPipeline):
    """Create a persisted data source and return its entity."""
    from lorekeeper.sync.service import DataSourceService

    service = DataSourceService(db, settings, ingestion)

    def factory(source_type: str, config: dict[str, Any], instance_id: str = "inst-1", name: str = "source"):
        return service.create(instance_id, name, source_type, config)

    yield factory
    service.shutdown()
