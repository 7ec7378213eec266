"""Connector strategy interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar, Generic, TypeVar

import requests

from lorekeeper.core.config import Settings
from lorekeeper.core.errors import ConfigurationError
from lorekeeper.ingest.types import DocumentInput
from lorekeeper.models.entities import DataSource, SourceType
from lorekeeper.sync.context import SyncContext
from lorekeeper.sync.http import ApiClient
from lorekeeper.sync.pipeline import Page, SyncPipeline, SyncReport, SyncRun
from lorekeeper.sync.ratelimit import RateLimiter
from lorekeeper.sync.retry import RetryPolicy

if TYPE_CHECKING:
    from lorekeeper.ingest.pipeline import IngestionPipeline

ConfigT = TypeVar("ConfigT")


class SourceConnector(ABC, Generic[ConfigT]):
    """Per-source strategy plugged into :class:`SyncPipeline`.

    Subclasses declare their source type, config model, required config
    fields and request pacing, and implement the four hooks below. The
    limiter and retry policy are created once per connector and shared by
    every worker of a run.
    """

    source_type: ClassVar[SourceType]
    config_type: ClassVar[type]
    required_fields: ClassVar[tuple[str, ...]] = ()
    rate_interval: ClassVar[float] = 1.0

    def __init__(
        self,
        ingestion: "IngestionPipeline",
        settings: Settings,
        limiter: RateLimiter | None = None,
        retry: RetryPolicy | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.ingestion = ingestion
        self.settings = settings
        self.limiter = limiter or RateLimiter(self.rate_interval)
        self.retry = retry or RetryPolicy(
            max_retries=settings.max_retries,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
        )
        self.session = session

    def sync(self, ctx: SyncContext, data_source: DataSource) -> SyncReport:
        pipeline = SyncPipeline(self.ingestion, workers=self.settings.sync_workers)
        return pipeline.run(ctx, self, data_source)

    def resolve_config(self, data_source: DataSource) -> ConfigT:
        config = data_source.config
        if not isinstance(config, self.config_type):
            raise ConfigurationError(
                f"data source {data_source.id} has {type(config).__name__}, expected {self.config_type.__name__}"
            )
        config.require(*self.required_fields)
        return config

    def api_client(
        self,
        base_url: str,
        headers: dict[str, str] | None = None,
        auth: tuple[str, str] | None = None,
    ) -> ApiClient:
        return ApiClient(
            base_url,
            limiter=self.limiter,
            retry=self.retry,
            headers=headers,
            auth=auth,
            timeout=self.settings.http_timeout,
            session=self.session,
        )

    def describe_item(self, item: Any) -> str:
        return repr(item)[:120]

    @abstractmethod
    def create_client(self, config: ConfigT) -> ApiClient:
        """Build the authenticated client for one run."""

    @abstractmethod
    def fetch_metadata(self, ctx: SyncContext, run: SyncRun) -> Any:
        """Fetch the top-level descriptor; failures abort the run."""

    @abstractmethod
    def list_page(self, ctx: SyncContext, run: SyncRun, cursor: Any | None) -> Page:
        """Return the page at ``cursor`` (None for the first page)."""

    @abstractmethod
    def to_documents(self, ctx: SyncContext, run: SyncRun, item: Any) -> list[DocumentInput]:
        """Build the documents for one listed item; an empty list skips it."""


__all__ = ["SourceConnector"]
