"""Producer/worker fan-out shared by every source connector."""

from __future__ import annotations

import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from lorekeeper.core.errors import FatalSyncError
from lorekeeper.core.logging import get_logger, log_context
from lorekeeper.core.metrics import ITEMS_SKIPPED, SYNC_DURATION, SYNC_RUNS
from lorekeeper.models.entities import DataSource
from lorekeeper.sync.context import SyncContext

if TYPE_CHECKING:
    from lorekeeper.ingest.pipeline import IngestionPipeline
    from lorekeeper.sync.base import SourceConnector
    from lorekeeper.sync.http import ApiClient

logger = get_logger(__name__)

DEFAULT_WORKERS = 5
_POLL_INTERVAL = 0.05
_DONE = object()


class SyncState(str, Enum):
    PENDING = "pending"
    FETCHING_METADATA = "fetching_metadata"
    FANNING_OUT = "fanning_out"
    DONE = "done"
    FAILED = "failed"


@dataclass(slots=True)
class Page:
    """One upstream listing page; ``next_cursor`` is None on the last page."""

    items: list[Any]
    next_cursor: Any | None = None


@dataclass(slots=True)
class SyncRun:
    """Per-run state handed to connector hooks; read-only once fan-out starts."""

    data_source: DataSource
    config: Any
    client: "ApiClient"
    metadata: Any = None


@dataclass(slots=True)
class SyncReport:
    """Counters for one sync run. Workers update it under ``_lock``."""

    source_type: str
    state: SyncState = SyncState.PENDING
    items_seen: int = 0
    documents_ingested: int = 0
    items_skipped: int = 0
    items_failed: int = 0
    error: str | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def add(self, seen: int = 0, ingested: int = 0, skipped: int = 0, failed: int = 0) -> None:
        with self._lock:
            self.items_seen += seen
            self.documents_ingested += ingested
            self.items_skipped += skipped
            self.items_failed += failed

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            return {
                "source_type": self.source_type,
                "state": self.state.value,
                "items_seen": self.items_seen,
                "documents_ingested": self.documents_ingested,
                "items_skipped": self.items_skipped,
                "items_failed": self.items_failed,
                "error": self.error,
            }


class _FirstError:
    """Keeps the first group-level failure and cancels the shared context."""

    def __init__(self, ctx: SyncContext) -> None:
        self._ctx = ctx
        self._lock = threading.Lock()
        self.error: BaseException | None = None

    def fail(self, exc: BaseException) -> None:
        with self._lock:
            if self.error is None:
                self.error = exc
        self._ctx.cancel(f"aborted by {type(exc).__name__}")


class SyncPipeline:
    """Run one connector sync: metadata fetch, then a bounded fan-out.

    A single producer pages through the upstream listing and feeds a bounded
    queue; ``workers`` threads turn each item into documents and hand them to
    the ingestion pipeline. Item-level failures are logged and counted. A
    fatal failure from any thread, or cancellation of ``ctx``, cancels every
    other thread and is re-raised once all of them have returned.
    """

    def __init__(
        self,
        ingestion: "IngestionPipeline",
        workers: int = DEFAULT_WORKERS,
        queue_size: int | None = None,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.ingestion = ingestion
        self.workers = workers
        self.queue_size = queue_size or workers * 2

    def run(self, ctx: SyncContext, connector: "SourceConnector", data_source: DataSource) -> SyncReport:
        source_type = connector.source_type.value
        report = SyncReport(source_type=source_type)
        run_ctx = ctx.child()
        started = time.perf_counter()
        client = None
        try:
            config = connector.resolve_config(data_source)
            self._transition(report, SyncState.FETCHING_METADATA, data_source)
            client = connector.create_client(config)
            run = SyncRun(data_source=data_source, config=config, client=client)
            run.metadata = connector.fetch_metadata(run_ctx, run)
            self._transition(report, SyncState.FANNING_OUT, data_source)
            self._fan_out(run_ctx, connector, run, report)
        except Exception as exc:
            report.error = str(exc)
            self._transition(report, SyncState.FAILED, data_source)
            SYNC_RUNS.labels(source_type=source_type, outcome="failed").inc()
            raise
        finally:
            if client is not None:
                client.close()
            SYNC_DURATION.labels(source_type=source_type).observe(time.perf_counter() - started)

        self._transition(report, SyncState.DONE, data_source)
        SYNC_RUNS.labels(source_type=source_type, outcome="done").inc()
        logger.info(
            "Sync of %s finished: %s ingested, %s skipped, %s failed",
            data_source.id,
            report.documents_ingested,
            report.items_skipped,
            report.items_failed,
            extra=log_context(data_source_id=data_source.id, **report.to_dict()),
        )
        return report

    # Internal helpers -------------------------------------------------

    def _fan_out(
        self,
        ctx: SyncContext,
        connector: "SourceConnector",
        run: SyncRun,
        report: SyncReport,
    ) -> None:
        items: queue.Queue[Any] = queue.Queue(maxsize=self.queue_size)
        group = _FirstError(ctx)
        prefix = f"sync-{connector.source_type.value}"

        with ThreadPoolExecutor(max_workers=self.workers + 1, thread_name_prefix=prefix) as executor:
            executor.submit(self._produce, ctx, connector, run, report, items, group)
            for _ in range(self.workers):
                executor.submit(self._consume, ctx, connector, run, report, items, group)

        if group.error is not None:
            raise group.error
        ctx.check()

    def _produce(
        self,
        ctx: SyncContext,
        connector: "SourceConnector",
        run: SyncRun,
        report: SyncReport,
        items: "queue.Queue[Any]",
        group: _FirstError,
    ) -> None:
        try:
            cursor: Any | None = None
            while True:
                ctx.check()
                page = connector.list_page(ctx, run, cursor)
                for item in page.items:
                    _put(ctx, items, item)
                    report.add(seen=1)
                if page.next_cursor is None:
                    break
                cursor = page.next_cursor
        except BaseException as exc:
            group.fail(exc)
        finally:
            for _ in range(self.workers):
                if not _put_quietly(ctx, items, _DONE):
                    break

    def _consume(
        self,
        ctx: SyncContext,
        connector: "SourceConnector",
        run: SyncRun,
        report: SyncReport,
        items: "queue.Queue[Any]",
        group: _FirstError,
    ) -> None:
        while True:
            try:
                item = items.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                if ctx.cancelled:
                    return
                continue
            if item is _DONE or ctx.cancelled:
                return
            try:
                self._process(ctx, connector, run, report, item)
            except BaseException as exc:
                group.fail(exc)
                return

    def _process(
        self,
        ctx: SyncContext,
        connector: "SourceConnector",
        run: SyncRun,
        report: SyncReport,
        item: Any,
    ) -> None:
        try:
            documents = connector.to_documents(ctx, run, item)
            if not documents:
                report.add(skipped=1)
                return
            for document in documents:
                self.ingestion.ingest(document, ctx)
                report.add(ingested=1)
        except FatalSyncError:
            raise
        except Exception as exc:
            report.add(failed=1)
            ITEMS_SKIPPED.labels(source_type=connector.source_type.value).inc()
            logger.warning(
                "Skipping %s: %s",
                connector.describe_item(item),
                exc,
                exc_info=True,
                extra=log_context(data_source_id=run.data_source.id, item=connector.describe_item(item)),
            )

    def _transition(self, report: SyncReport, state: SyncState, data_source: DataSource) -> None:
        report.state = state
        logger.info(
            "Sync of %s is %s",
            data_source.id,
            state.value,
            extra=log_context(data_source_id=data_source.id, source_type=report.source_type, state=state.value),
        )


def _put(ctx: SyncContext, items: "queue.Queue[Any]", item: Any) -> None:
    """Blocking put that gives up with SyncCancelledError once ``ctx`` is cancelled."""
    while True:
        ctx.check()
        try:
            items.put(item, timeout=_POLL_INTERVAL)
            return
        except queue.Full:
            continue


def _put_quietly(ctx: SyncContext, items: "queue.Queue[Any]", item: Any) -> bool:
    while not ctx.cancelled:
        try:
            items.put(item, timeout=_POLL_INTERVAL)
            return True
        except queue.Full:
            continue
    return False


__all__ = ["SyncPipeline", "SyncReport", "SyncRun", "SyncState", "Page", "DEFAULT_WORKERS"]
