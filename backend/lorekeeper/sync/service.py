"""Data source management and sync orchestration."""

from __future__ import annotations

import sqlite3
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable, Mapping

import orjson

from lorekeeper.core.config import Settings
from lorekeeper.core.errors import ConflictError, NotFoundError, StorageError, SyncCancelledError
from lorekeeper.core.logging import get_logger, log_context
from lorekeeper.db.sqlite import SQLiteDatabase
from lorekeeper.ingest.pipeline import IngestionPipeline
from lorekeeper.models.entities import DataSource, JobStatus, SourceStatus, SourceType, SyncJob
from lorekeeper.models.source_config import parse_source_config
from lorekeeper.sync.base import SourceConnector
from lorekeeper.sync.context import SyncContext
from lorekeeper.sync.pipeline import SyncReport
from lorekeeper.sync.registry import build_connector
from lorekeeper.utils.ids import new_id
from lorekeeper.utils.time import ms_to_datetime, now_ms

logger = get_logger(__name__)

ConnectorFactory = Callable[[SourceType, IngestionPipeline, Settings], SourceConnector]


class DataSourceService:
    """CRUD for data sources plus synchronous and background sync runs.

    Background runs are tracked as ``sync_jobs`` rows; each keeps its own
    cancellable context so it can be stopped through :meth:`cancel_job` or
    :meth:`shutdown`.
    """

    def __init__(
        self,
        database: SQLiteDatabase,
        settings: Settings,
        ingestion: IngestionPipeline,
        connector_factory: ConnectorFactory = build_connector,
        max_concurrent_syncs: int = 2,
    ) -> None:
        self.db = database
        self.settings = settings
        self.ingestion = ingestion
        self.connector_factory = connector_factory
        self._executor = ThreadPoolExecutor(max_workers=max_concurrent_syncs, thread_name_prefix="sync-job")
        self._jobs: dict[str, tuple[Future[None], SyncContext, str]] = {}
        self._lock = threading.Lock()

    # CRUD -------------------------------------------------------------

    def create(
        self,
        instance_id: str,
        name: str,
        source_type: SourceType | str,
        config: Mapping[str, Any] | None = None,
    ) -> DataSource:
        kind = SourceType(source_type)
        parsed = parse_source_config(kind.value, dict(config or {}))
        source_id = new_id()
        now = now_ms()
        self.db.write(
            """
            INSERT INTO data_sources (id, instance_id, name, type, config_json, status, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                source_id,
                instance_id,
                name,
                kind.value,
                _dump_config(parsed),
                SourceStatus.INACTIVE.value,
                now,
                now,
            ],
        )
        logger.info(
            "Created %s data source %s",
            kind.value,
            source_id,
            extra=log_context(data_source_id=source_id, instance_id=instance_id),
        )
        return self.get(source_id)

    def get(self, source_id: str) -> DataSource:
        row = self.db.query_one(
            "SELECT * FROM data_sources WHERE id = ? AND deleted_at IS NULL",
            [source_id],
        )
        if row is None:
            raise NotFoundError(f"data source {source_id} not found")
        return _row_to_source(row)

    def list_sources(self, instance_id: str) -> list[DataSource]:
        rows = self.db.query(
            "SELECT * FROM data_sources WHERE instance_id = ? AND deleted_at IS NULL ORDER BY created_at ASC",
            [instance_id],
        )
        return [_row_to_source(row) for row in rows]

    def update(
        self,
        source_id: str,
        name: str | None = None,
        config: Mapping[str, Any] | None = None,
    ) -> DataSource:
        current = self.get(source_id)
        new_name = name if name is not None else current.name
        new_config = (
            parse_source_config(current.type.value, dict(config)) if config is not None else current.config
        )
        self.db.write(
            "UPDATE data_sources SET name = ?, config_json = ?, updated_at = ? WHERE id = ?",
            [new_name, _dump_config(new_config), now_ms(), source_id],
        )
        return self.get(source_id)

    def delete(self, source_id: str, cascade: bool = False) -> None:
        """Soft-delete a data source.

        Refused with ConflictError while a sync job for it is running, or
        while live documents reference it unless ``cascade`` is set, in which
        case those documents are deleted first.
        """
        self.get(source_id)
        with self._lock:
            running = self._running_job_for(source_id)
        if running is not None:
            raise ConflictError(f"data source {source_id} has a sync in progress")
        row = self.db.query_one(
            "SELECT COUNT(*) AS count FROM documents WHERE data_source_id = ? AND deleted_at IS NULL",
            [source_id],
        )
        live_documents = int(row["count"]) if row else 0
        if live_documents and not cascade:
            raise ConflictError(f"data source {source_id} still has {live_documents} document(s)")
        if live_documents:
            self.ingestion.delete_for_source(source_id)
        now = now_ms()
        self.db.write(
            "UPDATE data_sources SET deleted_at = ?, updated_at = ? WHERE id = ?",
            [now, now, source_id],
        )

    def update_status(self, source_id: str, status: SourceStatus) -> None:
        """Record ``status``; reaching ACTIVE also stamps ``last_sync``."""
        now = now_ms()
        try:
            updated = self.db.write(
                """
                UPDATE data_sources
                SET status = ?,
                    last_sync = CASE WHEN ? = 'active' THEN ? ELSE last_sync END,
                    updated_at = ?
                WHERE id = ? AND deleted_at IS NULL
                """,
                [status.value, status.value, now, now, source_id],
            )
        except sqlite3.Error as exc:
            raise StorageError(f"failed to set status of data source {source_id} to {status.value}: {exc}") from exc
        if updated == 0:
            raise NotFoundError(f"data source {source_id} not found")

    # Sync -------------------------------------------------------------

    def sync(self, ctx: SyncContext, source_id: str) -> SyncReport:
        """Run a sync to completion in the calling thread.

        The source moves to SYNCING first and to ACTIVE or ERROR afterwards.
        A failing status update is raised as StorageError in place of the
        sync outcome.
        """
        data_source = self.get(source_id)
        self.update_status(source_id, SourceStatus.SYNCING)
        connector = self.connector_factory(data_source.type, self.ingestion, self.settings)
        try:
            report = connector.sync(ctx, data_source)
        except Exception as exc:
            logger.error(
                "Sync of %s failed: %s",
                source_id,
                exc,
                extra=log_context(data_source_id=source_id, source_type=data_source.type.value),
            )
            try:
                self.update_status(source_id, SourceStatus.ERROR)
            except Exception as status_exc:
                raise StorageError(f"sync failed ({exc}) and status update failed: {status_exc}") from status_exc
            raise
        self.update_status(source_id, SourceStatus.ACTIVE)
        return report

    def trigger_sync(self, source_id: str, timeout: float | None = None) -> SyncJob:
        """Start a background sync and return its job record."""
        self.get(source_id)
        with self._lock:
            if self._running_job_for(source_id) is not None:
                raise ConflictError(f"data source {source_id} is already syncing")
            job_id = new_id()
            self.db.write(
                "INSERT INTO sync_jobs (id, data_source_id, status, started_at) VALUES (?, ?, ?, ?)",
                [job_id, source_id, JobStatus.RUNNING.value, now_ms()],
            )
            ctx = SyncContext(timeout=timeout)
            future = self._executor.submit(self._run_job, job_id, ctx, source_id)
            self._jobs[job_id] = (future, ctx, source_id)
        return self.get_job(job_id)

    def get_job(self, job_id: str) -> SyncJob:
        row = self.db.query_one("SELECT * FROM sync_jobs WHERE id = ?", [job_id])
        if row is None:
            raise NotFoundError(f"sync job {job_id} not found")
        return _row_to_job(row)

    def wait_job(self, job_id: str, timeout: float | None = None) -> SyncJob:
        """Block until the job finishes (or ``timeout`` passes) and return it."""
        with self._lock:
            entry = self._jobs.get(job_id)
        if entry is not None:
            try:
                entry[0].result(timeout=timeout)
            except FutureTimeoutError:
                pass
        return self.get_job(job_id)

    def cancel_job(self, job_id: str) -> SyncJob:
        with self._lock:
            entry = self._jobs.get(job_id)
        if entry is None:
            job = self.get_job(job_id)
            if job.status is JobStatus.RUNNING:
                raise ConflictError(f"sync job {job_id} is not owned by this process")
            return job
        entry[1].cancel("cancelled by request")
        return self.get_job(job_id)

    def shutdown(self, wait: bool = True) -> None:
        """Cancel running jobs and stop the executor."""
        with self._lock:
            entries = list(self._jobs.values())
        for _, ctx, _ in entries:
            ctx.cancel("shutting down")
        self._executor.shutdown(wait=wait)

    # Internal helpers -------------------------------------------------

    def _run_job(self, job_id: str, ctx: SyncContext, source_id: str) -> None:
        try:
            report = self.sync(ctx, source_id)
        except SyncCancelledError as exc:
            self._finish_job(job_id, JobStatus.CANCELLED, {}, str(exc))
        except Exception as exc:
            logger.exception("Sync job %s failed", job_id, extra=log_context(job_id=job_id, data_source_id=source_id))
            self._finish_job(job_id, JobStatus.FAILED, {}, str(exc))
        else:
            self._finish_job(job_id, JobStatus.COMPLETED, report.to_dict(), None)
        finally:
            with self._lock:
                self._jobs.pop(job_id, None)

    def _finish_job(self, job_id: str, status: JobStatus, stats: dict[str, Any], detail: str | None) -> None:
        self.db.write(
            "UPDATE sync_jobs SET status = ?, finished_at = ?, stats_json = ?, detail = ? WHERE id = ?",
            [status.value, now_ms(), orjson.dumps(stats).decode("utf-8"), detail, job_id],
        )
        logger.info(
            "Sync job %s %s",
            job_id,
            status.value,
            extra=log_context(job_id=job_id, status=status.value),
        )

    def _running_job_for(self, source_id: str) -> str | None:
        for job_id, (future, _, job_source) in list(self._jobs.items()):
            if job_source == source_id and not future.done():
                return job_id
        return None


def _dump_config(config: Any) -> str:
    return orjson.dumps(config.model_dump(mode="json")).decode("utf-8")


def _row_to_source(row: sqlite3.Row) -> DataSource:
    source_type = SourceType(row["type"])
    return DataSource(
        id=row["id"],
        instance_id=row["instance_id"],
        name=row["name"],
        type=source_type,
        config=parse_source_config(source_type.value, orjson.loads(row["config_json"])),
        status=SourceStatus(row["status"]),
        last_sync=ms_to_datetime(row["last_sync"]),
        created_at=ms_to_datetime(row["created_at"]),
        updated_at=ms_to_datetime(row["updated_at"]),
        deleted_at=ms_to_datetime(row["deleted_at"]),
    )


def _row_to_job(row: sqlite3.Row) -> SyncJob:
    return SyncJob(
        id=row["id"],
        data_source_id=row["data_source_id"],
        status=JobStatus(row["status"]),
        started_at=ms_to_datetime(row["started_at"]),
        finished_at=ms_to_datetime(row["finished_at"]),
        stats=orjson.loads(row["stats_json"]) if row["stats_json"] else {},
        detail=row["detail"],
    )


__all__ = ["DataSourceService", "ConnectorFactory"]
