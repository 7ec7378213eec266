"""Prometheus metrics instrumentation."""

from __future__ import annotations

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

SYNC_RUNS = Counter(
    "lore_sync_runs_total",
    "Connector sync runs by source type and outcome",
    labelnames=("source_type", "outcome"),
    registry=REGISTRY,
)

SYNC_DURATION = Histogram(
    "lore_sync_duration_seconds",
    "Wall time of a connector sync run",
    labelnames=("source_type",),
    registry=REGISTRY,
)

DOCUMENTS_INGESTED = Counter(
    "lore_documents_ingested_total",
    "Documents persisted by the ingestion pipeline",
    registry=REGISTRY,
)

ITEMS_SKIPPED = Counter(
    "lore_sync_items_skipped_total",
    "Items skipped after an item-level fault",
    labelnames=("source_type",),
    registry=REGISTRY,
)

ANSWERS_GENERATED = Counter(
    "lore_answers_total",
    "Answers produced by the answer service",
    labelnames=("grounded",),
    registry=REGISTRY,
)

ANSWER_LATENCY = Histogram(
    "lore_answer_latency_seconds",
    "Latency of answering a question",
    registry=REGISTRY,
)

INDEX_SIZE = Gauge(
    "lore_index_chunks",
    "Number of chunks stored in index",
    registry=REGISTRY,
)


def metrics_response() -> Response:
    """Return Prometheus metrics as an HTTP response."""
    payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "SYNC_RUNS",
    "SYNC_DURATION",
    "DOCUMENTS_INGESTED",
    "ITEMS_SKIPPED",
    "ANSWERS_GENERATED",
    "ANSWER_LATENCY",
    "INDEX_SIZE",
    "metrics_response",
]
