"""Connector lookup by source type."""

from __future__ import annotations

from lorekeeper.core.config import Settings
from lorekeeper.core.errors import ConfigurationError
from lorekeeper.ingest.pipeline import IngestionPipeline
from lorekeeper.models.entities import SourceType
from lorekeeper.sync.base import SourceConnector
from lorekeeper.sync.confluence import ConfluenceConnector
from lorekeeper.sync.github import GitHubConnector
from lorekeeper.sync.notion import NotionConnector
from lorekeeper.sync.slack import SlackConnector

CONNECTORS: dict[SourceType, type[SourceConnector]] = {
    SourceType.CODE_REPO: GitHubConnector,
    SourceType.WIKI_SPACE: ConfluenceConnector,
    SourceType.WORKSPACE_DB: NotionConnector,
    SourceType.CHAT_CHANNELS: SlackConnector,
}


def build_connector(
    source_type: SourceType | str,
    ingestion: IngestionPipeline,
    settings: Settings,
) -> SourceConnector:
    try:
        connector_cls = CONNECTORS[SourceType(source_type)]
    except (KeyError, ValueError) as exc:
        raise ConfigurationError(f"unsupported source type: {source_type}") from exc
    return connector_cls(ingestion, settings)


__all__ = ["CONNECTORS", "build_connector"]
