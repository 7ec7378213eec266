"""Wiki space connector backed by the Confluence REST API."""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

from lorekeeper.core.errors import ItemProcessingError
from lorekeeper.ingest.types import DocumentInput
from lorekeeper.models.entities import DocumentMetadata, DocumentType, SourceType
from lorekeeper.models.source_config import ConfluenceConfig
from lorekeeper.sync.base import SourceConnector
from lorekeeper.sync.context import SyncContext
from lorekeeper.sync.http import ApiClient
from lorekeeper.sync.pipeline import Page, SyncRun
from lorekeeper.transform.html import html_to_text


class ConfluenceConnector(SourceConnector[ConfluenceConfig]):
    """Offset/limit pagination over a space's pages; a short page is the last."""

    source_type = SourceType.WIKI_SPACE
    config_type = ConfluenceConfig
    required_fields = ("base_url", "username", "api_token", "space_key")
    # 200 requests per minute
    rate_interval = 0.3

    def create_client(self, config: ConfluenceConfig) -> ApiClient:
        return self.api_client(config.base_url, auth=(config.username, config.api_token))

    def fetch_metadata(self, ctx: SyncContext, run: SyncRun) -> dict[str, Any]:
        return run.client.get_json(ctx, f"/wiki/rest/api/space/{quote(run.config.space_key)}")

    def list_page(self, ctx: SyncContext, run: SyncRun, cursor: int | None) -> Page:
        start = cursor or 0
        limit = run.config.page_size
        payload = run.client.get_json(
            ctx,
            f"/wiki/rest/api/space/{quote(run.config.space_key)}/content/page",
            {"start": start, "limit": limit, "expand": "body.storage,version"},
        )
        pages = payload.get("results") or []
        next_cursor = start + limit if len(pages) >= limit else None
        return Page(items=pages, next_cursor=next_cursor)

    def to_documents(self, ctx: SyncContext, run: SyncRun, item: dict[str, Any]) -> list[DocumentInput]:
        page_id = item.get("id")
        if not page_id:
            raise ItemProcessingError("page without id")
        markup = ((item.get("body") or {}).get("storage") or {}).get("value") or ""
        content = html_to_text(markup)
        if not content:
            return []

        config: ConfluenceConfig = run.config
        version = item.get("version") or {}
        editor = (version.get("by") or {}).get("displayName")
        return [
            DocumentInput(
                instance_id=run.data_source.instance_id,
                data_source_id=run.data_source.id,
                title=item.get("title") or f"Page {page_id}",
                content=content,
                url=f"{config.base_url.rstrip('/')}/wiki/spaces/{config.space_key}/pages/{page_id}",
                type=DocumentType.TEXT,
                metadata=DocumentMetadata(
                    author=editor,
                    external_id=str(page_id),
                    source_path=f"/spaces/{config.space_key}/pages/{page_id}",
                    extra={
                        "version": version.get("number"),
                        "last_updated": version.get("when"),
                        "editor": editor,
                    },
                ),
            )
        ]

    def describe_item(self, item: Any) -> str:
        if isinstance(item, dict):
            return f"page {item.get('id')} ({item.get('title')})"
        return super().describe_item(item)


__all__ = ["ConfluenceConnector"]
