"""Workspace database connector backed by the Notion API."""

from __future__ import annotations

from typing import Any

from lorekeeper.core.errors import ItemProcessingError
from lorekeeper.ingest.types import DocumentInput
from lorekeeper.models.entities import DocumentMetadata, DocumentType, SourceType
from lorekeeper.models.source_config import NotionConfig
from lorekeeper.sync.base import SourceConnector
from lorekeeper.sync.context import SyncContext
from lorekeeper.sync.http import ApiClient
from lorekeeper.sync.pipeline import Page, SyncRun
from lorekeeper.transform.blocks import blocks_to_markdown

API_URL = "https://api.notion.com/v1"
NOTION_VERSION = "2022-06-28"
UNTITLED = "Untitled"


class NotionConnector(SourceConnector[NotionConfig]):
    """Pages of a database, each rendered from its (recursive) block tree."""

    source_type = SourceType.WORKSPACE_DB
    config_type = NotionConfig
    required_fields = ("api_key", "database_id")
    # 3 requests per second
    rate_interval = 1 / 3

    def create_client(self, config: NotionConfig) -> ApiClient:
        return self.api_client(
            API_URL,
            headers={
                "Authorization": f"Bearer {config.api_key}",
                "Notion-Version": NOTION_VERSION,
                "Content-Type": "application/json",
            },
        )

    def fetch_metadata(self, ctx: SyncContext, run: SyncRun) -> dict[str, Any]:
        return run.client.get_json(ctx, f"/databases/{run.config.database_id}")

    def list_page(self, ctx: SyncContext, run: SyncRun, cursor: str | None) -> Page:
        body: dict[str, Any] = {"page_size": run.config.page_size}
        if cursor:
            body["start_cursor"] = cursor
        payload = run.client.post_json(ctx, f"/databases/{run.config.database_id}/query", body)
        next_cursor = payload.get("next_cursor") if payload.get("has_more") else None
        return Page(items=payload.get("results") or [], next_cursor=next_cursor or None)

    def to_documents(self, ctx: SyncContext, run: SyncRun, item: dict[str, Any]) -> list[DocumentInput]:
        page_id = item.get("id")
        if not page_id:
            raise ItemProcessingError("page without id")
        blocks = self.fetch_blocks(ctx, run.client, page_id)
        content = blocks_to_markdown(blocks)
        if not content:
            return []

        return [
            DocumentInput(
                instance_id=run.data_source.instance_id,
                data_source_id=run.data_source.id,
                title=page_title(item),
                content=content,
                url=item.get("url") or f"https://notion.so/{page_id.replace('-', '')}",
                type=DocumentType.MARKDOWN,
                metadata=DocumentMetadata(
                    external_id=page_id,
                    source_path=f"/databases/{run.config.database_id}/pages/{page_id}",
                    extra={
                        "created_at": item.get("created_time"),
                        "last_edited": item.get("last_edited_time"),
                    },
                ),
            )
        ]

    def fetch_blocks(self, ctx: SyncContext, client: ApiClient, block_id: str) -> list[dict[str, Any]]:
        """All children of ``block_id``, with nested children attached under ``children``."""
        blocks: list[dict[str, Any]] = []
        cursor: str | None = None
        while True:
            params: dict[str, Any] = {"page_size": 100}
            if cursor:
                params["start_cursor"] = cursor
            payload = client.get_json(ctx, f"/blocks/{block_id}/children", params)
            for block in payload.get("results") or []:
                if block.get("has_children"):
                    block = {**block, "children": self.fetch_blocks(ctx, client, block["id"])}
                blocks.append(block)
            cursor = payload.get("next_cursor")
            if not payload.get("has_more") or not cursor:
                return blocks

    def describe_item(self, item: Any) -> str:
        if isinstance(item, dict):
            return f"page {item.get('id')}"
        return super().describe_item(item)


def page_title(page: dict[str, Any]) -> str:
    """Plain text of the page's title-typed property, or ``Untitled``."""
    for prop in (page.get("properties") or {}).values():
        if isinstance(prop, dict) and prop.get("type") == "title":
            text = "".join(span.get("plain_text", "") for span in prop.get("title") or [])
            if text.strip():
                return text.strip()
    return UNTITLED


__all__ = ["NotionConnector", "page_title", "API_URL", "NOTION_VERSION"]
