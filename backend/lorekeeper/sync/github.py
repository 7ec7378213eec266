"""Code repository connector backed by the GitHub contents API."""

from __future__ import annotations

import base64
import binascii
import posixpath
from typing import Any
from urllib.parse import quote

from lorekeeper.core.errors import ItemProcessingError
from lorekeeper.ingest.types import DocumentInput
from lorekeeper.models.entities import DocumentMetadata, DocumentType, SourceType
from lorekeeper.models.source_config import GitHubConfig
from lorekeeper.sync.base import SourceConnector
from lorekeeper.sync.context import SyncContext
from lorekeeper.sync.http import ApiClient
from lorekeeper.sync.pipeline import Page, SyncRun

API_URL = "https://api.github.com"
_MARKDOWN_EXTENSIONS = {".md", ".mdx"}


class GitHubConnector(SourceConnector[GitHubConfig]):
    """Walks a repository tree breadth-first; one directory listing per page.

    The cursor is the tuple of directories still to be listed.
    """

    source_type = SourceType.CODE_REPO
    config_type = GitHubConfig
    required_fields = ("access_token", "repository")
    # 5000 requests per hour
    rate_interval = 3600 / 5000

    def create_client(self, config: GitHubConfig) -> ApiClient:
        return self.api_client(
            API_URL,
            headers={
                "Authorization": f"Bearer {config.access_token}",
                "Accept": "application/vnd.github+json",
            },
        )

    def fetch_metadata(self, ctx: SyncContext, run: SyncRun) -> dict[str, Any]:
        owner, repo = run.config.owner_and_repo()
        root = self._list_directory(ctx, run, "", owner, repo)
        return {"owner": owner, "repo": repo, "root": root}

    def list_page(self, ctx: SyncContext, run: SyncRun, cursor: tuple[str, ...] | None) -> Page:
        meta = run.metadata
        if cursor is None:
            entries = meta["root"]
            pending: list[str] = []
        else:
            entries = self._list_directory(ctx, run, cursor[0], meta["owner"], meta["repo"])
            pending = list(cursor[1:])

        files: list[dict[str, Any]] = []
        for entry in entries:
            if entry.get("type") == "dir":
                pending.append(entry["path"])
            elif entry.get("type") == "file":
                files.append(entry)
        return Page(items=files, next_cursor=tuple(pending) if pending else None)

    def to_documents(self, ctx: SyncContext, run: SyncRun, item: dict[str, Any]) -> list[DocumentInput]:
        path = item.get("path") or ""
        extension = posixpath.splitext(path)[1].lower()
        allowed = {ext.lower() for ext in run.config.extensions}
        if extension not in allowed:
            return []

        meta = run.metadata
        payload = run.client.get_json(ctx, _contents_path(meta["owner"], meta["repo"], path), _ref(run.config))
        content = decode_content(payload, path)
        if not content.strip():
            return []

        return [
            DocumentInput(
                instance_id=run.data_source.instance_id,
                data_source_id=run.data_source.id,
                title=path,
                content=content,
                url=item.get("html_url"),
                type=DocumentType.MARKDOWN if extension in _MARKDOWN_EXTENSIONS else DocumentType.TEXT,
                metadata=DocumentMetadata(
                    external_id=path,
                    source_path=path,
                    extra={"sha": item.get("sha"), "size": item.get("size"), "download_url": item.get("download_url")},
                ),
            )
        ]

    def describe_item(self, item: Any) -> str:
        if isinstance(item, dict):
            return f"file {item.get('path')}"
        return super().describe_item(item)

    def _list_directory(self, ctx: SyncContext, run: SyncRun, path: str, owner: str, repo: str) -> list[dict[str, Any]]:
        listing = run.client.get_json(ctx, _contents_path(owner, repo, path), _ref(run.config))
        if not isinstance(listing, list):
            raise ItemProcessingError(f"expected a directory listing for '{path or '/'}'")
        return listing


def decode_content(payload: Any, path: str) -> str:
    """Decode a contents-API file payload into text."""
    if not isinstance(payload, dict) or payload.get("content") is None:
        raise ItemProcessingError(f"no content found for file: {path}")
    try:
        raw = base64.b64decode(payload["content"])
        return raw.decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise ItemProcessingError(f"failed to decode content of {path}: {exc}") from exc


def _contents_path(owner: str, repo: str, path: str) -> str:
    suffix = quote(path.strip("/")) if path else ""
    return f"/repos/{quote(owner)}/{quote(repo)}/contents/{suffix}"


def _ref(config: GitHubConfig) -> dict[str, str] | None:
    return {"ref": config.branch} if config.branch else None


__all__ = ["GitHubConnector", "decode_content", "API_URL"]
