"""Chat channel connector backed by the Slack Web API."""

from __future__ import annotations

from typing import Any

from lorekeeper.core.errors import TransientUpstreamError, UpstreamAuthError, UpstreamError
from lorekeeper.ingest.types import DocumentInput
from lorekeeper.models.entities import DocumentMetadata, DocumentType, SourceType
from lorekeeper.models.source_config import SlackConfig
from lorekeeper.sync.base import SourceConnector
from lorekeeper.sync.context import SyncContext
from lorekeeper.sync.http import ApiClient
from lorekeeper.sync.pipeline import Page, SyncRun

API_URL = "https://slack.com/api"

_AUTH_ERRORS = {"invalid_auth", "not_authed", "token_revoked", "token_expired", "account_inactive"}


def check_ok(payload: Any) -> None:
    """Slack reports failures as HTTP 200 with ``ok: false``."""
    if isinstance(payload, dict) and payload.get("ok"):
        return
    error = payload.get("error", "unknown_error") if isinstance(payload, dict) else "invalid_response"
    message = f"slack API error: {error}"
    if error == "ratelimited":
        raise TransientUpstreamError(message, 429)
    if error in _AUTH_ERRORS:
        raise UpstreamAuthError(message, 401)
    raise UpstreamError(message)


class SlackConnector(SourceConnector[SlackConfig]):
    """Channel histories, one channel after another.

    The cursor is ``(channel_index, history_cursor)``. Thread roots also pull
    their replies, each reply becoming its own document.
    """

    source_type = SourceType.CHAT_CHANNELS
    config_type = SlackConfig
    required_fields = ("token", "channels")
    # 20 requests per minute (tier 2)
    rate_interval = 3.0

    def create_client(self, config: SlackConfig) -> ApiClient:
        return self.api_client(API_URL, headers={"Authorization": f"Bearer {config.token}"})

    def fetch_metadata(self, ctx: SyncContext, run: SyncRun) -> dict[str, dict[str, Any]]:
        channels: dict[str, dict[str, Any]] = {}
        for channel_id in run.config.channels:
            payload = run.client.get_json(ctx, "/conversations.info", {"channel": channel_id}, validate=check_ok)
            channels[channel_id] = payload.get("channel") or {"id": channel_id, "name": channel_id}
        return channels

    def list_page(self, ctx: SyncContext, run: SyncRun, cursor: tuple[int, str | None] | None) -> Page:
        index, history_cursor = cursor or (0, None)
        channel_id = run.config.channels[index]
        params: dict[str, Any] = {"channel": channel_id, "limit": run.config.page_size}
        if history_cursor:
            params["cursor"] = history_cursor
        payload = run.client.get_json(ctx, "/conversations.history", params, validate=check_ok)

        items = [(channel_id, message) for message in payload.get("messages") or []]
        next_history = (payload.get("response_metadata") or {}).get("next_cursor")
        if next_history:
            next_cursor: tuple[int, str | None] | None = (index, next_history)
        elif index + 1 < len(run.config.channels):
            next_cursor = (index + 1, None)
        else:
            next_cursor = None
        return Page(items=items, next_cursor=next_cursor)

    def to_documents(self, ctx: SyncContext, run: SyncRun, item: tuple[str, dict[str, Any]]) -> list[DocumentInput]:
        channel_id, message = item
        channel = run.metadata.get(channel_id) or {"id": channel_id, "name": channel_id}
        documents: list[DocumentInput] = []
        document = self._message_document(run, channel, message)
        if document is not None:
            documents.append(document)

        ts = message.get("ts")
        if run.config.include_threads and ts and message.get("thread_ts") == ts:
            for reply in self.fetch_replies(ctx, run.client, channel_id, ts):
                reply_document = self._message_document(run, channel, reply)
                if reply_document is not None:
                    documents.append(reply_document)
        return documents

    def fetch_replies(self, ctx: SyncContext, client: ApiClient, channel_id: str, thread_ts: str) -> list[dict[str, Any]]:
        """Replies of a thread without its parent message."""
        replies: list[dict[str, Any]] = []
        cursor: str | None = None
        while True:
            params: dict[str, Any] = {"channel": channel_id, "ts": thread_ts, "limit": 100}
            if cursor:
                params["cursor"] = cursor
            payload = client.get_json(ctx, "/conversations.replies", params, validate=check_ok)
            replies.extend(message for message in payload.get("messages") or [] if message.get("ts") != thread_ts)
            cursor = (payload.get("response_metadata") or {}).get("next_cursor")
            if not cursor:
                return replies

    def describe_item(self, item: Any) -> str:
        if isinstance(item, tuple) and len(item) == 2:
            return f"message {item[1].get('ts')} in {item[0]}"
        return super().describe_item(item)

    def _message_document(self, run: SyncRun, channel: dict[str, Any], message: dict[str, Any]) -> DocumentInput | None:
        content = message_content(message)
        ts = message.get("ts")
        if not content.strip() or not ts:
            return None
        channel_id = channel.get("id") or ""
        channel_name = channel.get("name") or channel_id
        return DocumentInput(
            instance_id=run.data_source.instance_id,
            data_source_id=run.data_source.id,
            title=f"Message in #{channel_name} at {ts}",
            content=content,
            url=f"https://slack.com/archives/{channel_id}/p{ts.replace('.', '', 1)}",
            type=DocumentType.TEXT,
            metadata=DocumentMetadata(
                author=message.get("user"),
                external_id=f"{channel_id}:{ts}",
                source_path=f"/channels/{channel_id}/messages/{ts}",
                extra={
                    "channel_id": channel_id,
                    "channel_name": channel_name,
                    "user_id": message.get("user"),
                    "thread_ts": message.get("thread_ts"),
                    "has_attachments": bool(message.get("attachments")),
                },
            ),
        )


def message_content(message: dict[str, Any]) -> str:
    """Message text followed by a rendering of its attachments."""
    parts = [message.get("text") or ""]
    attachments = message.get("attachments") or []
    if attachments:
        parts.append("\n\nAttachments:\n")
        for attachment in attachments:
            title = attachment.get("title")
            if title:
                link = attachment.get("title_link")
                parts.append(f"\n{title} ({link})\n" if link else f"\n{title}\n")
            if attachment.get("text"):
                parts.append(attachment["text"] + "\n")
            if attachment.get("image_url"):
                parts.append(f"![Image]({attachment['image_url']})\n")
            if attachment.get("file_url"):
                parts.append(f"[File]({attachment['file_url']})\n")
    return "".join(parts)


__all__ = ["SlackConnector", "check_ok", "message_content", "API_URL"]
