"""Render Notion-style block trees as markdown."""

from __future__ import annotations

from typing import Any, Iterable, Mapping

INDENT = "  "

_HEADINGS = {"heading_1": "# ", "heading_2": "## ", "heading_3": "### "}
_LIST_MARKERS = {"bulleted_list_item": "- ", "numbered_list_item": "1. "}


def render_rich_text(spans: Iterable[Mapping[str, Any]] | None) -> str:
    """Render inline spans with markdown markers for their annotations."""
    parts: list[str] = []
    for span in spans or ():
        content = span.get("plain_text")
        if content is None:
            content = (span.get("text") or {}).get("content", "")
        annotations = span.get("annotations") or {}
        if annotations.get("code"):
            parts.append(f"`{content}`")
            continue
        markers = [
            marker
            for flag, marker in (("bold", "**"), ("italic", "_"), ("strikethrough", "~~"))
            if annotations.get(flag)
        ]
        href = span.get("href")
        body = f"[{content}]({href})" if href else content
        parts.append("".join(markers) + body + "".join(reversed(markers)))
    return "".join(parts)


def file_url(payload: Mapping[str, Any] | None) -> str:
    if not payload:
        return ""
    kind = payload.get("type")
    if kind in ("external", "file"):
        return (payload.get(kind) or {}).get("url", "")
    return ""


def blocks_to_markdown(blocks: Iterable[Mapping[str, Any]]) -> str:
    """Convert a block tree into markdown.

    Each block is a mapping in the Notion API shape
    (``{"type": "paragraph", "paragraph": {"rich_text": [...]}}``) with
    optional already-fetched ``children``. List-like blocks are indented by
    nesting depth; children always render one level deeper than their parent.
    """
    out: list[str] = []
    for block in blocks:
        _render_block(block, 0, out)
    return "".join(out).strip()


def _render_block(block: Mapping[str, Any], depth: int, out: list[str]) -> None:
    kind = block.get("type", "")
    body = block.get(kind) or {}
    indent = INDENT * depth

    if kind == "paragraph":
        out.append(render_rich_text(body.get("rich_text")) + "\n\n")
    elif kind in _HEADINGS:
        out.append(_HEADINGS[kind] + render_rich_text(body.get("rich_text")) + "\n\n")
    elif kind in _LIST_MARKERS:
        out.append(indent + _LIST_MARKERS[kind] + render_rich_text(body.get("rich_text")) + "\n")
    elif kind == "to_do":
        box = "[x] " if body.get("checked") else "[ ] "
        out.append(indent + box + render_rich_text(body.get("rich_text")) + "\n")
    elif kind == "code":
        language = body.get("language") or ""
        out.append(f"```{language}\n{render_rich_text(body.get('rich_text'))}\n```\n\n")
    elif kind in ("quote", "callout"):
        out.append("> " + render_rich_text(body.get("rich_text")) + "\n\n")
    elif kind == "toggle":
        out.append(indent + render_rich_text(body.get("rich_text")) + "\n")
    elif kind == "divider":
        out.append("---\n\n")
    elif kind in ("image", "file"):
        url = file_url(body)
        if url:
            caption = render_rich_text(body.get("caption"))
            if kind == "image":
                out.append(f"![{caption or 'Image'}]({url})\n\n")
            else:
                out.append(f"[{caption or 'File'}]({url})\n\n")

    for child in block.get("children") or ():
        _render_block(child, depth + 1, out)


__all__ = ["blocks_to_markdown", "render_rich_text", "file_url"]
