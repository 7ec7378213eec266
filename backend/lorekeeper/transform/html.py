"""HTML to plain text conversion that keeps document structure."""

from __future__ import annotations

import re

from bs4 import BeautifulSoup
from bs4.element import NavigableString, PreformattedString, Tag

_BLOCK_TAGS = {"p", "div", "h1", "h2", "h3", "h4", "h5", "h6", "table"}
_SKIP_TAGS = {"script", "style", "head", "template", "noscript"}
_CELL_TAGS = ["td", "th"]

_CHAR_MAP = str.maketrans(
    {
        "\u00a0": " ",
        "\u201c": "\"",
        "\u201d": "\"",
        "\u2018": "'",
        "\u2019": "'",
    }
)

_WS_RE = re.compile(r"\s+")
_LINE_EDGE_RE = re.compile(r"[ \t]*\n[ \t]*")
_TAB_RUN_RE = re.compile(r"[ \t]*\t[ \t]*")
_SPACE_RUN_RE = re.compile(r" {2,}")
_NEWLINE_RUN_RE = re.compile(r"\n{3,}")
_PLACEHOLDER_RE = re.compile(r"\x00(\d+)\x00")

BULLET = "• "


def normalize_chars(text: str) -> str:
    """Replace non-breaking spaces and curly quotes with ASCII."""
    return text.translate(_CHAR_MAP)


def cleanup_whitespace(text: str) -> str:
    """Trim every line, collapse space/tab runs, cap blank lines at one."""
    text = _LINE_EDGE_RE.sub("\n", text)
    text = _TAB_RUN_RE.sub("\t", text)
    text = _SPACE_RUN_RE.sub(" ", text)
    text = _NEWLINE_RUN_RE.sub("\n\n", text)
    return text.strip()


class _TextWriter:
    def __init__(self) -> None:
        self._out: list[str] = []
        self._protected: list[str] = []
        self._tail_newlines = 0
        self._last_char = ""

    def emit(self, text: str) -> None:
        if not text:
            return
        self._out.append(text)
        visible = text.rstrip(" \t")
        if not visible:
            self._last_char = text[-1]
            return
        body = visible.rstrip("\n")
        newlines = len(visible) - len(body)
        self._tail_newlines = self._tail_newlines + newlines if not body else newlines
        self._last_char = text[-1]

    def emit_protected(self, text: str) -> None:
        # Stored verbatim and restored after whitespace cleanup.
        self._protected.append(text)
        self.emit(f"\x00{len(self._protected) - 1}\x00")

    def ensure_newlines(self, count: int) -> None:
        if not self._out:
            return
        if self._tail_newlines < count:
            self.emit("\n" * (count - self._tail_newlines))

    def space(self) -> None:
        if self._out and not self._last_char.isspace():
            self.emit(" ")

    def finish(self) -> str:
        text = cleanup_whitespace("".join(self._out))
        return _PLACEHOLDER_RE.sub(lambda match: self._protected[int(match.group(1))], text)


def html_to_text(markup: str) -> str:
    """Convert HTML (e.g. Confluence storage format) into normalized text."""
    soup = BeautifulSoup(markup or "", "html.parser")
    writer = _TextWriter()
    _walk(soup, writer)
    return writer.finish()


def _walk(node: Tag, writer: _TextWriter) -> None:
    for child in node.children:
        if isinstance(child, PreformattedString):
            continue
        if isinstance(child, NavigableString):
            _write_text(str(child), writer)
        elif isinstance(child, Tag):
            _write_element(child, writer)


def _write_text(raw: str, writer: _TextWriter) -> None:
    text = _WS_RE.sub(" ", normalize_chars(raw))
    if not text.strip():
        writer.space()
        return
    writer.emit(text)


def _write_element(tag: Tag, writer: _TextWriter) -> None:
    name = tag.name
    if name in _SKIP_TAGS:
        return
    if name == "br":
        writer.emit("\n")
        return
    if name in ("pre", "code"):
        code = tag.get_text()
        if not code:
            return
        if name == "pre":
            writer.ensure_newlines(2)
        writer.emit_protected(f"`{code}`")
        if name == "pre":
            writer.ensure_newlines(1)
        return
    if name == "a":
        href = tag.get("href")
        _walk(tag, writer)
        if href:
            writer.emit(f" ({href})")
        return
    if name == "li":
        writer.ensure_newlines(1)
        writer.emit(BULLET)
        _walk(tag, writer)
        writer.ensure_newlines(1)
        return
    if name == "tr":
        writer.ensure_newlines(1)
        for index, cell in enumerate(tag.find_all(_CELL_TAGS, recursive=False)):
            if index:
                writer.emit("\t")
            _walk(cell, writer)
        writer.ensure_newlines(1)
        return
    if name in _BLOCK_TAGS:
        writer.ensure_newlines(2)
        _walk(tag, writer)
        writer.ensure_newlines(2)
        return
    _walk(tag, writer)


__all__ = ["html_to_text", "normalize_chars", "cleanup_whitespace"]
