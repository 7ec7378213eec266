"""Source markup to normalized text transformers."""

from lorekeeper.transform.blocks import blocks_to_markdown, render_rich_text
from lorekeeper.transform.html import html_to_text

__all__ = ["blocks_to_markdown", "html_to_text", "render_rich_text"]
