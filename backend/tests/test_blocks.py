"""Tests for block tree rendering."""

from lorekeeper.transform.blocks import blocks_to_markdown, render_rich_text


def _text(content: str, **annotations) -> dict:
    return {"plain_text": content, "annotations": annotations}


def _block(kind: str, *spans: dict, **extra) -> dict:
    body = {"rich_text": list(spans)}
    body.update(extra.pop("body", {}))
    return {"type": kind, kind: body, **extra}


def test_rich_text_annotations_nest_in_order() -> None:
    span = {"plain_text": "x", "href": "https://a", "annotations": {"bold": True, "italic": True}}
    assert render_rich_text([span]) == "**_[x](https://a)_**"
    assert render_rich_text([_text("gone", strikethrough=True)]) == "~~gone~~"
    assert render_rich_text([_text("x = 1", code=True, bold=True)]) == "`x = 1`"


def test_rich_text_falls_back_to_text_content() -> None:
    assert render_rich_text([{"text": {"content": "raw"}}]) == "raw"
    assert render_rich_text(None) == ""


def test_document_structure() -> None:
    blocks = [
        _block("heading_1", _text("Title")),
        _block("paragraph", _text("Hello "), _text("bold", bold=True)),
        _block(
            "bulleted_list_item",
            _text("item"),
            children=[_block("bulleted_list_item", _text("nested"))],
        ),
        _block("numbered_list_item", _text("first")),
    ]
    assert blocks_to_markdown(blocks) == "# Title\n\nHello **bold**\n\n- item\n  - nested\n1. first"


def test_todo_code_quote_and_divider() -> None:
    blocks = [
        _block("to_do", _text("done"), body={"checked": True}),
        _block("to_do", _text("open")),
        _block("code", _text("print(1)"), body={"language": "python"}),
        _block("quote", _text("wise")),
        {"type": "divider", "divider": {}},
        _block("heading_3", _text("End")),
    ]
    assert blocks_to_markdown(blocks) == (
        "[x] done\n[ ] open\n```python\nprint(1)\n```\n\n> wise\n\n---\n\n### End"
    )


def test_media_blocks() -> None:
    blocks = [
        {"type": "image", "image": {"type": "external", "external": {"url": "https://i/x.png"}, "caption": []}},
        {"type": "file", "file": {"type": "file", "file": {"url": "https://f/doc.pdf"}, "caption": [_text("Design")]}},
        {"type": "image", "image": {"type": "external", "external": {}}},
    ]
    assert blocks_to_markdown(blocks) == "![Image](https://i/x.png)\n\n[Design](https://f/doc.pdf)"


def test_unknown_blocks_render_children_only() -> None:
    blocks = [{"type": "column_list", "column_list": {}, "children": [_block("paragraph", _text("inside"))]}]
    assert blocks_to_markdown(blocks) == "inside"
