from __future__ import annotations

from quire.blocks import (
    LONG_BLOCK_THRESHOLD,
    MAX_CHUNK_CHARS,
    blocks_from_text,
    extract_blocks,
    split_long_block,
)


def _html(body: str) -> str:
    return f"<html><head><title>T</title></head><body>{body}</body></html>"


def _texts(blocks) -> list[str]:
    return [block.text for block in blocks]


def test_paragraphs_are_emitted_in_document_order() -> None:
    blocks = extract_blocks(_html("<h1>Chapter One</h1><p>First.</p><p>Second.</p>"))
    assert _texts(blocks) == ["Chapter One", "First.", "Second."]
    assert [block.order for block in blocks] == [0, 1, 2]
    assert all(block.kind == "paragraph" for block in blocks)


def test_nested_containers_are_not_double_counted() -> None:
    html = _html("<div><section><p>Alpha</p><p>Beta</p></section></div>")
    assert _texts(extract_blocks(html)) == ["Alpha", "Beta"]


def test_loose_inline_text_in_container_becomes_paragraph() -> None:
    html = _html("<div>Loose <em>words</em> here<p>Then a paragraph.</p></div>")
    assert _texts(extract_blocks(html)) == ["Loose words here", "Then a paragraph."]


def test_line_break_yields_empty_break_block() -> None:
    blocks = extract_blocks(_html("<p>one<br/>two</p>"))
    assert [(block.kind, block.text) for block in blocks] == [
        ("paragraph", "one"),
        ("break", ""),
        ("paragraph", "two"),
    ]


def test_blockquote_is_wrapped_in_emphasis_markers() -> None:
    blocks = extract_blocks(_html("<blockquote><p>Quoted   words</p></blockquote>"))
    assert len(blocks) == 1
    assert blocks[0].kind == "quote"
    assert blocks[0].text == "_Quoted words_"


def test_list_items_get_markers_and_numbering() -> None:
    html = _html(
        "<ul><li>Apples</li><li>Pears</li></ul>"
        "<ol><li>One</li><li>Two<ul><li>Inner</li></ul></li></ol>"
    )
    blocks = extract_blocks(html)
    assert _texts(blocks) == [
        "_• Apples_",
        "_• Pears_",
        "_1. One_",
        "_2. Two_",
        "_• Inner_",
    ]
    assert all(block.kind == "listItem" for block in blocks)


def test_ordered_list_honours_start_attribute() -> None:
    blocks = extract_blocks(_html('<ol start="4"><li>Four</li><li>Five</li></ol>'))
    assert _texts(blocks) == ["_4. Four_", "_5. Five_"]


def test_preformatted_keeps_trimmed_non_empty_lines() -> None:
    blocks = extract_blocks(_html("<pre>  first line  \n\n   second line\n</pre>"))
    assert len(blocks) == 1
    assert blocks[0].kind == "preformatted"
    assert blocks[0].text == "first line\nsecond line"


def test_scripts_and_styles_are_skipped() -> None:
    html = _html("<style>p { color: red }</style><p>Visible</p><script>var x = 1;</script>")
    assert _texts(extract_blocks(html)) == ["Visible"]


def test_xhtml_content_document_is_parsed() -> None:
    html = """<?xml version="1.0" encoding="utf-8"?>
<html xmlns="http://www.w3.org/1999/xhtml">
  <head><title>Chapter</title></head>
  <body>
    <p>Namespaced paragraph.</p>
  </body>
</html>
"""
    assert _texts(extract_blocks(html)) == ["Namespaced paragraph."]


def test_long_paragraph_is_split_at_sentence_boundaries() -> None:
    sentence = "This sentence is here to pad the paragraph out nicely."
    paragraph = " ".join([sentence] * 20)
    assert len(paragraph) > LONG_BLOCK_THRESHOLD

    blocks = extract_blocks(_html(f"<p>{paragraph}</p>"))

    assert len(blocks) > 1
    assert all(len(block.text) <= MAX_CHUNK_CHARS for block in blocks)
    assert " ".join(_texts(blocks)) == paragraph
    assert [block.order for block in blocks] == list(range(len(blocks)))


def test_split_long_block_keeps_oversized_sentence_whole() -> None:
    giant = "x" * 600 + "."
    chunks = split_long_block(f"{giant} Short tail.")
    assert chunks == [giant, "Short tail."]


def test_split_long_block_single_sentence_is_unchanged() -> None:
    text = "word " * 200
    assert split_long_block(text) == [text]


def test_split_long_block_preserves_newline_separators() -> None:
    text = "First sentence here.\nSecond sentence here."
    assert split_long_block(text, max_chars=100) == [text]


def test_blocks_from_text_splits_on_blank_lines() -> None:
    text = "Title\r\n\r\nFirst paragraph\nstill first.\n\n \n\nSecond."
    blocks = blocks_from_text(text)
    assert _texts(blocks) == ["Title", "First paragraph\nstill first.", "Second."]
    assert [block.order for block in blocks] == [0, 1, 2]
