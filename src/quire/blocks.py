from __future__ import annotations

import re
import warnings
from dataclasses import dataclass, replace
from typing import Iterator, Literal, Sequence

from bs4 import (
    BeautifulSoup,
    Comment,
    Declaration,
    Doctype,
    FeatureNotFound,
    NavigableString,
    ProcessingInstruction,
    Tag,
    XMLParsedAsHTMLWarning,
)  # type: ignore

BlockKind = Literal["paragraph", "listItem", "quote", "preformatted", "break"]

LONG_BLOCK_THRESHOLD = 800
MAX_CHUNK_CHARS = 500

# Block elements; one block is emitted per leaf element of this set.
BLOCK_LEVEL_TAGS = {
    "address",
    "article",
    "aside",
    "blockquote",
    "dd",
    "div",
    "dl",
    "dt",
    "figcaption",
    "figure",
    "footer",
    "form",
    "h1",
    "h2",
    "h3",
    "h4",
    "h5",
    "h6",
    "header",
    "hgroup",
    "hr",
    "li",
    "main",
    "nav",
    "ol",
    "p",
    "pre",
    "section",
    "table",
    "ul",
    "tr",
}
LIST_TAGS = {"ul", "ol"}
_SKIP_TAGS = {"script", "style", "head", "title", "noscript", "template"}
_CELL_TAGS = {"td", "th"}
_NON_TEXT_NODES = (Comment, Declaration, Doctype, ProcessingInstruction)

_PARAGRAPH_BREAK_RE = re.compile(r"\n\s*\n")
_SENTENCE_BREAK_RE = re.compile(r"[.!?][\"”']?(\s+)")


@dataclass(frozen=True, slots=True)
class ContentBlock:
    kind: BlockKind
    text: str
    order: int

    @property
    def is_blank(self) -> bool:
        return not self.text.strip()


_BREAK = object()


def _collapse_ws(text: str) -> str:
    return " ".join(text.split())


def renumber_blocks(blocks: Sequence[ContentBlock]) -> list[ContentBlock]:
    return [
        block if block.order == index else replace(block, order=index)
        for index, block in enumerate(blocks)
    ]


def blocks_from_text(text: str) -> list[ContentBlock]:
    """Split plain or markdown text on blank lines into paragraph blocks."""
    paragraphs = [part.strip() for part in _PARAGRAPH_BREAK_RE.split(text.replace("\r\n", "\n"))]
    return [
        ContentBlock(kind="paragraph", text=paragraph, order=index)
        for index, paragraph in enumerate(p for p in paragraphs if p)
    ]


def _split_sentences(text: str) -> list[tuple[str, str]]:
    pieces: list[tuple[str, str]] = []
    cursor = 0
    for match in _SENTENCE_BREAK_RE.finditer(text):
        sentence = text[cursor : match.start(1)].strip()
        if sentence:
            pieces.append((sentence, match.group(1)))
        cursor = match.end(1)
    tail = text[cursor:].strip()
    if tail:
        pieces.append((tail, ""))
    return pieces


def split_long_block(text: str, *, max_chars: int = MAX_CHUNK_CHARS) -> list[str]:
    """
    Group the sentences of an oversized block into chunks of at most
    ``max_chars`` characters. A sentence longer than the limit is kept whole.
    """
    sentences = _split_sentences(text)
    if len(sentences) < 2:
        return [text]
    chunks: list[str] = []
    current = ""
    joiner = ""
    for sentence, separator in sentences:
        candidate = f"{current}{joiner}{sentence}" if current else sentence
        if current and len(candidate) > max_chars:
            chunks.append(current)
            current = sentence
        else:
            current = candidate
        joiner = "\n" if "\n" in separator else " "
    if current:
        chunks.append(current)
    return chunks


def _soup_from_html(html: str) -> BeautifulSoup:
    stripped = html.lstrip()
    lower_head = stripped[:200].lower()
    xmlish = stripped.startswith("<?xml") or (
        "<html" in lower_head and "xmlns" in lower_head
    )

    if xmlish:
        for parser in ("lxml-xml", "xml"):
            try:
                return BeautifulSoup(html, parser)
            except FeatureNotFound:
                continue

    for parser in ("lxml", "html5lib", "html.parser"):
        try:
            with warnings.catch_warnings():
                warnings.filterwarnings("ignore", category=XMLParsedAsHTMLWarning)
                return BeautifulSoup(html, parser)
        except FeatureNotFound:
            continue

    return BeautifulSoup(html, "html.parser")


def _tag_name(tag: Tag) -> str:
    return (tag.name or "").lower()


def _is_text(node: object) -> bool:
    return isinstance(node, NavigableString) and not isinstance(node, _NON_TEXT_NODES)


def _flat_text(node: Tag, *, exclude: frozenset[str] = frozenset()) -> str:
    parts: list[str] = []
    for child in node.children:
        if isinstance(child, Tag):
            name = _tag_name(child)
            if name in _SKIP_TAGS or name in exclude:
                continue
            if name == "br" or name in BLOCK_LEVEL_TAGS or name in _CELL_TAGS:
                parts.append(" ")
            parts.append(_flat_text(child, exclude=exclude))
        elif _is_text(child):
            parts.append(str(child))
    return "".join(parts)


def _inline_stream(node: Tag) -> Iterator[object]:
    # Yields text, _BREAK markers, and block-level child tags in document order.
    for child in node.children:
        if isinstance(child, Tag):
            name = _tag_name(child)
            if name in _SKIP_TAGS:
                continue
            if name == "br":
                yield _BREAK
            elif name in BLOCK_LEVEL_TAGS:
                yield child
            else:
                if name in _CELL_TAGS:
                    yield " "
                yield from _inline_stream(child)
        elif _is_text(child):
            yield str(child)


class _BlockCollector:
    def __init__(self) -> None:
        self.items: list[tuple[BlockKind, str]] = []

    def push(self, kind: BlockKind, text: str, *, collapse: bool = True) -> None:
        value = _collapse_ws(text) if collapse else text.strip()
        if not value:
            return
        if len(_collapse_ws(value)) > LONG_BLOCK_THRESHOLD:
            for part in split_long_block(value):
                self.items.append((kind, part))
        else:
            self.items.append((kind, value))

    def push_break(self) -> None:
        self.items.append(("break", ""))

    def visit_container(self, node: Tag, kind: BlockKind = "paragraph") -> None:
        pending: list[str] = []

        def flush() -> None:
            self.push(kind, "".join(pending))
            pending.clear()

        for item in _inline_stream(node):
            if item is _BREAK:
                flush()
                self.push_break()
            elif isinstance(item, Tag):
                flush()
                self.visit_block(item)
            else:
                pending.append(str(item))
        flush()

    def visit_block(self, tag: Tag) -> None:
        name = _tag_name(tag)
        if name == "blockquote":
            text = _collapse_ws(_flat_text(tag))
            if text:
                self.push("quote", f"_{text}_")
        elif name in LIST_TAGS:
            self.visit_list(tag)
        elif name == "pre":
            lines = [line.strip() for line in _flat_text(tag).splitlines()]
            self.push("preformatted", "\n".join(line for line in lines if line), collapse=False)
        elif name == "li":
            self.push_item(tag, "•")
        else:
            self.visit_container(tag)

    def visit_list(self, tag: Tag) -> None:
        ordered = _tag_name(tag) == "ol"
        try:
            number = int(tag.get("start") or 1) - 1
        except (TypeError, ValueError):
            number = 0
        for child in tag.children:
            if not isinstance(child, Tag):
                continue
            if _tag_name(child) in LIST_TAGS:
                self.visit_list(child)
                continue
            if _tag_name(child) != "li":
                continue
            number += 1
            self.push_item(child, f"{number}." if ordered else "•")

    def push_item(self, item: Tag, marker: str) -> None:
        text = _collapse_ws(_flat_text(item, exclude=frozenset(LIST_TAGS)))
        if text:
            self.push("listItem", f"_{marker} {text}_")
        # Lists nested in this item follow it; deeper ones belong to their own items.
        for nested in item.find_all(list(LIST_TAGS)):
            if _nearest_item(nested) is item:
                self.visit_list(nested)

    def blocks(self) -> list[ContentBlock]:
        return [
            ContentBlock(kind=kind, text=text, order=index)
            for index, (kind, text) in enumerate(self.items)
        ]


def _nearest_item(tag: Tag) -> Tag | None:
    for parent in tag.parents:
        if _tag_name(parent) == "li":
            return parent
    return None


def extract_blocks(html: str) -> list[ContentBlock]:
    """
    Parse one (X)HTML content document into ordered blocks.

    One block is emitted per leaf block-level element, so a container and its
    nested paragraphs are never both counted. ``<br>`` yields an empty
    ``break`` block.
    """
    soup = _soup_from_html(html)
    root = soup.find("body") or soup
    collector = _BlockCollector()
    collector.visit_container(root)
    return collector.blocks()


__all__ = [
    "BLOCK_LEVEL_TAGS",
    "BlockKind",
    "ContentBlock",
    "LONG_BLOCK_THRESHOLD",
    "MAX_CHUNK_CHARS",
    "blocks_from_text",
    "extract_blocks",
    "renumber_blocks",
    "split_long_block",
]
