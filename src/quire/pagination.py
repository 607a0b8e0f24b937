from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from .blocks import ContentBlock
from .layout import Measurer, Viewport
from .normalize import normalize_search_text

PLACEHOLDER_TEXT = "Nothing to display yet."


@dataclass(frozen=True, slots=True)
class Page:
    index: int
    blocks: tuple[ContentBlock, ...]
    text: str
    normalized_text: str
    placeholder: bool = False

    @classmethod
    def from_blocks(cls, index: int, blocks: Sequence[ContentBlock]) -> "Page":
        text = "\n\n".join(block.text for block in blocks)
        return cls(
            index=index,
            blocks=tuple(blocks),
            text=text,
            normalized_text=normalize_search_text(text),
        )

    @classmethod
    def empty(cls) -> "Page":
        # The placeholder is displayed but never searchable.
        block = ContentBlock(kind="paragraph", text=PLACEHOLDER_TEXT, order=0)
        return cls(index=1, blocks=(block,), text="", normalized_text="", placeholder=True)

    def to_payload(self) -> dict[str, object]:
        return {
            "index": self.index,
            "placeholder": self.placeholder,
            "blocks": [
                {"kind": block.kind, "text": block.text, "order": block.order}
                for block in self.blocks
            ],
        }


@dataclass(slots=True)
class PaginationResult:
    pages: list[Page] = field(default_factory=lambda: [Page.empty()])
    current: int = 1

    @property
    def total(self) -> int:
        return len(self.pages)

    def clamp(self, index: int) -> int:
        return max(1, min(int(index), self.total))

    def page(self, index: int | None = None) -> Page:
        target = self.current if index is None else self.clamp(index)
        return self.pages[target - 1]

    def blocks(self) -> list[ContentBlock]:
        return [block for page in self.pages if not page.placeholder for block in page.blocks]


def paginate(
    blocks: Sequence[ContentBlock],
    viewport: Viewport,
    measurer: Measurer,
    target_page: int = 1,
) -> PaginationResult:
    """
    Greedily fill pages in order, moving a block to a fresh page when it makes
    a non-empty page overflow. Blocks are never split, so a block that alone
    exceeds the viewport gets a page to itself.
    """
    if not blocks:
        return PaginationResult(pages=[Page.empty()], current=1)

    grouped: list[list[ContentBlock]] = []
    current: list[ContentBlock] = []
    for block in blocks:
        current.append(block)
        if len(current) > 1 and not measurer.fits(current, viewport):
            current.pop()
            grouped.append(current)
            current = [block]
    grouped.append(current)

    pages = [Page.from_blocks(index, group) for index, group in enumerate(grouped, start=1)]
    result = PaginationResult(pages=pages)
    result.current = result.clamp(target_page)
    return result


def repaginate(
    blocks: Sequence[ContentBlock],
    viewport: Viewport,
    measurer: Measurer,
    landing_page: int | None = None,
    previous: PaginationResult | None = None,
) -> PaginationResult:
    """Rebuild from the whole document, landing on the same page index when possible."""
    if landing_page is None:
        landing_page = previous.current if previous is not None else 1
    return paginate(blocks, viewport, measurer, target_page=landing_page)


def find_page_for_normalized_substring(result: PaginationResult, needle: str) -> int | None:
    needle = normalize_search_text(needle)
    if not needle:
        return None
    for page in result.pages:
        if needle in page.normalized_text:
            return page.index
    return None


__all__ = [
    "PLACEHOLDER_TEXT",
    "Page",
    "PaginationResult",
    "find_page_for_normalized_substring",
    "paginate",
    "repaginate",
]
