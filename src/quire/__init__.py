from .archive import ArchiveContentError, ArchiveFormatError, read_archive
from .blocks import ContentBlock, extract_blocks, split_long_block
from .layout import Measurer, TextMeasurer, Viewport
from .locator import (
    AnchorResolutionError,
    BookmarkAnchor,
    SnippetNotFoundError,
    create_anchor,
    locate_anchor,
)
from .normalize import ReaderSettings, normalize_blocks, normalize_quotes, split_dialogue
from .pagination import Page, PaginationResult, find_page_for_normalized_substring, paginate
from .session import ReadingSession

__all__ = [
    "ContentBlock",
    "extract_blocks",
    "split_long_block",
    "read_archive",
    "ArchiveFormatError",
    "ArchiveContentError",
    "ReaderSettings",
    "normalize_blocks",
    "normalize_quotes",
    "split_dialogue",
    "Viewport",
    "Measurer",
    "TextMeasurer",
    "Page",
    "PaginationResult",
    "paginate",
    "find_page_for_normalized_substring",
    "BookmarkAnchor",
    "create_anchor",
    "locate_anchor",
    "AnchorResolutionError",
    "SnippetNotFoundError",
    "ReadingSession",
]
