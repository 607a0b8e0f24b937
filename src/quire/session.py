from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from pathlib import Path

from .blocks import ContentBlock, blocks_from_text
from .ingest import (
    INGEST_ERRORS,
    IngestedBook,
    describe_ingest_error,
    ingest_bytes,
    ingest_path,
)
from .layout import Measurer, TextMeasurer, Viewport
from .locator import (
    AnchorResolutionError,
    BookmarkAnchor,
    SnippetNotFoundError,
    create_anchor,
    locate_anchor,
)
from .normalize import NormalizedDocument, ReaderSettings, normalize_blocks
from .pagination import (
    PaginationResult,
    find_page_for_normalized_substring,
    repaginate,
)
from .store import ReaderStore

logger = logging.getLogger(__name__)


class ReadingSession:
    """
    State for one reader: the loaded book, its normalized document and the
    single current pagination.

    Loads are numbered; a completion whose number is no longer the latest is
    dropped, so a slow load never overwrites a newer one. Layout changes are
    queued by ``update_layout`` and applied as one re-flow at ``flush_layout``.
    """

    def __init__(
        self,
        *,
        viewport: Viewport | None = None,
        measurer: Measurer | None = None,
        settings: ReaderSettings | None = None,
        store: ReaderStore | None = None,
    ) -> None:
        self.viewport = viewport or Viewport()
        self.measurer: Measurer = measurer or TextMeasurer()
        self.settings = settings or ReaderSettings()
        self.store = store
        self.book_id: str | None = None
        self.title = ""
        self.author: str | None = None
        self.status = ""
        self.document = NormalizedDocument()
        self.parse_cache: dict[str, IngestedBook] = {}
        self.reflow_count = 0
        self._source_blocks: list[ContentBlock] = []
        self._result = PaginationResult()
        self._pending_layout: dict[str, float] = {}
        self._generation = 0

    # -- state ---------------------------------------------------------------

    @property
    def result(self) -> PaginationResult:
        self.flush_layout()
        return self._result

    @property
    def current_page(self) -> int:
        return self.result.current

    @property
    def total_pages(self) -> int:
        return self.result.total

    @property
    def generation(self) -> int:
        return self._generation

    def begin_request(self) -> int:
        self._generation += 1
        return self._generation

    def is_current(self, generation: int) -> bool:
        return generation == self._generation

    def cancel_pending(self) -> None:
        """Invalidate every in-flight load."""
        self.begin_request()

    # -- ingestion -----------------------------------------------------------

    def commit(self, book: IngestedBook, book_id: str, generation: int) -> bool:
        if not self.is_current(generation):
            logger.debug("Discarding stale load of %s (generation %d)", book_id, generation)
            return False
        self.parse_cache[book_id] = book
        self.book_id = book_id
        self.title = book.title
        self.author = book.author
        self._source_blocks = list(book.blocks)
        self.document = normalize_blocks(self._source_blocks, self.settings)
        self._absorb_pending_layout()
        landing = 1
        if self.store is not None:
            landing = self.store.last_page(book_id) or 1
        self._reflow(landing)
        self.status = "Loaded."
        logger.debug("Loaded %s: %d blocks, %d pages", book_id, len(self.document), self._result.total)
        return True

    def _fail(self, exc: BaseException, generation: int) -> bool:
        if not self.is_current(generation):
            logger.debug("Discarding stale load failure: %s", exc)
            return False
        logger.warning("Ingestion failed: %s", exc)
        self.status = describe_ingest_error(exc)
        return False

    def load_book(self, book: IngestedBook, book_id: str | None = None) -> bool:
        return self.commit(book, book_id or book.source, self.begin_request())

    def load_text(self, title: str, text: str, book_id: str = "local") -> bool:
        book = IngestedBook(
            title=title,
            author=None,
            blocks=blocks_from_text(text),
            source=title,
            format="text",
        )
        return self.load_book(book, book_id)

    def load_path(self, path: Path, book_id: str | None = None) -> bool:
        generation = self.begin_request()
        cache_id = book_id or path.name
        book = self.parse_cache.get(cache_id)
        if book is None:
            try:
                book = ingest_path(path)
            except INGEST_ERRORS as exc:
                return self._fail(exc, generation)
        return self.commit(book, cache_id, generation)

    def load_bytes(self, data: bytes, filename: str, book_id: str | None = None) -> bool:
        generation = self.begin_request()
        try:
            book = ingest_bytes(data, filename)
        except INGEST_ERRORS as exc:
            return self._fail(exc, generation)
        return self.commit(book, book_id or book.source, generation)

    async def load_path_async(self, path: Path, book_id: str | None = None) -> bool:
        generation = self.begin_request()
        cache_id = book_id or path.name
        book = self.parse_cache.get(cache_id)
        if book is None:
            loop = asyncio.get_running_loop()
            try:
                book = await loop.run_in_executor(None, ingest_path, path)
            except INGEST_ERRORS as exc:
                return self._fail(exc, generation)
        return self.commit(book, cache_id, generation)

    async def load_bytes_async(
        self,
        data: bytes,
        filename: str,
        book_id: str | None = None,
    ) -> bool:
        generation = self.begin_request()
        loop = asyncio.get_running_loop()
        try:
            book = await loop.run_in_executor(None, ingest_bytes, data, filename)
        except INGEST_ERRORS as exc:
            return self._fail(exc, generation)
        return self.commit(book, book_id or book.source, generation)

    # -- layout --------------------------------------------------------------

    def _reflow(self, landing_page: int) -> None:
        self._result = repaginate(
            self.document.blocks,
            self.viewport,
            self.measurer,
            landing_page=landing_page,
        )
        self.reflow_count += 1

    def update_layout(self, **changes: float) -> None:
        # Validate eagerly so a bad metric fails at the call site.
        self.viewport.with_changes(**{**self._pending_layout, **changes})
        self._pending_layout.update(changes)

    def _absorb_pending_layout(self) -> bool:
        if not self._pending_layout:
            return False
        viewport = self.viewport.with_changes(**self._pending_layout)
        self._pending_layout.clear()
        if viewport == self.viewport:
            return False
        self.viewport = viewport
        return True

    def flush_layout(self) -> bool:
        if not self._absorb_pending_layout():
            return False
        self._reflow(self._result.current)
        return True

    def repaginate(
        self,
        viewport: Viewport | None = None,
        landing_page: int | None = None,
    ) -> PaginationResult:
        if viewport is not None:
            self._pending_layout.clear()
            self.viewport = viewport
        else:
            self._absorb_pending_layout()
        self._reflow(self._result.current if landing_page is None else landing_page)
        return self._result

    def update_settings(
        self,
        *,
        dialogue_mode: bool | None = None,
        quote_normalize: bool | None = None,
    ) -> bool:
        settings = self.settings
        if dialogue_mode is not None:
            settings = replace(settings, dialogue_mode=dialogue_mode)
        if quote_normalize is not None:
            settings = replace(settings, quote_normalize=quote_normalize)
        if settings == self.settings:
            return False
        self.settings = settings
        if self.store is not None:
            self.store.save_settings(settings)
        self._absorb_pending_layout()
        self.document = normalize_blocks(self._source_blocks, settings)
        self._reflow(self._result.current)
        return True

    # -- navigation ----------------------------------------------------------

    def go_to_page(self, page: int, *, persist: bool = True) -> int:
        result = self.result
        result.current = result.clamp(page)
        if persist and self.store is not None and self.book_id is not None:
            self.store.remember_page(self.book_id, result.current)
        return result.current

    def next_page(self) -> int:
        return self.go_to_page(self.current_page + 1)

    def previous_page(self) -> int:
        return self.go_to_page(self.current_page - 1)

    def find_page(self, text: str) -> int | None:
        return find_page_for_normalized_substring(self.result, text)

    # -- bookmarks -----------------------------------------------------------

    def add_bookmark(self, selection: str, viewed_page: int | None = None) -> BookmarkAnchor | None:
        if self.book_id is None:
            self.status = "Failed to bookmark. Try again when a page is loaded."
            return None
        page = self.current_page if viewed_page is None else viewed_page
        try:
            anchor = create_anchor(self.result, selection, page)
        except AnchorResolutionError as exc:
            logger.info("Bookmark not saved: %s", exc)
            self.status = str(exc)
            return None
        if self.store is not None:
            self.store.add_bookmark(self.book_id, anchor)
        self.status = "Bookmark saved."
        return anchor

    def bookmarks(self) -> list[BookmarkAnchor]:
        if self.store is None or self.book_id is None:
            return []
        return self.store.list_bookmarks(self.book_id)

    def navigate_to_bookmark(self, anchor: BookmarkAnchor) -> bool:
        try:
            page = locate_anchor(self.result, anchor)
        except SnippetNotFoundError as exc:
            logger.info("Bookmark %s not resolved: %s", anchor.id, exc)
            self.status = str(exc)
            return False
        self.go_to_page(page)
        self.status = "Jumped to bookmark."
        return True

    def to_payload(self) -> dict[str, object]:
        result = self.result
        return {
            "book": self.book_id,
            "title": self.title,
            "author": self.author,
            "current": result.current,
            "total": result.total,
            "status": self.status,
            "settings": self.settings.as_payload(),
            "viewport": self.viewport.as_payload(),
        }


__all__ = ["ReadingSession"]
