from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Mapping

from .normalize import normalize_search_text
from .pagination import PaginationResult, find_page_for_normalized_substring

SNIPPET_MAX_WORDS = 50


class AnchorResolutionError(LookupError):
    """Raised when a selection cannot be anchored to the page being viewed."""


class SnippetNotFoundError(LookupError):
    """Raised when a stored bookmark snippet matches no page."""


@dataclass(frozen=True, slots=True)
class BookmarkAnchor:
    snippet: str
    normalized_snippet: str
    page: int
    created_at: float
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_payload(self) -> dict[str, object]:
        return {
            "id": self.id,
            "snippet": self.snippet,
            "normalized_snippet": self.normalized_snippet,
            "page": self.page,
            "created_at": self.created_at,
        }

    @classmethod
    def from_payload(cls, payload: object) -> "BookmarkAnchor | None":
        if not isinstance(payload, Mapping):
            return None
        snippet = payload.get("snippet")
        if not isinstance(snippet, str) or not snippet.strip():
            return None
        page = payload.get("page")
        if isinstance(page, bool) or not isinstance(page, int):
            page = 0
        created_at = payload.get("created_at")
        if isinstance(created_at, bool) or not isinstance(created_at, (int, float)):
            created_at = 0.0
        normalized = payload.get("normalized_snippet")
        if not isinstance(normalized, str) or not normalized:
            normalized = normalize_search_text(snippet)
        entry_id = payload.get("id")
        if not isinstance(entry_id, str) or not entry_id.strip():
            entry_id = uuid.uuid4().hex
        return cls(
            snippet=snippet,
            normalized_snippet=normalized,
            page=page,
            created_at=float(created_at),
            id=entry_id,
        )


def make_snippet(text: str) -> str:
    words = text.split()
    if len(words) > SNIPPET_MAX_WORDS:
        return " ".join(words[:SNIPPET_MAX_WORDS])
    return text.strip()


def _attempt(result: PaginationResult, source: str) -> tuple[str, str, int | None]:
    snippet = make_snippet(source)
    normalized = normalize_search_text(snippet)
    return snippet, normalized, find_page_for_normalized_substring(result, normalized)


def create_anchor(
    result: PaginationResult,
    selection: str,
    viewed_page: int,
    *,
    now: float | None = None,
) -> BookmarkAnchor:
    """
    Anchor ``selection`` to ``viewed_page``.

    When the selection's first occurrence is on another page, the first block
    of the viewed page is used instead. If that also fails to point at the
    viewed page, AnchorResolutionError is raised rather than saving a
    mislocated bookmark.
    """
    if not selection or not selection.strip():
        raise AnchorResolutionError("Select some text before bookmarking.")
    if viewed_page < 1 or viewed_page > result.total:
        raise AnchorResolutionError(f"Page {viewed_page} is not part of the current pagination.")

    snippet, normalized, page = _attempt(result, selection)
    if page != viewed_page:
        viewed = result.pages[viewed_page - 1]
        fallback = viewed.blocks[0].text if viewed.blocks and not viewed.placeholder else ""
        if not fallback.strip():
            raise AnchorResolutionError("Failed to bookmark. Try bookmarking simpler text.")
        snippet, normalized, page = _attempt(result, fallback)
        if page != viewed_page:
            raise AnchorResolutionError("Failed to bookmark. Try bookmarking simpler text.")

    return BookmarkAnchor(
        snippet=snippet,
        normalized_snippet=normalized,
        page=viewed_page,
        created_at=time.time() if now is None else now,
    )


def locate_anchor(result: PaginationResult, anchor: BookmarkAnchor) -> int:
    """Return the page holding the anchor's snippet, preferring its recorded page."""
    needle = normalize_search_text(anchor.snippet) or anchor.normalized_snippet
    if not needle:
        raise SnippetNotFoundError("Bookmark has no searchable text.")
    if 1 <= anchor.page <= result.total:
        if needle in result.pages[anchor.page - 1].normalized_text:
            return anchor.page
    page = find_page_for_normalized_substring(result, needle)
    if page is None:
        raise SnippetNotFoundError("Bookmark text not found in current pagination.")
    return page


__all__ = [
    "AnchorResolutionError",
    "BookmarkAnchor",
    "SNIPPET_MAX_WORDS",
    "SnippetNotFoundError",
    "create_anchor",
    "locate_anchor",
    "make_snippet",
]
