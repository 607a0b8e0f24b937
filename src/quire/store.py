from __future__ import annotations

import json
import logging
import threading
from pathlib import Path

from .locator import BookmarkAnchor
from .normalize import ReaderSettings

logger = logging.getLogger(__name__)

STATE_FILENAME = ".quire-reader.json"
STATE_VERSION = 1


def _empty_state() -> dict[str, object]:
    return {
        "version": STATE_VERSION,
        "prefs": {"settings": ReaderSettings().as_payload(), "pages": {}},
        "bookmarks": {},
    }


def _clean_pages(raw: object) -> dict[str, int]:
    if not isinstance(raw, dict):
        return {}
    pages: dict[str, int] = {}
    for book_id, page in raw.items():
        if not isinstance(book_id, str):
            continue
        if isinstance(page, bool) or not isinstance(page, int) or page < 1:
            continue
        pages[book_id] = page
    return pages


class ReaderStore:
    """Per-library JSON file holding reader preferences and bookmarks."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.lock = threading.Lock()

    @classmethod
    def in_directory(cls, root: Path) -> "ReaderStore":
        return cls(root / STATE_FILENAME)

    def _load(self) -> dict[str, object]:
        if not self.path.exists():
            return _empty_state()
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable reader state %s: %s", self.path, exc)
            return _empty_state()
        if not isinstance(raw, dict):
            return _empty_state()
        version = raw.get("version")
        if isinstance(version, bool) or not isinstance(version, int) or version > STATE_VERSION:
            # Fields this version understands are still read; the rest is dropped on save.
            logger.warning(
                "Reader state %s has unsupported version %r (expected %d)",
                self.path,
                version,
                STATE_VERSION,
            )

        state = _empty_state()
        prefs = raw.get("prefs")
        if isinstance(prefs, dict):
            state["prefs"] = {
                "settings": ReaderSettings.from_payload(prefs.get("settings")).as_payload(),
                "pages": _clean_pages(prefs.get("pages")),
            }
        bookmarks: dict[str, list[dict[str, object]]] = {}
        raw_bookmarks = raw.get("bookmarks")
        if isinstance(raw_bookmarks, dict):
            for book_id, entries in raw_bookmarks.items():
                if not isinstance(book_id, str) or not isinstance(entries, list):
                    continue
                seen_ids: set[str] = set()
                cleaned: list[dict[str, object]] = []
                for entry in entries:
                    anchor = BookmarkAnchor.from_payload(entry)
                    if anchor is None or anchor.id in seen_ids:
                        continue
                    seen_ids.add(anchor.id)
                    cleaned.append(anchor.to_payload())
                if cleaned:
                    bookmarks[book_id] = cleaned
        state["bookmarks"] = bookmarks
        return state

    def _save(self, state: dict[str, object]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            json.dumps(state, ensure_ascii=False, indent=2),
            encoding="utf-8",
        )

    def load_settings(self) -> ReaderSettings:
        with self.lock:
            prefs = self._load()["prefs"]
        return ReaderSettings.from_payload(prefs.get("settings"))  # type: ignore[union-attr]

    def save_settings(self, settings: ReaderSettings) -> None:
        with self.lock:
            state = self._load()
            state["prefs"]["settings"] = settings.as_payload()  # type: ignore[index]
            self._save(state)

    def last_page(self, book_id: str) -> int | None:
        with self.lock:
            pages = self._load()["prefs"]["pages"]  # type: ignore[index]
        return pages.get(book_id)

    def remember_page(self, book_id: str, page: int) -> None:
        with self.lock:
            state = self._load()
            state["prefs"]["pages"][book_id] = int(page)  # type: ignore[index]
            self._save(state)

    def list_bookmarks(self, book_id: str) -> list[BookmarkAnchor]:
        with self.lock:
            entries = self._load()["bookmarks"].get(book_id, [])  # type: ignore[union-attr]
        anchors = [anchor for anchor in map(BookmarkAnchor.from_payload, entries) if anchor]
        anchors.sort(key=lambda anchor: anchor.created_at, reverse=True)
        return anchors

    def get_bookmark(self, book_id: str, bookmark_id: str) -> BookmarkAnchor | None:
        for anchor in self.list_bookmarks(book_id):
            if anchor.id == bookmark_id:
                return anchor
        return None

    def add_bookmark(self, book_id: str, anchor: BookmarkAnchor) -> None:
        with self.lock:
            state = self._load()
            entries = state["bookmarks"].setdefault(book_id, [])  # type: ignore[union-attr]
            entries.append(anchor.to_payload())
            self._save(state)

    def remove_bookmark(self, book_id: str, bookmark_id: str) -> bool:
        with self.lock:
            state = self._load()
            entries = state["bookmarks"].get(book_id, [])  # type: ignore[union-attr]
            filtered = [entry for entry in entries if entry.get("id") != bookmark_id]
            if len(filtered) == len(entries):
                return False
            if filtered:
                state["bookmarks"][book_id] = filtered  # type: ignore[index]
            else:
                state["bookmarks"].pop(book_id, None)  # type: ignore[union-attr]
            self._save(state)
            return True


__all__ = ["ReaderStore", "STATE_FILENAME", "STATE_VERSION"]
