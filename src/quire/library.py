from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .ingest import SUPPORTED_SUFFIXES, BookFormat, detect_format
from .normalize import normalize_search_text

LOCAL_AUTHOR = "Local"
SORT_MODES = ("author", "recent")


@dataclass(slots=True)
class BookListing:
    path: Path
    book_id: str
    author: str
    title: str
    format: BookFormat
    modified: float

    def to_payload(self) -> dict[str, object]:
        return {
            "id": self.book_id,
            "title": self.title,
            "author": self.author,
            "format": self.format,
            "modified": self.modified,
        }


def author_from_folder(folder: str | None) -> str:
    """Turn an author folder name such as ``Austen,_Jane`` into ``Jane Austen``."""
    if not folder:
        return LOCAL_AUTHOR
    name = folder.replace("_", " ").strip()
    if "," in name:
        parts = name.split(",")
        if len(parts) >= 2:
            name = f"{parts[1].strip()} {parts[0].strip()}".strip()
    name = " ".join(name.split())
    return name or LOCAL_AUTHOR


def _iter_book_files(root: Path) -> list[tuple[Path, str | None]]:
    found: list[tuple[Path, str | None]] = []
    for entry in root.iterdir():
        if entry.name.startswith("."):
            continue
        if entry.is_file() and entry.suffix.lower() in SUPPORTED_SUFFIXES:
            found.append((entry, None))
        elif entry.is_dir():
            for child in entry.iterdir():
                if child.name.startswith("."):
                    continue
                if child.is_file() and child.suffix.lower() in SUPPORTED_SUFFIXES:
                    found.append((child, entry.name))
    return found


def list_books(root: Path, term: str = "", mode: str = "author") -> list[BookListing]:
    normalized_mode = mode.lower().strip()
    if normalized_mode not in SORT_MODES:
        normalized_mode = "author"
    needle = normalize_search_text(term)
    entries: list[tuple[tuple[object, ...], BookListing]] = []
    for path, folder in _iter_book_files(root):
        author = author_from_folder(folder)
        title = " ".join(path.stem.replace("_", " ").split()) or path.name
        if needle and needle not in normalize_search_text(title) and needle not in normalize_search_text(author):
            continue
        try:
            modified = path.stat().st_mtime
        except OSError:
            modified = 0.0
        book = BookListing(
            path=path,
            book_id=path.relative_to(root).as_posix(),
            author=author,
            title=title,
            format=detect_format(path.name),
            modified=modified,
        )
        if normalized_mode == "recent":
            sort_key: tuple[object, ...] = (
                -modified,
                author.casefold(),
                title.casefold(),
                book.book_id.casefold(),
            )
        else:
            sort_key = (author.casefold(), title.casefold(), book.book_id.casefold())
        entries.append((sort_key, book))
    entries.sort(key=lambda item: item[0])
    return [book for _, book in entries]


def group_by_author(listings: list[BookListing]) -> dict[str, list[BookListing]]:
    grouped: dict[str, list[BookListing]] = {}
    for book in listings:
        grouped.setdefault(book.author, []).append(book)
    return grouped


__all__ = [
    "BookListing",
    "LOCAL_AUTHOR",
    "SORT_MODES",
    "author_from_folder",
    "group_by_author",
    "list_books",
]
