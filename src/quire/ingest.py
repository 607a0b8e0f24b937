from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from .archive import (
    CORRUPT_MEMBER_ERRORS,
    ArchiveContentError,
    ArchiveFormatError,
    archive_to_blocks,
    decode_text,
)
from .blocks import ContentBlock, blocks_from_text

logger = logging.getLogger(__name__)

BookFormat = Literal["epub", "text"]

ARCHIVE_SUFFIXES = (".epub",)
TEXT_SUFFIXES = (".txt", ".md", ".markdown")
SUPPORTED_SUFFIXES = ARCHIVE_SUFFIXES + TEXT_SUFFIXES


class UnsupportedFormatError(ValueError):
    """Raised when a file is neither an EPUB nor plain/markdown text."""


@dataclass(slots=True)
class IngestedBook:
    title: str
    author: str | None
    blocks: list[ContentBlock]
    source: str
    format: BookFormat


# Every error the ingestion boundary converts into a status message.
INGEST_ERRORS = (
    ArchiveFormatError,
    ArchiveContentError,
    UnsupportedFormatError,
    OSError,
    *CORRUPT_MEMBER_ERRORS,
)


def detect_format(filename: str) -> BookFormat:
    suffix = Path(filename or "").suffix.lower()
    if suffix in ARCHIVE_SUFFIXES:
        return "epub"
    if not suffix or suffix in TEXT_SUFFIXES:
        return "text"
    raise UnsupportedFormatError(f"Unsupported file type: {filename}")


def ingest_bytes(data: bytes, filename: str, *, title: str | None = None) -> IngestedBook:
    fmt = detect_format(filename)
    name = Path(filename or "").name or "book"
    if fmt == "epub":
        contents, blocks = archive_to_blocks(data)
        return IngestedBook(
            title=title or contents.title or name,
            author=contents.author,
            blocks=blocks,
            source=name,
            format=fmt,
        )
    return IngestedBook(
        title=title or name,
        author=None,
        blocks=blocks_from_text(decode_text(data)),
        source=name,
        format=fmt,
    )


def ingest_path(path: Path, *, title: str | None = None) -> IngestedBook:
    detect_format(path.name)
    logger.debug("Reading %s", path)
    return ingest_bytes(path.read_bytes(), path.name, title=title)


def describe_ingest_error(exc: BaseException) -> str:
    if isinstance(exc, (ArchiveFormatError, ArchiveContentError, *CORRUPT_MEMBER_ERRORS)):
        return "Could not open EPUB. Try another file."
    if isinstance(exc, UnsupportedFormatError):
        return "Unsupported file type. Try TXT, MD, or EPUB."
    if isinstance(exc, OSError):
        return "Could not read that file."
    return "Could not open that book."


__all__ = [
    "ARCHIVE_SUFFIXES",
    "BookFormat",
    "INGEST_ERRORS",
    "IngestedBook",
    "SUPPORTED_SUFFIXES",
    "TEXT_SUFFIXES",
    "UnsupportedFormatError",
    "describe_ingest_error",
    "detect_format",
    "ingest_bytes",
    "ingest_path",
]
