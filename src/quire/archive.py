from __future__ import annotations

import codecs
import io
import logging
import re
import xml.etree.ElementTree as ET
import zipfile
import zlib
from dataclasses import dataclass, field
from posixpath import dirname
from urllib.parse import unquote

from .blocks import ContentBlock, extract_blocks, renumber_blocks

logger = logging.getLogger(__name__)

CONTAINER_PATH = "META-INF/container.xml"
_CONTENT_MEDIA_RE = re.compile(r"html|xhtml|xml", re.IGNORECASE)
# Raised by zipfile when a member's compressed data or CRC is damaged.
CORRUPT_MEMBER_ERRORS = (zipfile.BadZipFile, zlib.error, EOFError)


class ArchiveFormatError(ValueError):
    """Raised when the container, package path or package document is unusable."""

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(message)
        self.stage = stage


class ArchiveContentError(ValueError):
    """Raised when no document in the reading order yields readable text."""


@dataclass(frozen=True, slots=True)
class ManifestItem:
    id: str
    href: str
    media_type: str | None


@dataclass(slots=True)
class PackageDocument:
    title: str | None
    author: str | None
    manifest: dict[str, ManifestItem]
    spine: list[str]


@dataclass(frozen=True, slots=True)
class ContentDocument:
    path: str
    media_type: str | None
    html: str


@dataclass(slots=True)
class ArchiveContents:
    package_path: str
    title: str | None = None
    author: str | None = None
    documents: list[ContentDocument] = field(default_factory=list)


def decode_text(raw: bytes) -> str:
    if raw.startswith((codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE)):
        encodings: tuple[str, ...] = ("utf-16",)
    else:
        encodings = ("utf-8-sig", "cp1252")
    for enc in encodings:
        try:
            return raw.decode(enc)
        except UnicodeDecodeError:
            continue
    return raw.decode("utf-8", errors="ignore")


def _strip_tag(tag: str) -> str:
    return tag.split("}", 1)[-1] if "}" in tag else tag


def _get_attr(elem: ET.Element, name: str) -> str | None:
    for attr, value in elem.attrib.items():
        if _strip_tag(attr) == name:
            return value
    return None


def _parse_xml(raw: bytes, stage: str) -> ET.Element:
    try:
        return ET.fromstring(raw)
    except ET.ParseError as exc:
        raise ArchiveFormatError(stage, f"Malformed XML in {stage} document: {exc}") from exc


def resolve_href(package_path: str, href: str) -> str:
    """Resolve a manifest href against the package document's directory."""
    target = unquote(href.split("#", 1)[0])
    base = dirname(package_path)
    joined = f"{base}/{target}" if base and not target.startswith("/") else target
    parts: list[str] = []
    for part in joined.split("/"):
        if part in ("", "."):
            continue
        if part == "..":
            if parts:
                parts.pop()
            continue
        parts.append(part)
    return "/".join(parts)


def _find_package_path(zf: zipfile.ZipFile) -> str:
    try:
        raw = zf.read(CONTAINER_PATH)
    except KeyError as exc:
        raise ArchiveFormatError("container", "container.xml not found") from exc
    except CORRUPT_MEMBER_ERRORS as exc:
        raise ArchiveFormatError("container", f"container.xml is corrupt: {exc}") from exc
    root = _parse_xml(raw, "container")
    for elem in root.iter():
        if _strip_tag(elem.tag) == "rootfile":
            full_path = (_get_attr(elem, "full-path") or "").strip()
            if full_path:
                return full_path
            break
    raise ArchiveFormatError("package-path", "OPF path missing")


def _first_metadata_text(root: ET.Element, name: str) -> str | None:
    for metadata in root.iter():
        if _strip_tag(metadata.tag) != "metadata":
            continue
        for child in metadata:
            if _strip_tag(child.tag) == name and child.text and child.text.strip():
                return child.text.strip()
    return None


def parse_package_document(raw: bytes) -> PackageDocument:
    root = _parse_xml(raw, "package")
    manifest: dict[str, ManifestItem] = {}
    spine: list[str] = []
    for elem in root.iter():
        local = _strip_tag(elem.tag)
        if local == "item":
            item_id = elem.attrib.get("id")
            href = elem.attrib.get("href")
            if item_id and href:
                manifest[item_id] = ManifestItem(
                    id=item_id,
                    href=href,
                    media_type=elem.attrib.get("media-type"),
                )
        elif local == "itemref":
            idref = elem.attrib.get("idref")
            if idref:
                spine.append(idref)
    return PackageDocument(
        title=_first_metadata_text(root, "title"),
        author=_first_metadata_text(root, "creator"),
        manifest=manifest,
        spine=spine,
    )


def read_archive(data: bytes) -> ArchiveContents:
    """
    Open an EPUB held in memory and return its spine documents in reading order.

    Spine entries with non-HTML media types, unknown ids or missing resources
    are skipped; a broken container or package document raises
    ArchiveFormatError naming the failing stage.
    """
    try:
        zf = zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as exc:
        raise ArchiveFormatError("archive", "Not a zip archive") from exc

    with zf:
        package_path = _find_package_path(zf)
        try:
            package_raw = zf.read(package_path)
        except KeyError as exc:
            raise ArchiveFormatError("package", f"OPF file missing: {package_path}") from exc
        except CORRUPT_MEMBER_ERRORS as exc:
            raise ArchiveFormatError("package", f"OPF file corrupt: {package_path}: {exc}") from exc
        package = parse_package_document(package_raw)

        contents = ArchiveContents(
            package_path=package_path,
            title=package.title,
            author=package.author,
        )
        for idref in package.spine:
            item = package.manifest.get(idref)
            if item is None:
                logger.debug("Spine references unknown manifest id %r", idref)
                continue
            if item.media_type and not _CONTENT_MEDIA_RE.search(item.media_type):
                continue
            path = resolve_href(package_path, item.href)
            try:
                raw = zf.read(path)
            except KeyError:
                logger.debug("Skipping missing spine document %s", path)
                continue
            except CORRUPT_MEMBER_ERRORS as exc:
                logger.debug("Skipping corrupt spine document %s: %s", path, exc)
                continue
            contents.documents.append(
                ContentDocument(path=path, media_type=item.media_type, html=decode_text(raw))
            )
    return contents


def archive_to_blocks(data: bytes) -> tuple[ArchiveContents, list[ContentBlock]]:
    contents = read_archive(data)
    blocks: list[ContentBlock] = []
    for document in contents.documents:
        blocks.extend(extract_blocks(document.html))
    if not any(not block.is_blank for block in blocks):
        raise ArchiveContentError("No readable text found in EPUB")
    logger.debug(
        "Extracted %d blocks from %d documents in %s",
        len(blocks),
        len(contents.documents),
        contents.package_path,
    )
    return contents, renumber_blocks(blocks)


__all__ = [
    "ArchiveContentError",
    "ArchiveContents",
    "ArchiveFormatError",
    "CONTAINER_PATH",
    "CORRUPT_MEMBER_ERRORS",
    "ContentDocument",
    "ManifestItem",
    "PackageDocument",
    "archive_to_blocks",
    "decode_text",
    "parse_package_document",
    "read_archive",
    "resolve_href",
]
