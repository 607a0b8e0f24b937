from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import Iterable, Mapping, Sequence

from .blocks import ContentBlock, renumber_blocks

MIN_DIALOGUE_CHARS = 120
MIN_DIALOGUE_QUOTES = 2
MIN_SEGMENT_CHARS = 20

# Opening single quote used as a dialogue starter.
_OPENING_SINGLE_QUOTE_RE = re.compile(r"(^|[\s(\[{-])'(?=[A-Z0-9])")
# Closing single quote after a word; contractions keep theirs.
_CLOSING_SINGLE_QUOTE_RE = re.compile(r"([A-Za-z0-9])'(?!\w)")
_DOUBLE_QUOTE_CHARS = ('"', "“", "”")
_DIALOGUE_BREAK_RE = re.compile(r"(?<=[\"”])\s+(?=[A-Z“\"'‘])")
_PARAGRAPH_BREAK_RE = re.compile(r"\n\s*\n")
_WS_RE = re.compile(r"\s+")


@dataclass(frozen=True, slots=True)
class ReaderSettings:
    dialogue_mode: bool = True
    quote_normalize: bool = True

    def as_payload(self) -> dict[str, bool]:
        return {
            "dialogue_mode": self.dialogue_mode,
            "quote_normalize": self.quote_normalize,
        }

    @classmethod
    def from_payload(cls, payload: object) -> "ReaderSettings":
        if not isinstance(payload, Mapping):
            return cls()
        defaults = cls()
        dialogue = payload.get("dialogue_mode")
        quotes = payload.get("quote_normalize")
        return cls(
            dialogue_mode=dialogue if isinstance(dialogue, bool) else defaults.dialogue_mode,
            quote_normalize=quotes if isinstance(quotes, bool) else defaults.quote_normalize,
        )


@dataclass(slots=True)
class NormalizedDocument:
    blocks: list[ContentBlock] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n\n".join(block.text for block in self.blocks)

    def __len__(self) -> int:
        return len(self.blocks)


def normalize_search_text(text: str) -> str:
    return _WS_RE.sub(" ", text.lower()).strip()


def normalize_quotes(text: str) -> str:
    text = _OPENING_SINGLE_QUOTE_RE.sub(r'\1"', text)
    return _CLOSING_SINGLE_QUOTE_RE.sub(r'\1"', text)


def split_dialogue(paragraph: str) -> list[str]:
    """
    Break a long paragraph into dialogue turns at closing quotes followed by a
    new capitalised or quoted sentence. Returns the paragraph unchanged when a
    turn would be shorter than MIN_SEGMENT_CHARS.
    """
    trimmed = paragraph.strip()
    if not trimmed:
        return []
    quote_count = sum(trimmed.count(ch) for ch in _DOUBLE_QUOTE_CHARS)
    if quote_count < MIN_DIALOGUE_QUOTES or len(trimmed) < MIN_DIALOGUE_CHARS:
        return [trimmed]
    parts = [part.strip() for part in _DIALOGUE_BREAK_RE.split(trimmed)]
    parts = [part for part in parts if part]
    if len(parts) < 2:
        return [trimmed]
    if any(len(part) < MIN_SEGMENT_CHARS for part in parts):
        return [trimmed]
    return parts


def split_paragraphs(text: str) -> list[str]:
    return [part.strip() for part in _PARAGRAPH_BREAK_RE.split(text) if part.strip()]


def pad_paragraphs(text: str) -> str:
    return "\n\n".join(split_paragraphs(text))


def _normalize_paragraph(paragraph: str, settings: ReaderSettings) -> list[str]:
    if settings.quote_normalize:
        paragraph = normalize_quotes(paragraph)
    if settings.dialogue_mode:
        return split_dialogue(paragraph)
    return [paragraph]


def prepare_text(text: str, settings: ReaderSettings | None = None) -> str:
    settings = settings or ReaderSettings()
    processed: list[str] = []
    for paragraph in split_paragraphs(text):
        processed.extend(_normalize_paragraph(paragraph, settings))
    return pad_paragraphs("\n\n".join(processed))


def normalize_blocks(
    blocks: Sequence[ContentBlock] | Iterable[ContentBlock],
    settings: ReaderSettings | None = None,
) -> NormalizedDocument:
    """Apply the enabled passes per block; hard breaks and blank blocks are dropped."""
    settings = settings or ReaderSettings()
    normalized: list[ContentBlock] = []
    for block in blocks:
        if block.kind == "break" or block.is_blank:
            continue
        for paragraph in split_paragraphs(block.text):
            normalized.extend(
                replace(block, text=segment)
                for segment in _normalize_paragraph(paragraph, settings)
            )
    return NormalizedDocument(blocks=renumber_blocks(normalized))


__all__ = [
    "MIN_DIALOGUE_CHARS",
    "MIN_DIALOGUE_QUOTES",
    "MIN_SEGMENT_CHARS",
    "NormalizedDocument",
    "ReaderSettings",
    "normalize_blocks",
    "normalize_quotes",
    "normalize_search_text",
    "pad_paragraphs",
    "prepare_text",
    "split_dialogue",
    "split_paragraphs",
]
