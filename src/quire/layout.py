from __future__ import annotations

import math
import textwrap
from dataclasses import dataclass, fields, replace
from functools import lru_cache
from typing import Mapping, Protocol, Sequence

from .blocks import BlockKind, ContentBlock


def _is_valid_metric(value: object) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and value >= 0


@dataclass(frozen=True, slots=True)
class Viewport:
    width: float = 720.0
    height: float = 960.0
    font_size: float = 18.0
    line_height: float = 1.5
    padding: float = 24.0
    column_gap: float = 32.0
    columns: int = 1

    @property
    def column_width(self) -> float:
        columns = max(1, self.columns)
        usable = self.width - 2 * self.padding - (columns - 1) * self.column_gap
        return max(0.0, usable / columns)

    @property
    def content_height(self) -> float:
        return max(0.0, self.height - 2 * self.padding)

    def with_changes(self, **changes: float) -> "Viewport":
        known = {f.name for f in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise ValueError(f"Unknown viewport metrics: {', '.join(sorted(unknown))}")
        for name, value in changes.items():
            if not _is_valid_metric(value):
                raise ValueError(f"Invalid viewport metric {name}={value!r}")
        if "columns" in changes:
            changes["columns"] = max(1, int(changes["columns"]))
        return replace(self, **changes)

    def as_payload(self) -> dict[str, float | int]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_payload(cls, payload: object, base: "Viewport | None" = None) -> "Viewport":
        viewport = base or cls()
        if not isinstance(payload, Mapping):
            return viewport
        changes: dict[str, float] = {}
        for f in fields(cls):
            value = payload.get(f.name)
            if not _is_valid_metric(value):
                continue
            changes[f.name] = value
        return viewport.with_changes(**changes) if changes else viewport


class Measurer(Protocol):
    def fits(self, blocks: Sequence[ContentBlock], viewport: Viewport) -> bool:
        """Return True when ``blocks`` laid out together fit ``viewport``."""
        ...


@lru_cache(maxsize=8192)
def _wrapped_line_count(text: str, kind: BlockKind, width: int) -> int:
    lines = text.split("\n") if kind == "preformatted" else [text]
    total = 0
    for line in lines:
        wrapped = textwrap.wrap(line, width, break_long_words=True, break_on_hyphens=True)
        total += max(1, len(wrapped))
    return total


@dataclass(frozen=True, slots=True)
class TextMeasurer:
    """
    Estimate rendered height by wrapping text at an average glyph width.

    Stands in for a real rendering surface in the CLI and web API.
    """

    char_width_ratio: float = 0.5
    block_spacing_lines: int = 1

    def chars_per_line(self, viewport: Viewport) -> int:
        glyph = viewport.font_size * self.char_width_ratio
        if glyph <= 0:
            return 1
        return max(1, int(viewport.column_width // glyph))

    def lines_per_page(self, viewport: Viewport) -> int:
        line_px = viewport.font_size * viewport.line_height
        per_column = int(viewport.content_height // line_px) if line_px > 0 else 1
        return max(1, per_column) * max(1, viewport.columns)

    def measure(self, blocks: Sequence[ContentBlock], viewport: Viewport) -> int:
        width = self.chars_per_line(viewport)
        lines = sum(_wrapped_line_count(block.text, block.kind, width) for block in blocks)
        return lines + self.block_spacing_lines * max(0, len(blocks) - 1)

    def fits(self, blocks: Sequence[ContentBlock], viewport: Viewport) -> bool:
        return self.measure(blocks, viewport) <= self.lines_per_page(viewport)


__all__ = ["Measurer", "TextMeasurer", "Viewport"]
