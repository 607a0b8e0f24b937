from __future__ import annotations

from quire.blocks import ContentBlock
from quire.normalize import (
    MIN_SEGMENT_CHARS,
    ReaderSettings,
    normalize_blocks,
    normalize_quotes,
    normalize_search_text,
    pad_paragraphs,
    prepare_text,
    split_dialogue,
)

DIALOGUE = (
    '"I never wanted any of this to happen to us, not ever," she said. '
    '"Then why did you come back?" '
    '"Because I had nowhere else left to go tonight," she answered.'
)


def test_normalize_quotes_converts_dialogue_single_quotes() -> None:
    assert normalize_quotes("He said 'Run' and left.") == 'He said "Run" and left.'
    assert normalize_quotes("('Stop' she cried)") == '("Stop" she cried)'


def test_normalize_quotes_leaves_contractions_alone() -> None:
    text = "It's the dog's bone and I don't mind."
    assert normalize_quotes(text) == text


def test_normalize_quotes_is_idempotent() -> None:
    once = normalize_quotes("'Hello there' and 'Goodbye 2' they said.")
    assert normalize_quotes(once) == once


def test_split_dialogue_breaks_consecutive_turns() -> None:
    parts = split_dialogue(DIALOGUE)
    assert parts == [
        '"I never wanted any of this to happen to us, not ever," she said. "Then why did you come back?"',
        '"Because I had nowhere else left to go tonight," she answered.',
    ]


def test_split_dialogue_rejects_short_segments() -> None:
    paragraph = (
        '"A long opening line of dialogue that keeps going across the quiet kitchen '
        'table for quite a while, honestly," she said to him. "No." "Fine."'
    )
    assert len(paragraph) >= 120
    assert split_dialogue(paragraph) == [paragraph]


def test_split_dialogue_needs_two_quote_marks() -> None:
    paragraph = (
        'He walked for a long time along the river before turning back toward the town, '
        'and only then did he remember what she had said: "Come home."'
    )
    assert paragraph.count('"') == 2
    assert split_dialogue(paragraph) == [paragraph]
    single = paragraph.replace('"Come home."', '"Come home.')
    assert split_dialogue(single) == [single]


def test_split_dialogue_leaves_short_paragraphs_alone() -> None:
    paragraph = '"Yes," she said. "No," he replied.'
    assert split_dialogue(paragraph) == [paragraph]


def test_split_dialogue_segments_never_shorter_than_minimum() -> None:
    for part in split_dialogue(DIALOGUE):
        assert len(part) >= MIN_SEGMENT_CHARS


def test_prepare_text_is_idempotent() -> None:
    text = f"Intro paragraph.\n\n\n{DIALOGUE}\n\n  'Quoted' aside.  "
    once = prepare_text(text)
    assert prepare_text(once) == once
    assert once.split("\n\n")[0] == "Intro paragraph."


def test_prepare_text_respects_disabled_settings() -> None:
    settings = ReaderSettings(dialogue_mode=False, quote_normalize=False)
    text = f"'Quoted' aside.\n\n{DIALOGUE}"
    assert prepare_text(text, settings) == text


def test_pad_paragraphs_collapses_blank_runs() -> None:
    assert pad_paragraphs("a\n\n\n\nb\n \nc") == "a\n\nb\n\nc"


def test_normalize_blocks_drops_breaks_and_keeps_kind() -> None:
    blocks = [
        ContentBlock(kind="paragraph", text="Opening.", order=0),
        ContentBlock(kind="break", text="", order=1),
        ContentBlock(kind="quote", text=DIALOGUE, order=2),
        ContentBlock(kind="paragraph", text="   ", order=3),
    ]
    document = normalize_blocks(blocks)
    assert [block.kind for block in document.blocks] == ["paragraph", "quote", "quote"]
    assert [block.order for block in document.blocks] == [0, 1, 2]
    assert len(document) == 3
    assert document.text.startswith("Opening.\n\n")


def test_normalize_blocks_without_dialogue_mode_keeps_blocks_whole() -> None:
    blocks = [ContentBlock(kind="paragraph", text=DIALOGUE, order=0)]
    document = normalize_blocks(blocks, ReaderSettings(dialogue_mode=False))
    assert [block.text for block in document.blocks] == [DIALOGUE]


def test_normalize_search_text_lowercases_and_collapses_whitespace() -> None:
    assert normalize_search_text("  It WAS\n a   dark\tnight ") == "it was a dark night"


def test_reader_settings_payload_ignores_bad_values() -> None:
    assert ReaderSettings.from_payload(None) == ReaderSettings()
    settings = ReaderSettings.from_payload({"dialogue_mode": "no", "quote_normalize": False})
    assert settings == ReaderSettings(dialogue_mode=True, quote_normalize=False)
    assert ReaderSettings.from_payload(settings.as_payload()) == settings
