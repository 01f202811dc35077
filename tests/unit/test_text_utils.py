"""Unit tests for text splitting helpers and document loading."""

import pytest

from seven_stations.extraction import DocumentLoadError, load_script
from seven_stations.extraction.text_utils import (
    CHARACTER_CUE_PATTERN,
    SCENE_HEADING_PATTERN,
    SPEAKER_PATTERN,
    content_words,
    normalize_id,
    split_beats,
    split_sentences,
)


class TestSplitting:
    """Tests for sentence and beat splitting."""

    def test_split_sentences(self):
        text = "Mara waits. Reyes arrives!\n\nMARA\nWhy now?"
        assert split_sentences(text) == ["Mara waits.", "Reyes arrives!", "MARA", "Why now?"]

    def test_split_sentences_empty(self):
        assert split_sentences("   \n\n ") == []

    def test_split_beats_even(self):
        beats = split_beats([str(i) for i in range(10)], beats=5)
        assert [len(b) for b in beats] == [2, 2, 2, 2, 2]

    def test_split_beats_fewer_sentences_than_beats(self):
        beats = split_beats(["one", "two"], beats=5)
        assert beats == [["one"], ["two"]]

    def test_split_beats_keeps_order(self):
        sentences = [str(i) for i in range(7)]
        beats = split_beats(sentences, beats=3)
        assert [s for beat in beats for s in beat] == sentences

    def test_content_words_drop_stopwords(self):
        assert content_words("The astronaut and the signal") == ["astronaut", "signal"]


class TestNormalizeId:
    """Tests for normalize_id."""

    @pytest.mark.parametrize("name,expected", [
        ("Captain Reyes", "captain_reyes"),
        ("the Signal", "signal"),
        ("O'Neil", "oneil"),
        ("  A   Lonely  Astronaut ", "lonely_astronaut"),
    ])
    def test_normalize(self, name, expected):
        assert normalize_id(name) == expected


class TestPatterns:
    """Tests for screenplay patterns."""

    def test_speaker_pattern(self):
        match = SPEAKER_PATTERN.search("Mara: Get down!")
        assert match.group(1) == "Mara"

    def test_character_cue(self):
        match = CHARACTER_CUE_PATTERN.search("Some action.\nMARA (V.O.)\nHello.")
        assert match.group(1).strip() == "MARA"

    def test_scene_heading(self):
        match = SCENE_HEADING_PATTERN.search("INT. RELAY STATION - NIGHT")
        assert match.group(1) == "RELAY STATION"


class TestLoadScript:
    """Tests for load_script."""

    def test_text_file_with_page_breaks(self, tmp_path):
        path = tmp_path / "script.txt"
        path.write_text("Page one text.\fPage   two text.", encoding="utf-8")

        document = load_script(path)

        assert document.total_pages == 2
        assert document.pages[1].text == "Page two text."
        assert document.full_text == "Page one text.\nPage two text."
        assert document.total_characters == len("Page one text.") + len("Page two text.")

    def test_missing_file(self, tmp_path):
        with pytest.raises(DocumentLoadError):
            load_script(tmp_path / "missing.txt")

    def test_empty_file_yields_one_empty_page(self, tmp_path):
        path = tmp_path / "empty.txt"
        path.write_text("", encoding="utf-8")

        document = load_script(path)

        assert document.total_pages == 1
        assert document.full_text == ""
