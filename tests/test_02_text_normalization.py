"""Tests for speech text normalization and duration helpers."""
from __future__ import annotations

import pytest

from snipr.utils.text import (
    estimate_duration_seconds,
    format_duration_label,
    normalize_for_speech,
    preview,
    word_count,
)


class TestNormalizeForSpeech:

    def test_sentence_breaks_become_paragraphs(self):
        assert normalize_for_speech("Hello. World.") == "Hello.\n\nWorld."

    def test_whitespace_collapsed(self):
        assert normalize_for_speech("a   b\t\tc") == "a b c"

    def test_newlines_collapsed_into_spaces(self):
        # Paragraph structure only comes from sentence punctuation
        assert normalize_for_speech("first line\n\n\n\nsecond line") == "first line second line"

    def test_honorifics_get_period(self):
        # The added period then reads as a sentence end
        assert normalize_for_speech("Dr Smith met Mrs Jones") == "Dr.\n\nSmith met Mrs.\n\nJones"

    def test_honorific_with_period_is_broken_as_sentence(self):
        # "Dr." already ends in a period, so the break rule applies to it
        assert normalize_for_speech("Dr. Who") == "Dr.\n\nWho"

    def test_question_and_exclamation(self):
        assert normalize_for_speech("Really? Yes! Fine.") == "Really?\n\nYes!\n\nFine."

    def test_trimmed(self):
        assert normalize_for_speech("   padded.   ") == "padded."

    def test_empty(self):
        assert normalize_for_speech("") == ""
        assert normalize_for_speech("   \n  ") == ""

    def test_deterministic(self):
        text = "Mr Brown went home.  He   slept!\n\n\nThe end"
        assert normalize_for_speech(text) == normalize_for_speech(text)


class TestDuration:

    def test_word_count(self):
        assert word_count("Hello.\n\nWorld.") == 2
        assert word_count("") == 0

    def test_two_words_is_one_second(self):
        assert estimate_duration_seconds("Hello.\n\nWorld.") == 1

    def test_rounds_half_up(self):
        # 5 words * 0.4 = 2.0; 4 words * 0.4 = 1.6 -> 2
        assert estimate_duration_seconds("a b c d e") == 2
        assert estimate_duration_seconds("a b c d") == 2

    def test_never_below_one(self):
        assert estimate_duration_seconds("") == 1
        assert estimate_duration_seconds("word") == 1

    def test_custom_rate(self):
        assert estimate_duration_seconds("a b c d", seconds_per_word=1.0) == 4

    @pytest.mark.parametrize("seconds,label", [
        (0, "00:00:00"),
        (1, "00:00:01"),
        (61, "00:01:01"),
        (3725, "01:02:05"),
    ])
    def test_duration_label(self, seconds, label):
        assert format_duration_label(seconds) == label


class TestPreview:

    def test_short_text_unchanged(self):
        assert preview("short text") == "short text"

    def test_long_text_truncated(self):
        out = preview("x" * 200, limit=20)
        assert len(out) == 20
        assert out.endswith("...")

    def test_flattened(self):
        assert preview("a\n\nb") == "a b"
