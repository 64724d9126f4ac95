"""Tests for sentence-preserving text segmentation."""
from __future__ import annotations

import random

import pytest

from snipr.pipeline.segmenter import segment_text, sentence_spans
from snipr.utils.text import normalize_for_speech


def _sentences(text: str):
    return [text[s:e] for s, e in sentence_spans(text)]


def test_segment_basic():
    result = segment_text("One. Two. Three.", max_chars=9)
    assert result.chunks == ["One. Two.", "Three."]
    assert "segment" in result.timings_s


def test_short_text_is_one_chunk():
    text = normalize_for_speech("Hello. World.")
    assert segment_text(text, max_chars=5000).chunks == ["Hello.\n\nWorld."]


def test_empty_input_yields_no_chunks():
    assert segment_text("").chunks == []
    assert segment_text("   \n\n ").chunks == []


def test_oversized_sentence_emitted_alone_untruncated():
    long_sentence = "word " * 50 + "end."
    text = f"Short. {long_sentence} Tail."
    chunks = segment_text(text, max_chars=40).chunks

    assert chunks[0] == "Short."
    assert chunks[1] == long_sentence
    assert chunks[2] == "Tail."


def test_chunk_boundaries_fall_on_sentences():
    text = "A b c. D e f! G h i? J k l."
    for chunk in segment_text(text, max_chars=14).chunks:
        assert chunk[-1] in ".!?"


def test_no_sentence_punctuation_is_single_sentence():
    text = "no punctuation here at all"
    assert segment_text(text, max_chars=5).chunks == [text]


def test_invalid_max_chars():
    with pytest.raises(ValueError):
        segment_text("Hello.", max_chars=0)


@pytest.mark.parametrize("seed", [1, 2, 3, 4, 5])
def test_reconstruction_and_limit(seed):
    """Chunks reproduce the sentence sequence; only lone sentences exceed the limit."""
    rng = random.Random(seed)
    words = ["alpha", "beta", "gamma", "delta", "epsilon", "zeta", "eta"]
    sentences = []
    for _ in range(rng.randint(5, 40)):
        body = " ".join(rng.choice(words) for _ in range(rng.randint(1, 30)))
        sentences.append(body.capitalize() + rng.choice(".!?"))
    text = normalize_for_speech(" ".join(sentences))
    max_chars = rng.randint(20, 200)

    chunks = segment_text(text, max_chars=max_chars).chunks

    rebuilt = [s for chunk in chunks for s in _sentences(chunk)]
    assert rebuilt == _sentences(text)
    for chunk in chunks:
        assert len(chunk) <= max_chars or len(_sentences(chunk)) == 1
