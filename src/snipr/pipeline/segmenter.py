"""
Text Segmentation for Speech Synthesis.

The speech engine accepts a bounded amount of text per call. This module
packs sentences greedily into chunks no longer than `max_chars`.

Rules:
    - A sentence boundary is a whitespace run following . ! or ?
    - Each chunk is an exact slice of the input from its first sentence
      to its last, so separators inside a chunk are preserved
    - Chunks never split a sentence; a single sentence longer than
      `max_chars` is emitted alone and untruncated
    - Empty or whitespace-only input yields no chunks

Example:
    >>> from snipr.pipeline.segmenter import segment_text
    >>> segment_text("One. Two. Three.", max_chars=9).chunks
    ['One. Two.', 'Three.']
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Tuple

from snipr.core.logging import get_logger, verbose
from snipr.utils.timeit import timeit

_LOG = get_logger("snipr.segmenter")

DEFAULT_MAX_CHARS = 5000


# =============================================================================
# Regex Patterns
# =============================================================================

# The whitespace run after terminal punctuation; the punctuation stays with
# the sentence it ends
_BOUNDARY = re.compile(r"(?<=[.!?])\s+")


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class SegmentResult:
    """
    Result of a segmentation.

    Attributes:
        chunks: Synthesis-ready chunks, in reading order.
        timings_s: Timing measurements in seconds.
    """
    chunks: List[str]
    timings_s: Dict[str, float]


# =============================================================================
# Segmentation
# =============================================================================

def sentence_spans(text: str) -> List[Tuple[int, int]]:
    """
    Return (start, end) offsets of each sentence in `text`.

    Leading and trailing whitespace belong to no sentence.
    """
    start = len(text) - len(text.lstrip())
    stop = len(text.rstrip())
    if start >= stop:
        return []

    spans: List[Tuple[int, int]] = []
    for m in _BOUNDARY.finditer(text, start, stop):
        spans.append((start, m.start()))
        start = m.end()
    spans.append((start, stop))
    return spans


def segment_text(text: str, max_chars: int = DEFAULT_MAX_CHARS) -> SegmentResult:
    """
    Split text into chunks of whole sentences.

    Args:
        text: Normalized spoken text.
        max_chars: Maximum chunk length (the engine's input ceiling).

    Returns:
        SegmentResult with the chunks in order.

    Raises:
        ValueError: If max_chars is not positive.
    """
    if max_chars <= 0:
        raise ValueError(f"max_chars must be positive, got {max_chars}")

    timings: Dict[str, float] = {}

    with timeit("segment") as t:
        chunks: List[str] = []
        chunk_start = -1
        chunk_end = -1

        for s_start, s_end in sentence_spans(text):
            if chunk_start < 0:
                chunk_start, chunk_end = s_start, s_end
            elif s_end - chunk_start <= max_chars:
                chunk_end = s_end
            else:
                chunks.append(text[chunk_start:chunk_end])
                chunk_start, chunk_end = s_start, s_end

        if chunk_start >= 0:
            chunks.append(text[chunk_start:chunk_end])

    timings["segment"] = t.seconds
    verbose(
        _LOG, "segmented",
        chunks=len(chunks),
        chars=len(text),
        max_chars=max_chars,
        oversized=sum(1 for c in chunks if len(c) > max_chars),
        seconds=round(timings["segment"], 4),
    )
    return SegmentResult(chunks=chunks, timings_s=timings)
