"""
Text Normalization Utilities.

Prepares readable text for speech synthesis. The rules run in a fixed
order and are deterministic, so the same input always yields the same
spoken text (and therefore the same segmentation).

Normalization Steps:
    1. Collapse 3+ consecutive newlines to a paragraph break
    2. Collapse whitespace runs to a single space
    3. Add the period after Mr/Mrs/Ms/Dr/Prof/Sr/Jr when it is missing
    4. Insert a paragraph break after sentence punctuation (a spoken pause)
    5. Trim

Step 2 removes every newline that step 1 kept; the paragraph structure
of the output comes from step 4 alone.

Example:
    >>> normalize_for_speech("It rained.   We stayed in!")
    'It rained.\\n\\nWe stayed in!'
"""
from __future__ import annotations

import math
import re

_MULTI_NEWLINE_RE = re.compile(r"\n{3,}")
_WS_RE = re.compile(r"\s+")
_HONORIFIC_RE = re.compile(r"\b(Mr|Mrs|Ms|Dr|Prof|Sr|Jr)(\s)")
_SENTENCE_END_RE = re.compile(r"([.!?])\s+")

SECONDS_PER_WORD = 0.4


def normalize_for_speech(text: str) -> str:
    """Apply the speech normalization rules in order."""
    s = _MULTI_NEWLINE_RE.sub("\n\n", text)
    s = _WS_RE.sub(" ", s)
    s = _HONORIFIC_RE.sub(r"\1.\2", s)
    s = _SENTENCE_END_RE.sub(r"\1\n\n", s)
    return s.strip()


def word_count(text: str) -> int:
    """Number of whitespace-separated tokens."""
    return len(text.split())


def estimate_duration_seconds(text: str, seconds_per_word: float = SECONDS_PER_WORD) -> int:
    """
    Estimate spoken duration from word count.

    Rounds half up and never returns less than 1, so a completed job
    always has a positive duration.

    >>> estimate_duration_seconds("Hello world")
    1
    >>> estimate_duration_seconds(" ".join(["w"] * 10))
    4
    """
    raw = word_count(text) * seconds_per_word
    return max(1, int(math.floor(raw + 0.5)))


def format_duration_label(seconds: int) -> str:
    """
    Format seconds as HH:MM:SS for itunes:duration.

    >>> format_duration_label(3725)
    '01:02:05'
    """
    seconds = max(0, int(seconds))
    hours, rem = divmod(seconds, 3600)
    minutes, secs = divmod(rem, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def preview(text: str, limit: int = 80) -> str:
    """Single-line prefix of text for log output."""
    flat = _WS_RE.sub(" ", text).strip()
    if len(flat) <= limit:
        return flat
    return flat[: max(0, limit - 3)] + "..."
