"""
Spoken Synopsis Generation.

A summarizer turns (title, article text) into SpokenContent:
    - summary: one conversational paragraph, used as the episode
      description in the feed
    - speech_text: the text that is actually synthesized (the article body)

Providers:
    excerpt: first sentences of the article, no network
    openai:  OpenAI-compatible chat completions

Usage:
    summarizer = get_summarizer(config.summarizer)
    content = summarizer.summarize("Title", article.clean_text)
"""
from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from openai import OpenAI, OpenAIError

from snipr.core.config import SummarizerConfig
from snipr.core.errors import SummarizationError
from snipr.core.logging import get_logger, info, verbose
from snipr.utils.timeit import timeit

_LOG = get_logger("snipr.summarizer")

SUMMARY_PROMPT = (
    "Write an engaging, conversational summary of this article in 1 paragraph, "
    "using natural language that flows well when spoken:\n"
    "Title: {title}\n\nContent: {content}"
)

_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+")


@dataclass(frozen=True)
class SpokenContent:
    summary: str
    speech_text: str


class BaseSummarizer(ABC):
    """Abstract summarizer. Implementations raise SummarizationError on failure."""

    name: str = "base"

    @abstractmethod
    def summarize(self, title: str, text: str) -> SpokenContent:
        raise NotImplementedError


class ExcerptSummarizer(BaseSummarizer):
    """Uses the article's opening sentences as the summary."""

    name = "excerpt"

    def __init__(self, sentences: int = 3):
        self.sentences = sentences

    def summarize(self, title: str, text: str) -> SpokenContent:
        parts = [p for p in _SENTENCE_RE.split(text.strip()) if p]
        summary = " ".join(parts[: self.sentences]).strip()
        if not summary:
            raise SummarizationError("Nothing to summarize", {"title": title})
        return SpokenContent(summary=summary, speech_text=text)


class OpenAISummarizer(BaseSummarizer):
    """
    Summarizes with an OpenAI-compatible chat completions endpoint.

    Only the first `max_input_chars` characters of the article are sent.
    An empty completion is an error: a completed episode always carries
    a description.
    """

    name = "openai"

    def __init__(self, config: SummarizerConfig, client: Optional[OpenAI] = None):
        self._config = config
        self._client = client

    def _get_client(self) -> OpenAI:
        if self._client is None:
            if not self._config.api_key:
                raise SummarizationError("OPENAI_API_KEY is not set")
            self._client = OpenAI(
                api_key=self._config.api_key,
                base_url=self._config.base_url,
                timeout=self._config.timeout_s,
            )
        return self._client

    def summarize(self, title: str, text: str) -> SpokenContent:
        prompt = SUMMARY_PROMPT.format(title=title, content=text[: self._config.max_input_chars])

        with timeit("summarize") as t:
            try:
                response = self._get_client().chat.completions.create(
                    model=self._config.model,
                    messages=[{"role": "user", "content": prompt}],
                )
            except OpenAIError as e:
                raise SummarizationError(f"Summarization failed: {e}", {"model": self._config.model}) from e

        summary = ""
        if response.choices:
            summary = (response.choices[0].message.content or "").strip()
        if not summary:
            raise SummarizationError("Summarization returned no content", {"model": self._config.model})

        verbose(_LOG, "summarized", model=self._config.model, chars=len(summary), seconds=round(t.seconds, 4))
        return SpokenContent(summary=summary, speech_text=text)


def get_summarizer(config: Optional[SummarizerConfig] = None) -> BaseSummarizer:
    """Build the configured summarizer."""
    config = config or SummarizerConfig()
    if config.provider == "openai":
        summarizer: BaseSummarizer = OpenAISummarizer(config)
    else:
        summarizer = ExcerptSummarizer(sentences=config.excerpt_sentences)
    info(_LOG, "summarizer_ready", provider=summarizer.name)
    return summarizer
