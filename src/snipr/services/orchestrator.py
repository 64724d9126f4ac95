"""
Job Orchestrator.

Drives one conversion job through the pipeline and owns its state
machine:

    pending -> processing -> completed | failed

Pipeline Stages:
    1. extract     - fetch or prepare the source; title persisted at once
    2. summarize   - spoken synopsis; summary persisted at once
    3. synthesize  - segment, then render chunks strictly in order
    4. store       - upload audio, resolve its public URL
    5. complete    - audio_url, duration, size and status in one write
    6. publish     - append to the owner's feed, exactly once

Each stage returns a StageOutcome (value or error). A stage error fails
the job with the error's message; partial audio is discarded. The whole
run sits inside one failure boundary, so no code path leaves a job in
`processing`. A publish failure leaves the job completed with
published=False.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, List, Optional, TypeVar
from urllib.parse import urlparse

from snipr.core.errors import (
    ExtractionError,
    InvalidTransitionError,
    JobNotFoundError,
    PipelineError,
    SniprError,
    SynthesisError,
)
from snipr.core.logging import error, fail, get_logger, info, set_trace_id, success, verbose, warn
from snipr.core.metrics import metrics
from snipr.pipeline.artifacts import ArtifactStore, StoredArtifact
from snipr.pipeline.extractor import ContentExtractor, ExtractedArticle
from snipr.pipeline.feed import FeedPublisher
from snipr.pipeline.models import ConversionJob, JobStatus
from snipr.pipeline.segmenter import DEFAULT_MAX_CHARS, segment_text
from snipr.pipeline.summarizer import BaseSummarizer, SpokenContent
from snipr.pipeline.synthesis import SpeechSynthesizer
from snipr.store.jobs import JobRepository
from snipr.utils.text import SECONDS_PER_WORD, estimate_duration_seconds
from snipr.utils.timeit import timeit

_LOG = get_logger("snipr.orchestrator")

T = TypeVar("T")


@dataclass
class StageOutcome(Generic[T]):
    """Result of one pipeline stage: a value, or the error that stopped it."""
    stage: str
    value: Optional[T] = None
    error: Optional[SniprError] = None
    seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class RenderedAudio:
    audio: bytes
    chunks: int
    speech_text: str


class JobOrchestrator:
    """
    Runs conversion jobs. Collaborators are injected; one orchestrator
    serves any number of concurrent jobs since runs share only the stores.
    """

    def __init__(
        self,
        jobs: JobRepository,
        extractor: ContentExtractor,
        summarizer: BaseSummarizer,
        synthesizer: SpeechSynthesizer,
        artifacts: ArtifactStore,
        publisher: FeedPublisher,
        max_chars: int = DEFAULT_MAX_CHARS,
        seconds_per_word: float = SECONDS_PER_WORD,
    ):
        self._jobs = jobs
        self._extractor = extractor
        self._summarizer = summarizer
        self._synthesizer = synthesizer
        self._artifacts = artifacts
        self._publisher = publisher
        self._max_chars = max_chars
        self._seconds_per_word = seconds_per_word

    # =========================================================================
    # Stages
    # =========================================================================

    def _stage(self, name: str, fn: Callable[..., T], *args: Any) -> StageOutcome[T]:
        with timeit(name) as t:
            try:
                value = fn(*args)
                outcome = StageOutcome(stage=name, value=value)
            except PipelineError as e:
                outcome = StageOutcome(stage=name, error=e)
        outcome.seconds = t.seconds
        metrics.observe_stage(name, outcome.seconds)
        verbose(_LOG, "stage_done", stage=name, ok=outcome.ok, seconds=round(outcome.seconds, 4))
        return outcome

    def _extract(self, job: ConversionJob) -> ExtractedArticle:
        kind = job.source.kind
        if kind == "url":
            return self._extractor.extract(job.source.value)
        if kind in ("text", "document"):
            # Documents were parsed to chapter text at submission
            return self._extractor.extract_text(job.source.value, title=job.source.title)
        raise ExtractionError(f"Unsupported source kind: {kind}")

    def _synthesize(self, speech_text: str) -> RenderedAudio:
        chunks = segment_text(speech_text, self._max_chars).chunks
        if not chunks:
            raise SynthesisError("Nothing to synthesize")

        parts: List[bytes] = []
        for i, chunk in enumerate(chunks, start=1):
            parts.append(self._synthesizer.synthesize(chunk))
            verbose(_LOG, "chunk_done", chunk=i, total=len(chunks))
        return RenderedAudio(audio=b"".join(parts), chunks=len(chunks), speech_text=speech_text)

    @staticmethod
    def _title_for(job: ConversionJob, article: ExtractedArticle) -> str:
        if article.title:
            return article.title
        if job.source.kind == "url":
            return urlparse(job.source.value).netloc or "Untitled"
        return "Untitled"

    # =========================================================================
    # Terminal writes
    # =========================================================================

    def _fail(self, job_id: str, message: str, stage: str = "-") -> Optional[ConversionJob]:
        try:
            job = self._jobs.update(job_id, status=JobStatus.FAILED, error=message or "Unknown error")
        except (InvalidTransitionError, JobNotFoundError) as e:
            warn(_LOG, "fail_write_skipped", job_id=job_id, reason=e.message)
            return None
        metrics.record_job(JobStatus.FAILED.value)
        fail(_LOG, "job_failed", job_id=job_id, stage=stage, error=message)
        return job

    def _publish(self, job: ConversionJob) -> ConversionJob:
        try:
            self._publisher.append(job)
            return self._jobs.update(job.id, published=True)
        except Exception as e:
            error(_LOG, "publish_failed", job_id=job.id, owner_id=job.owner_id, error=str(e))
            return job

    # =========================================================================
    # Run
    # =========================================================================

    def run(self, job_id: str) -> Optional[ConversionJob]:
        """
        Execute a job to a terminal state.

        Pipeline errors never escape: they are recorded on the job.

        Returns:
            The job as last written, or None if it could not be read or
            written at all.
        """
        set_trace_id(job_id[:8])
        metrics.job_started()
        try:
            return self._run(job_id)
        except Exception as e:
            error(_LOG, "job_crashed", job_id=job_id, error=str(e), exc_info=True)
            return self._fail(job_id, str(e) or type(e).__name__, stage="internal")
        finally:
            metrics.job_finished()

    def _run(self, job_id: str) -> Optional[ConversionJob]:
        job = self._jobs.get(job_id)
        if job.status.is_terminal:
            warn(_LOG, "job_already_final", job_id=job_id, status=job.status.value)
            return job

        job = self._jobs.update(job_id, status=JobStatus.PROCESSING)
        info(_LOG, "job_started", job_id=job_id, owner_id=job.owner_id, source=job.source.describe())

        extracted: StageOutcome[ExtractedArticle] = self._stage("extract", self._extract, job)
        if not extracted.ok:
            return self._fail(job_id, extracted.error.message, extracted.stage)
        article = extracted.value
        job = self._jobs.update(job_id, title=self._title_for(job, article))

        summarized: StageOutcome[SpokenContent] = self._stage(
            "summarize", self._summarizer.summarize, job.title, article.clean_text,
        )
        if not summarized.ok:
            return self._fail(job_id, summarized.error.message, summarized.stage)
        spoken = summarized.value
        job = self._jobs.update(job_id, summary=spoken.summary)

        rendered: StageOutcome[RenderedAudio] = self._stage("synthesize", self._synthesize, spoken.speech_text)
        if not rendered.ok:
            return self._fail(job_id, rendered.error.message, rendered.stage)

        stored: StageOutcome[StoredArtifact] = self._stage(
            "store", self._artifacts.persist, job.owner_id, job_id, rendered.value.audio,
        )
        if not stored.ok:
            return self._fail(job_id, stored.error.message, stored.stage)

        duration = estimate_duration_seconds(spoken.speech_text, self._seconds_per_word)
        job = self._jobs.update(
            job_id,
            status=JobStatus.COMPLETED,
            audio_url=stored.value.url,
            duration_seconds=duration,
            audio_bytes=stored.value.size,
        )
        metrics.record_job(JobStatus.COMPLETED.value)
        success(
            _LOG, "job_completed",
            job_id=job_id,
            chunks=rendered.value.chunks,
            bytes=stored.value.size,
            duration_s=duration,
        )

        return self._publish(job)
