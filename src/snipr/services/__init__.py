"""
snipr Services Layer.

Business logic between the API and the pipeline.

Components:
    - orchestrator.py: JobOrchestrator (runs one job through the pipeline)
    - worker.py: JobRunner (bounded background execution)
    - job_service.py: JobService (request-path facade)
    - auth.py: Credential verification
    - validators.py: Input validation

build_job_service() wires every collaborator from settings; tests pass
doubles through its keyword overrides.
"""
from __future__ import annotations

import threading
from typing import Any, Optional

from snipr.core.config import PipelineConfig, Settings
from snipr.core.logging import get_logger, info
from snipr.pipeline.artifacts import ArtifactStore
from snipr.pipeline.extractor import ContentExtractor
from snipr.pipeline.feed import FeedPublisher
from snipr.pipeline.summarizer import get_summarizer
from snipr.pipeline.synthesis import SpeechSynthesizer, get_engine
from snipr.store.documents import get_document_store
from snipr.store.jobs import JobRepository
from snipr.store.objects import get_object_storage

from .job_service import JobService
from .orchestrator import JobOrchestrator, StageOutcome
from .worker import JobRunner

_LOG = get_logger("snipr.services")


def build_job_service(
    settings: Settings,
    *,
    store: Any = None,
    object_storage: Any = None,
    extractor: Optional[ContentExtractor] = None,
    summarizer: Any = None,
    engine: Any = None,
    synthesizer: Optional[SpeechSynthesizer] = None,
    sleep: Any = None,
) -> JobService:
    """
    Construct a JobService and all of its collaborators.

    Any collaborator may be passed in to replace the configured one.
    """
    config: PipelineConfig = settings.get_pipeline_config()

    store = store or get_document_store(config.documents)
    jobs = JobRepository(store)
    publisher = FeedPublisher(store, config.feed)

    artifact_kwargs = {"sleep": sleep} if sleep is not None else {}
    artifacts = ArtifactStore(
        object_storage or get_object_storage(config.storage),
        config.storage,
        **artifact_kwargs,
    )

    if synthesizer is None:
        # One engine slot per job worker, so queued chunks never wait on another job
        synthesizer = SpeechSynthesizer(
            engine or get_engine(config.synthesis),
            config.synthesis,
            max_workers=max(config.synthesis.max_workers, config.jobs.max_workers),
        )

    orchestrator = JobOrchestrator(
        jobs=jobs,
        extractor=extractor or ContentExtractor(config.extractor),
        summarizer=summarizer or get_summarizer(config.summarizer),
        synthesizer=synthesizer,
        artifacts=artifacts,
        publisher=publisher,
        max_chars=config.segmenter.max_chars,
        seconds_per_word=config.jobs.seconds_per_word,
    )
    runner = JobRunner(orchestrator, max_workers=config.jobs.max_workers)
    info(_LOG, "job_service_ready", workers=config.jobs.max_workers, documents=store.name)
    return JobService(jobs, publisher, runner, max_document_bytes=config.extractor.max_document_bytes)


# =============================================================================
# Global Service Singleton
# =============================================================================

_service: Optional[JobService] = None
_service_lock = threading.Lock()


def get_service(settings: Settings) -> JobService:
    """Thread-safe lazy singleton used by the API."""
    global _service
    if _service is None:
        with _service_lock:
            if _service is None:
                _service = build_job_service(settings)
    return _service


def reset_service() -> None:
    """Shut down and drop the global service (tests, app shutdown)."""
    global _service
    with _service_lock:
        if _service is not None:
            _service.runner.shutdown(wait_for_jobs=False)
        _service = None


__all__ = [
    "JobService",
    "JobOrchestrator",
    "JobRunner",
    "StageOutcome",
    "build_job_service",
    "get_service",
    "reset_service",
]
