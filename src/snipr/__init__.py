"""
snipr: Content-to-Audio Conversion Service.

Turns written content (a web article URL or a long-form text blob) into a
published podcast episode attached to a per-owner RSS feed.

Pipeline:
    Extract -> Summarize -> Segment -> Synthesize (per chunk) -> Store -> Publish

Key Features:
    - Readable-text extraction with speech-oriented normalization
    - Sentence-safe segmentation for synthesis engine input limits
    - Azure Speech REST synthesis with a hard per-call timeout
    - Durable artifact upload with bounded exponential backoff
    - Per-owner RSS feeds behind unguessable capability URLs
    - Background jobs with a visible, always-terminating state machine

Example Usage:
    >>> from snipr.core.config import Settings
    >>> from snipr.services import build_job_service
    >>>
    >>> service = build_job_service(Settings(raw={}))
    >>> job = service.submit("alice", "alice", url="https://example.com/post")
    >>> service.runner.wait_idle(timeout=600)
    >>> print(service.get_job(job.id, "alice").status)
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
