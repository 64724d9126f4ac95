"""
Job and Feed Service.

The synchronous facade used by the API and the CLI. Every operation takes
the verified principal (owner id from the credential) and enforces that
it matches the owner being acted on.

Operations:
    submit()          - validate, create a pending job, dispatch it
    submit_document() - parse an uploaded EPUB, then as submit()
    get_job()         - read a job (owner only)
    list_jobs()       - an owner's jobs, newest first
    feed_info()       - feed id and capability path (creates the feed)
    update_profile()  - channel name, email and artwork for the feed
    add_episode()     - administrative append of a fully-formed episode
    read_feed()       - capability-checked RSS rendering (no principal)
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from snipr.core.config import Defaults
from snipr.core.errors import ExtractionError, ServiceUnavailableError, ValidationError
from snipr.core.logging import error, get_logger, info
from snipr.pipeline.extractor import parse_epub
from snipr.pipeline.feed import EpisodeInput, FeedPublisher, feed_path
from snipr.pipeline.models import ConversionJob, FeedEntry, JobStatus, SourceRef, UserFeed
from snipr.services.auth import require_owner
from snipr.services.validators import (
    MAX_DOCUMENT_TEXT_LENGTH,
    document_title,
    validate_document,
    validate_owner_id,
    validate_source,
    validate_url,
)
from snipr.services.worker import JobRunner
from snipr.store.jobs import JobRepository

_LOG = get_logger("snipr.service")


class JobService:
    """Request-path operations over jobs and feeds."""

    def __init__(
        self,
        jobs: JobRepository,
        publisher: FeedPublisher,
        runner: JobRunner,
        max_document_bytes: int = Defaults.EXTRACTOR_MAX_DOCUMENT_BYTES,
    ):
        self._jobs = jobs
        self._publisher = publisher
        self.runner = runner
        self.max_document_bytes = max_document_bytes

    @property
    def jobs(self) -> JobRepository:
        return self._jobs

    @property
    def publisher(self) -> FeedPublisher:
        return self._publisher

    def submit(
        self,
        principal: str,
        owner_id: str,
        url: Optional[str] = None,
        text: Optional[str] = None,
        title: Optional[str] = None,
    ) -> ConversionJob:
        """
        Create a pending job and start it in the background.

        The job is persisted before dispatch, so it is readable as soon
        as this returns.

        Raises:
            ForbiddenError: principal is not owner_id.
            ValidationError: Bad owner id or source fields.
            ServiceUnavailableError: The runner is shut down; the job is
                recorded as failed.
        """
        owner_id = validate_owner_id(owner_id)
        require_owner(principal, owner_id)
        source = validate_source(url=url, text=text, title=title)

        job = self._jobs.create(ConversionJob(owner_id=owner_id, source=source))
        info(_LOG, "job_submitted", job_id=job.id, owner_id=owner_id, kind=source.kind)
        return self._dispatch(job)

    def submit_document(
        self,
        principal: str,
        owner_id: str,
        data: bytes,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
        title: Optional[str] = None,
    ) -> ConversionJob:
        """
        Create a pending job from an uploaded EPUB.

        The book is parsed here, so an unreadable upload is rejected
        before any job exists; the chapter text then runs through the
        same pipeline as inline text.

        Raises:
            ForbiddenError: principal is not owner_id.
            ValidationError: Not an EPUB, no readable chapters, or too
                much text.
            PayloadTooLargeError: Upload over the size ceiling.
            ServiceUnavailableError: The runner is shut down.
        """
        owner_id = validate_owner_id(owner_id)
        require_owner(principal, owner_id)
        data = validate_document(data, filename, content_type, self.max_document_bytes)
        try:
            book = parse_epub(data)
        except ExtractionError as e:
            raise ValidationError(e.message, {"field": "document", "reason": "DOCUMENT_INVALID"}) from e

        text = book.text
        if len(text) > MAX_DOCUMENT_TEXT_LENGTH:
            raise ValidationError(
                f"document text exceeds maximum length ({len(text)} > {MAX_DOCUMENT_TEXT_LENGTH})",
                {"field": "document", "reason": "DOCUMENT_TOO_LONG"},
            )
        source = SourceRef.document(text, title=document_title(title, book.title, filename))

        job = self._jobs.create(ConversionJob(owner_id=owner_id, source=source))
        info(
            _LOG, "job_submitted",
            job_id=job.id,
            owner_id=owner_id,
            kind=source.kind,
            chapters=len(book.chapters),
        )
        return self._dispatch(job)

    def _dispatch(self, job: ConversionJob) -> ConversionJob:
        try:
            self.runner.submit(job.id)
        except RuntimeError as e:
            # Never leave a job pending with nothing to run it
            self._jobs.update(
                job.id,
                status=JobStatus.FAILED,
                error="Job could not be dispatched: service is shutting down",
            )
            error(_LOG, "job_dispatch_failed", job_id=job.id, error=str(e))
            raise ServiceUnavailableError(details={"job_id": job.id}) from e
        return job

    def get_job(self, job_id: str, principal: str) -> ConversionJob:
        """
        Raises:
            JobNotFoundError: Unknown id.
            ForbiddenError: The job belongs to another owner.
        """
        job = self._jobs.get(job_id)
        require_owner(principal, job.owner_id)
        return job

    def list_jobs(self, owner_id: str, principal: str) -> List[ConversionJob]:
        require_owner(principal, owner_id)
        return self._jobs.list_for_owner(owner_id)

    def feed_info(self, owner_id: str, principal: str) -> Dict[str, Any]:
        """Feed id, capability path, profile and entry count; creates the feed on first call."""
        owner_id = validate_owner_id(owner_id)
        require_owner(principal, owner_id)
        return _describe(self._publisher.ensure_feed(owner_id))

    def update_profile(
        self,
        owner_id: str,
        principal: str,
        display_name: Optional[str] = None,
        email: Optional[str] = None,
        artwork_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Set the channel name, owner email and artwork shown in the feed.

        Fields left as None keep their current value.

        Raises:
            ForbiddenError: principal is not owner_id.
            ValidationError: artwork_url is not an http(s) URL.
        """
        owner_id = validate_owner_id(owner_id)
        require_owner(principal, owner_id)
        if artwork_url is not None:
            artwork_url = validate_url(artwork_url, field="artwork_url")
        feed = self._publisher.ensure_feed(
            owner_id,
            display_name=display_name,
            email=email,
            artwork_url=artwork_url,
        )
        info(_LOG, "feed_profile_updated", owner_id=owner_id)
        return _describe(feed)

    def add_episode(self, owner_id: str, principal: str, payload: EpisodeInput) -> FeedEntry:
        owner_id = validate_owner_id(owner_id)
        require_owner(principal, owner_id)
        payload.audio_url = validate_url(payload.audio_url, field="audio_url")
        return self._publisher.add_episode(owner_id, payload)

    def read_feed(
        self,
        owner_id: str,
        feed_id: str,
        self_link: str,
        build_date: Optional[datetime] = None,
    ) -> str:
        """
        Render a feed for a capability holder.

        Raises:
            FeedNotFoundError: No feed for owner_id.
            ForbiddenError: feed_id does not match.
        """
        feed = self._publisher.resolve(owner_id, feed_id)
        return self._publisher.render(feed, self_link, build_date=build_date)

    def stats(self) -> Dict[str, Any]:
        return {
            "jobs": self._jobs.counts(),
            "in_flight": self.runner.in_flight,
            "max_workers": self.runner.max_workers,
        }


def _describe(feed: UserFeed) -> Dict[str, Any]:
    return {
        "owner_id": feed.owner_id,
        "feed_id": feed.feed_id,
        "feed_path": feed_path(feed),
        "entries": len(feed.entries),
        "display_name": feed.display_name,
        "email": feed.email,
        "artwork_url": feed.artwork_url,
    }
