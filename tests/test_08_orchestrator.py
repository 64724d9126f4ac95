"""End-to-end job runs through the orchestrator with in-process collaborators."""
from __future__ import annotations

import threading

import pytest

from snipr.core.errors import SummarizationError, ValidationError
from snipr.pipeline.models import ConversionJob, JobStatus, SourceRef
from snipr.pipeline.summarizer import BaseSummarizer, SpokenContent

from conftest import ARTICLE_HTML, FakeEngine, FakeStorage, html_extractor, make_epub, slow_synthesizer

ARTICLE_URL = "https://example.com/article"


class GatedEngine(FakeEngine):
    """Holds every synthesis call until `gate` is set."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.gate = threading.Event()

    def speak_ssml(self, ssml, call=None):
        self.entered.set()
        self.gate.wait(10)
        return super().speak_ssml(ssml, call)


def _run(service, owner="alice", **source):
    source = source or {"url": ARTICLE_URL}
    job = service.submit(owner, owner, **source)
    assert service.runner.wait_idle(timeout=10)
    return service.jobs.get(job.id)


class TestHappyPath:

    def test_completed_and_published(self, make_service):
        engine = FakeEngine()
        storage = FakeStorage(url="https://cdn.example/a.mp3")
        service = make_service(engine=engine, object_storage=storage)

        job = _run(service)

        assert job.status is JobStatus.COMPLETED
        assert job.title == "Test"
        assert job.audio_url == "https://cdn.example/a.mp3"
        assert job.duration_seconds == 1
        assert job.audio_bytes == 12000
        assert job.published is True
        assert job.error is None
        assert len(engine.calls) == 1
        assert "Hello.\n\nWorld." in engine.calls[0]

        feed = service.publisher.get_feed("alice")
        assert [e.guid for e in feed.entries] == [job.id]
        assert feed.entries[0].audio_url == "https://cdn.example/a.mp3"

    def test_text_source(self, make_service):
        service = make_service()
        job = _run(service, text="Plain words. More of them.", title="Notes")

        assert job.status is JobStatus.COMPLETED
        assert job.title == "Notes"
        assert job.summary == "Plain words. More of them."

    def test_chunks_rendered_in_order(self, make_service):
        engine = FakeEngine()
        service = make_service({"segmenter": {"max_chars": 20}}, engine=engine)
        _run(service, text="First sentence here. Second one is here. Third and last.", title="T")

        spoken = engine.calls
        assert len(spoken) == 3
        assert "First" in spoken[0]
        assert "Second" in spoken[1]
        assert "Third" in spoken[2]

    def test_document_source(self, make_service):
        engine = FakeEngine()
        service = make_service(engine=engine)
        data = make_epub([
            "<h1>Chapter One</h1><p>It was a bright cold day.</p>",
            "<h1>Chapter Two</h1><p>The clocks were striking.</p>",
        ])

        job = service.submit_document("alice", "alice", data, filename="book.epub")
        assert service.runner.wait_idle(timeout=10)
        job = service.jobs.get(job.id)

        assert job.status is JobStatus.COMPLETED
        assert job.source.kind == "document"
        assert job.title == "A Small Book"
        spoken = " ".join(engine.calls)
        assert spoken.index("bright cold day") < spoken.index("clocks were striking")
        assert "Contents label" not in spoken

    def test_unreadable_document_creates_no_job(self, make_service):
        service = make_service()
        with pytest.raises(ValidationError) as exc:
            service.submit_document("alice", "alice", b"not a zip", filename="book.epub")
        assert exc.value.details["reason"] == "DOCUMENT_INVALID"
        assert sum(service.jobs.counts().values()) == 0

    def test_unknown_source_kind_fails_job(self, make_service):
        service = make_service()
        job = service.jobs.create(ConversionJob(owner_id="alice", source=SourceRef(kind="pdf", value="x")))
        service.runner.submit(job.id)
        assert service.runner.wait_idle(timeout=10)

        job = service.jobs.get(job.id)
        assert job.status is JobStatus.FAILED
        assert "Unsupported source kind" in job.error

    def test_submit_returns_pending_job(self, make_service):
        service = make_service()
        job = service.submit("alice", "alice", url=ARTICLE_URL)
        assert job.status is JobStatus.PENDING
        assert job.title == ""
        assert job.summary == ""
        service.runner.wait_idle(timeout=10)

    def test_title_and_summary_readable_while_processing(self, make_service):
        engine = GatedEngine()
        service = make_service(engine=engine)
        job = service.submit("alice", "alice", url=ARTICLE_URL)

        try:
            assert engine.entered.wait(5)
            running = service.jobs.get(job.id)
            assert running.status is JobStatus.PROCESSING
            assert running.title == "Test"
            assert running.summary
            assert running.audio_url is None
        finally:
            engine.gate.set()

        assert service.runner.wait_idle(timeout=10)
        assert service.jobs.get(job.id).status is JobStatus.COMPLETED


class TestFailures:

    def test_synthesis_timeout(self, make_service):
        engine = FakeEngine(block_s=5.0)
        service = make_service(synthesizer=slow_synthesizer(engine, timeout_s=0.05))

        job = _run(service)

        assert job.status is JobStatus.FAILED
        assert "timeout" in job.error.lower()
        assert job.audio_url is None
        assert engine.aborted is True
        assert service.publisher.get_feed("alice") is None

    def test_storage_retried_then_succeeds(self, make_service, sleeps):
        storage = FakeStorage(fail_puts=2)
        service = make_service(object_storage=storage)

        job = _run(service)

        assert job.status is JobStatus.COMPLETED
        assert storage.put_calls == 3
        assert sleeps.delays == [2.0, 4.0]

    def test_storage_exhausted(self, make_service, sleeps):
        service = make_service(object_storage=FakeStorage(fail_puts=5))

        job = _run(service)

        assert job.status is JobStatus.FAILED
        assert "after 3 attempts" in job.error
        assert job.audio_url is None
        assert service.publisher.get_feed("alice") is None

    def test_publish_failure_keeps_job_completed(self, make_service, monkeypatch):
        service = make_service()

        def broken_append(job):
            raise OSError("feed store unavailable")

        monkeypatch.setattr(service.publisher, "append", broken_append)
        job = _run(service)

        assert job.status is JobStatus.COMPLETED
        assert job.published is False
        assert job.audio_url

    def test_extraction_404(self, make_service):
        service = make_service(extractor=html_extractor({}))

        job = _run(service)

        assert job.status is JobStatus.FAILED
        assert "404" in job.error
        assert job.title == ""
        assert job.summary == ""

    def test_synthesis_engine_error(self, make_service):
        service = make_service(engine=FakeEngine(completed=False))
        job = _run(service)
        assert job.status is JobStatus.FAILED
        assert "voice unavailable" in job.error

    def test_summarizer_error_is_recorded(self, make_service):
        class Refusing(BaseSummarizer):
            def summarize(self, title, text):
                raise SummarizationError("model refused")

        service = make_service(summarizer=Refusing())
        job = _run(service)

        assert job.status is JobStatus.FAILED
        assert job.error == "model refused"
        assert job.title == "Test"

    def test_unexpected_crash_still_fails_job(self, make_service):
        class Crashing(BaseSummarizer):
            def summarize(self, title, text):
                raise RuntimeError("boom")

        service = make_service(summarizer=Crashing())
        job = _run(service)

        assert job.status is JobStatus.FAILED
        assert job.error == "boom"

    def test_no_job_left_processing(self, make_service):
        service = make_service(extractor=html_extractor({ARTICLE_URL: ARTICLE_HTML}))
        for source in ({"url": ARTICLE_URL}, {"url": "https://example.com/gone"}, {"text": "Fine text."}):
            service.submit("alice", "alice", **source)
        assert service.runner.wait_idle(timeout=10)

        counts = service.jobs.counts()
        assert counts["processing"] == 0
        assert counts["pending"] == 0
        assert counts["completed"] == 2
        assert counts["failed"] == 1


class TestRerun:

    def test_terminal_job_is_not_rerun(self, make_service):
        engine = FakeEngine()
        service = make_service(engine=engine)
        job = _run(service)

        orchestrator = service.runner._orchestrator
        again = orchestrator.run(job.id)

        assert again.status is JobStatus.COMPLETED
        assert len(engine.calls) == 1
        assert len(service.publisher.get_feed("alice").entries) == 1

    def test_unknown_job_returns_none(self, make_service):
        service = make_service()
        assert service.runner._orchestrator.run("does-not-exist") is None


@pytest.mark.slow
def test_parallel_jobs_share_nothing(make_service):
    service = make_service({"jobs": {"max_workers": 4}})
    ids = [service.submit(owner, owner, text=f"Text for {owner}.").id for owner in ("a1", "b2", "c3", "d4")]
    assert service.runner.wait_idle(timeout=10)

    for job_id in ids:
        job = service.jobs.get(job_id)
        assert job.status is JobStatus.COMPLETED
        feed = service.publisher.get_feed(job.owner_id)
        assert [e.guid for e in feed.entries] == [job_id]


class EchoSummarizer(BaseSummarizer):
    def summarize(self, title, text):
        return SpokenContent(summary=f"About {title}", speech_text=text)


def test_custom_summarizer_description(make_service):
    service = make_service(summarizer=EchoSummarizer())
    job = _run(service)
    assert job.summary == "About Test"
    assert service.publisher.get_feed("alice").entries[0].description == "About Test"
