"""Tests for feed publishing and RSS rendering."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from xml.etree import ElementTree

import pytest

from snipr.core.errors import FeedNotFoundError, ForbiddenError, ValidationError
from snipr.pipeline.feed import EpisodeInput, FeedPublisher, cdata, feed_path, render_feed, xml_escape
from snipr.pipeline.models import ConversionJob, FeedEntry, JobStatus, SourceRef, UserFeed
from snipr.store.documents import InMemoryDocumentStore

BUILD = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
SELF = "https://snipr.example/v1/feeds/alice/cap"


def _entry(guid: str, minutes: int, **kw) -> FeedEntry:
    fields = dict(
        guid=guid,
        title=f"Episode {guid}",
        description="About things",
        audio_url=f"https://cdn.example/{guid}.mp3",
        length_bytes=1000,
        duration_label="00:00:05",
        published_at=BUILD - timedelta(minutes=minutes),
    )
    fields.update(kw)
    return FeedEntry(**fields)


def _completed_job(owner_id: str = "alice", **kw) -> ConversionJob:
    fields = dict(
        owner_id=owner_id,
        source=SourceRef.url("https://example.com/article"),
        status=JobStatus.COMPLETED,
        title="Test",
        summary="A summary",
        audio_url="https://cdn.example/a.mp3",
        duration_seconds=65,
        audio_bytes=4321,
    )
    fields.update(kw)
    return ConversionJob(**fields)


@pytest.fixture
def publisher() -> FeedPublisher:
    return FeedPublisher(InMemoryDocumentStore())


class TestEscaping:

    def test_five_characters(self):
        assert xml_escape("<a href='x'>\"&\"</a>") == "&lt;a href=&apos;x&apos;&gt;&quot;&amp;&quot;&lt;/a&gt;"

    def test_cdata_terminator_split(self):
        out = cdata("before ]]> after")
        assert out == "<![CDATA[before ]]]]><![CDATA[> after]]>"

    def test_hostile_title_stays_well_formed(self):
        feed = UserFeed(owner_id="alice", feed_id="cap", display_name="A & B <script>")
        feed.entries.append(_entry("1", 0, title="</title><evil/>", description="x ]]> <b>y</b>"))
        xml = render_feed(feed, SELF, build_date=BUILD)

        root = ElementTree.fromstring(xml.encode("utf-8"))
        item = root.find("channel/item")
        assert item.find("title").text == "</title><evil/>"
        assert item.find("description").text == "x ]]> <b>y</b>"
        assert root.find("channel/title").text == "A & B <script>'s Snipr Feed"


class TestRenderFeed:

    def test_channel(self):
        feed = UserFeed(owner_id="alice", feed_id="cap", display_name="Alice", email="a@example.com")
        xml = render_feed(feed, SELF, build_date=BUILD)

        assert xml.startswith('<?xml version="1.0" encoding="UTF-8"?>')
        assert "<title>Alice&apos;s Snipr Feed</title>" in xml
        assert "<lastBuildDate>Sun, 01 Mar 2026 12:00:00 GMT</lastBuildDate>" in xml
        assert "<copyright>© 2026 Alice</copyright>" in xml
        assert f'<atom:link href="{SELF}" rel="self" type="application/rss+xml"/>' in xml
        assert "<itunes:email>a@example.com</itunes:email>" in xml
        assert "<item>" not in xml

    def test_owner_id_when_no_display_name(self):
        xml = render_feed(UserFeed(owner_id="alice", feed_id="cap"), SELF, build_date=BUILD)
        assert "<itunes:author>alice</itunes:author>" in xml

    def test_item(self):
        feed = UserFeed(owner_id="alice", feed_id="cap")
        feed.entries.append(_entry("g1", 0, source_link="https://example.com/a", author="Jane"))
        xml = render_feed(feed, SELF, build_date=BUILD)

        assert '<enclosure url="https://cdn.example/g1.mp3" length="1000" type="audio/mpeg"/>' in xml
        assert '<guid isPermaLink="false">g1</guid>' in xml
        assert "<itunes:duration>00:00:05</itunes:duration>" in xml
        assert "<link>https://example.com/a</link>" in xml
        assert "<itunes:author>Jane</itunes:author>" in xml

    def test_newest_first(self):
        feed = UserFeed(owner_id="alice", feed_id="cap")
        feed.entries.extend([_entry("old", 30), _entry("new", 1), _entry("mid", 10)])
        xml = render_feed(feed, SELF, build_date=BUILD)

        assert xml.index(">new<") < xml.index(">mid<") < xml.index(">old<")

    def test_deterministic(self):
        feed = UserFeed(owner_id="alice", feed_id="cap", display_name="Alice")
        feed.entries.extend([_entry("1", 5), _entry("2", 3)])
        assert render_feed(feed, SELF, build_date=BUILD) == render_feed(feed, SELF, build_date=BUILD)

    def test_parses_as_xml(self):
        feed = UserFeed(owner_id="alice", feed_id="cap")
        feed.entries.append(_entry("1", 0))
        root = ElementTree.fromstring(render_feed(feed, SELF, build_date=BUILD).encode("utf-8"))
        assert root.tag == "rss"
        assert len(root.findall("channel/item")) == 1


class TestFeedPublisher:

    def test_ensure_feed_creates_once(self, publisher):
        first = publisher.ensure_feed("alice", display_name="Alice")
        second = publisher.ensure_feed("alice")

        assert first.feed_id == second.feed_id
        assert len(first.feed_id) >= 16
        assert second.display_name == "Alice"

    def test_feed_ids_differ_per_owner(self, publisher):
        assert publisher.ensure_feed("alice").feed_id != publisher.ensure_feed("bob").feed_id

    def test_feed_path(self, publisher):
        feed = publisher.ensure_feed("alice")
        assert feed_path(feed) == f"/v1/feeds/alice/{feed.feed_id}"

    def test_resolve(self, publisher):
        feed = publisher.ensure_feed("alice")
        assert publisher.resolve("alice", feed.feed_id).owner_id == "alice"

    def test_resolve_wrong_id(self, publisher):
        publisher.ensure_feed("alice")
        with pytest.raises(ForbiddenError):
            publisher.resolve("alice", "guess")

    def test_resolve_other_owners_id(self, publisher):
        publisher.ensure_feed("alice")
        bob = publisher.ensure_feed("bob")
        with pytest.raises(ForbiddenError):
            publisher.resolve("alice", bob.feed_id)

    def test_resolve_unknown_owner(self, publisher):
        with pytest.raises(FeedNotFoundError):
            publisher.resolve("nobody", "x")

    def test_append_completed_job(self, publisher):
        job = _completed_job()
        entry = publisher.append(job)

        assert entry.guid == job.id
        assert entry.title == "Test"
        assert entry.description == "A summary"
        assert entry.duration_label == "00:01:05"
        assert entry.length_bytes == 4321
        assert entry.source_link == "https://example.com/article"
        assert len(publisher.get_feed("alice").entries) == 1

    def test_append_creates_feed(self, publisher):
        assert publisher.get_feed("alice") is None
        publisher.append(_completed_job())
        assert publisher.get_feed("alice") is not None

    def test_append_is_idempotent(self, publisher):
        job = _completed_job()
        first = publisher.append(job)
        second = publisher.append(job)

        assert first == second
        assert len(publisher.get_feed("alice").entries) == 1

    def test_append_touches_only_owner_feed(self, publisher):
        bob = publisher.ensure_feed("bob")
        publisher.append(_completed_job("alice"))
        assert publisher.get_feed("bob") == bob

    def test_append_keeps_existing_entries(self, publisher):
        publisher.append(_completed_job())
        before = publisher.get_feed("alice").entries[0]
        publisher.append(_completed_job())

        entries = publisher.get_feed("alice").entries
        assert len(entries) == 2
        assert entries[0] == before

    def test_text_job_has_no_link(self, publisher):
        job = _completed_job(source=SourceRef.text("Body."))
        assert publisher.append(job).source_link is None

    @pytest.mark.parametrize("status", [JobStatus.PENDING, JobStatus.PROCESSING, JobStatus.FAILED])
    def test_only_completed_jobs(self, publisher, status):
        job = _completed_job(status=status)
        with pytest.raises(ValidationError):
            publisher.append(job)
        assert publisher.get_feed("alice") is None

    def test_add_episode(self, publisher):
        entry = publisher.add_episode("alice", EpisodeInput(
            title="Manual",
            description="Hand made",
            audio_url="https://cdn.example/m.mp3",
            length_bytes=99,
            duration_label="120",
        ))
        feed = publisher.get_feed("alice")
        assert feed.find(entry.guid) == entry
        assert entry.duration_label == "120"

    def test_add_episode_missing_fields(self, publisher):
        with pytest.raises(ValidationError) as exc:
            publisher.add_episode("alice", EpisodeInput(
                title="",
                description="d",
                audio_url="",
                length_bytes=1,
                duration_label="1",
            ))
        assert exc.value.details["missing"] == ["title", "audio_url"]

    def test_render_counts_entries(self, publisher):
        publisher.append(_completed_job())
        feed = publisher.get_feed("alice")
        xml = publisher.render(feed, SELF, build_date=BUILD)
        assert xml.count("<item>") == 1
