"""
Feed Publishing and RSS Rendering.

Each owner has one podcast feed, readable by anyone holding the pair
(owner_id, feed_id). feed_id is an unguessable capability generated when
the feed is first created.

Components:
    FeedPublisher: feed lifecycle and entry appends (document store backed)
    render_feed(): pure RSS 2.0 renderer (itunes, content, atom namespaces)

Rendering Rules:
    - Every user-supplied string outside CDATA is escaped for < > & ' "
    - CDATA content has "]]>" split so a section cannot be closed early
    - Entries are rendered newest first
    - The same feed and the same build date render byte-identical output
"""
from __future__ import annotations

import hmac
import uuid
from dataclasses import dataclass
from datetime import datetime
from email.utils import format_datetime
from typing import List, Optional
from xml.sax.saxutils import escape

from snipr.core.config import FeedConfig
from snipr.core.errors import FeedNotFoundError, ForbiddenError, ValidationError
from snipr.core.logging import get_logger, info, verbose
from snipr.core.metrics import metrics
from snipr.pipeline.models import ConversionJob, FeedEntry, JobStatus, UserFeed, utcnow
from snipr.store.documents import DocumentStore
from snipr.utils.text import format_duration_label

_LOG = get_logger("snipr.feed")

COLLECTION = "feeds"

_ATTR_ENTITIES = {"'": "&apos;", '"': "&quot;"}


def xml_escape(value: object) -> str:
    """Escape < > & ' " for element text and attribute values."""
    return escape(str(value), _ATTR_ENTITIES)


def cdata(value: object) -> str:
    """Wrap text in CDATA, splitting any ]]> inside it."""
    text = str(value).replace("]]>", "]]]]><![CDATA[>")
    return f"<![CDATA[{text}]]>"


def rfc822(value: datetime) -> str:
    return format_datetime(value, usegmt=True)


def feed_path(feed: UserFeed) -> str:
    """Capability path of a feed on the HTTP API."""
    return f"/v1/feeds/{feed.owner_id}/{feed.feed_id}"


@dataclass
class EpisodeInput:
    """A fully-formed episode submitted for administrative append."""
    title: str
    description: str
    audio_url: str
    length_bytes: int
    duration_label: str
    source_link: Optional[str] = None
    image_url: Optional[str] = None
    author: Optional[str] = None
    explicit: bool = False


# =============================================================================
# Rendering
# =============================================================================

def _render_item(entry: FeedEntry) -> List[str]:
    lines = [
        "    <item>",
        f"      <title>{xml_escape(entry.title)}</title>",
        f"      <description>{cdata(entry.description)}</description>",
        f"      <itunes:summary>{cdata(entry.description)}</itunes:summary>",
        (
            f'      <enclosure url="{xml_escape(entry.audio_url)}" '
            f'length="{int(entry.length_bytes or 0)}" type="audio/mpeg"/>'
        ),
        f'      <guid isPermaLink="false">{xml_escape(entry.guid)}</guid>',
        f"      <pubDate>{rfc822(entry.published_at)}</pubDate>",
        f"      <itunes:duration>{xml_escape(entry.duration_label or '00:00')}</itunes:duration>",
    ]
    if entry.source_link:
        lines.append(f"      <link>{xml_escape(entry.source_link)}</link>")
    if entry.author:
        lines.append(f"      <itunes:author>{xml_escape(entry.author)}</itunes:author>")
    if entry.image_url:
        lines.append(f'      <itunes:image href="{xml_escape(entry.image_url)}"/>')
    lines.append(f"      <itunes:explicit>{'true' if entry.explicit else 'false'}</itunes:explicit>")
    lines.append("    </item>")
    return lines


def render_feed(
    feed: UserFeed,
    self_link: str,
    build_date: Optional[datetime] = None,
    config: Optional[FeedConfig] = None,
) -> str:
    """
    Render a feed as an RSS 2.0 document.

    Args:
        feed: The owner's feed.
        self_link: Absolute URL the feed is served from.
        build_date: lastBuildDate (and copyright year); defaults to now.
        config: Channel metadata (generator, language, artwork...).

    Returns:
        The XML document as a string.
    """
    config = config or FeedConfig()
    build_date = build_date or utcnow()
    name = feed.display_name or feed.owner_id
    artwork = feed.artwork_url or config.default_artwork

    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<rss version="2.0"',
        '     xmlns:itunes="http://www.itunes.com/dtds/podcast-1.0.dtd"',
        '     xmlns:content="http://purl.org/rss/1.0/modules/content/"',
        '     xmlns:atom="http://www.w3.org/2005/Atom">',
        "  <channel>",
        f"    <title>{xml_escape(name)}&apos;s Snipr Feed</title>",
        "    <description>" + cdata(
            f"Welcome to {name}'s personal audio feed! This is where you'll find all of "
            f"{name}'s converted content, transformed into audio for easy listening."
        ) + "</description>",
        f"    <link>{xml_escape(self_link)}</link>",
        f"    <language>{xml_escape(config.language)}</language>",
        f"    <copyright>© {build_date.year} {xml_escape(name)}</copyright>",
        f"    <lastBuildDate>{rfc822(build_date)}</lastBuildDate>",
        f'    <atom:link href="{xml_escape(self_link)}" rel="self" type="application/rss+xml"/>',
        f"    <itunes:author>{xml_escape(name)}</itunes:author>",
        "    <itunes:owner>",
        f"      <itunes:name>{xml_escape(name)}</itunes:name>",
        f"      <itunes:email>{xml_escape(feed.email)}</itunes:email>",
        "    </itunes:owner>",
        f'    <itunes:image href="{xml_escape(artwork)}"/>',
        "    <itunes:summary>" + cdata(
            f"This is {name}'s personal Snipr feed, where text content is transformed "
            "into audio for convenient listening."
        ) + "</itunes:summary>",
        f'    <itunes:category text="{xml_escape(config.category)}"/>',
        "    <itunes:explicit>false</itunes:explicit>",
        f"    <generator>{xml_escape(config.generator)}</generator>",
    ]
    for entry in feed.sorted_entries():
        lines.extend(_render_item(entry))
    lines.extend(["  </channel>", "</rss>"])
    return "\n".join(lines) + "\n"


# =============================================================================
# Publisher
# =============================================================================

class FeedPublisher:
    """
    Owner feed lifecycle.

    Only the owner's feed document is ever touched by an append, and an
    append of a guid already present returns the existing entry.
    """

    def __init__(self, store: DocumentStore, config: Optional[FeedConfig] = None):
        self._store = store
        self._config = config or FeedConfig()

    @property
    def config(self) -> FeedConfig:
        return self._config

    def get_feed(self, owner_id: str) -> Optional[UserFeed]:
        doc = self._store.get(COLLECTION, owner_id)
        return UserFeed.from_dict(doc) if doc is not None else None

    def ensure_feed(
        self,
        owner_id: str,
        display_name: Optional[str] = None,
        email: Optional[str] = None,
        artwork_url: Optional[str] = None,
    ) -> UserFeed:
        """Return the owner's feed, creating it on first use. Given profile fields are updated."""
        created = []

        def _apply(doc):
            if doc is None:
                doc = UserFeed(owner_id=owner_id).to_dict()
                created.append(True)
            if display_name is not None:
                doc["display_name"] = display_name
            if email is not None:
                doc["email"] = email
            if artwork_url is not None:
                doc["artwork_url"] = artwork_url
            return doc

        feed = UserFeed.from_dict(self._store.mutate(COLLECTION, owner_id, _apply))
        if created:
            info(_LOG, "feed_created", owner_id=owner_id)
        return feed

    def resolve(self, owner_id: str, feed_id: str) -> UserFeed:
        """
        Look up a feed by its capability pair.

        Raises:
            FeedNotFoundError: The owner has no feed.
            ForbiddenError: feed_id does not match (constant-time check).
        """
        feed = self.get_feed(owner_id)
        if feed is None:
            raise FeedNotFoundError()
        if not hmac.compare_digest(feed.feed_id.encode("utf-8"), str(feed_id).encode("utf-8")):
            raise ForbiddenError("Invalid feed ID")
        return feed

    def _append_entry(self, owner_id: str, entry: FeedEntry) -> FeedEntry:
        result: List[FeedEntry] = []

        def _apply(doc):
            feed = UserFeed.from_dict(doc) if doc is not None else UserFeed(owner_id=owner_id)
            existing = feed.find(entry.guid)
            if existing is not None:
                result.append(existing)
                return feed.to_dict()
            feed.entries.append(entry)
            result.append(entry)
            return feed.to_dict()

        self._store.mutate(COLLECTION, owner_id, _apply)
        return result[0]

    def append(self, job: ConversionJob) -> FeedEntry:
        """
        Publish a completed job to its owner's feed.

        Raises:
            ValidationError: The job is not completed.
        """
        if job.status is not JobStatus.COMPLETED or not job.audio_url:
            raise ValidationError("Only completed jobs can be published", {"job_id": job.id})

        entry = FeedEntry(
            guid=job.id,
            title=job.title,
            description=job.summary,
            audio_url=job.audio_url,
            length_bytes=int(job.audio_bytes or 0),
            duration_label=format_duration_label(job.duration_seconds or 0),
            published_at=utcnow(),
            source_link=job.source.value if job.source.kind == "url" else None,
        )
        stored = self._append_entry(job.owner_id, entry)
        info(_LOG, "episode_published", owner_id=job.owner_id, job_id=job.id, new=stored is entry)
        return stored

    def add_episode(self, owner_id: str, payload: EpisodeInput) -> FeedEntry:
        """
        Append a fully-formed episode with a fresh guid.

        Raises:
            ValidationError: A required field is missing.
        """
        missing = [
            name for name, value in (
                ("title", payload.title),
                ("description", payload.description),
                ("audio_url", payload.audio_url),
                ("length_bytes", payload.length_bytes),
                ("duration_label", payload.duration_label),
            ) if not value
        ]
        if missing:
            raise ValidationError(
                "Missing required fields: " + ", ".join(missing),
                {"missing": missing},
            )

        entry = FeedEntry(
            guid=str(uuid.uuid4()),
            title=payload.title,
            description=payload.description,
            audio_url=payload.audio_url,
            length_bytes=int(payload.length_bytes),
            duration_label=str(payload.duration_label),
            published_at=utcnow(),
            source_link=payload.source_link,
            image_url=payload.image_url,
            author=payload.author,
            explicit=bool(payload.explicit),
        )
        self._append_entry(owner_id, entry)
        info(_LOG, "episode_added", owner_id=owner_id, guid=entry.guid)
        return entry

    def render(self, feed: UserFeed, self_link: str, build_date: Optional[datetime] = None) -> str:
        """render_feed with this publisher's channel config, counted in metrics."""
        xml = render_feed(feed, self_link, build_date=build_date, config=self._config)
        metrics.record_feed_render()
        verbose(_LOG, "feed_rendered", owner_id=feed.owner_id, entries=len(feed.entries), chars=len(xml))
        return xml
