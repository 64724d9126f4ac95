"""
Records shared by the pipeline, the stores and the API.

Every persisted record converts to and from a plain dict (`to_dict` /
`from_dict`) so the document store never sees anything but JSON-safe
values. Timestamps are timezone-aware UTC and serialize as ISO-8601.
"""
from __future__ import annotations

import secrets
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def new_job_id() -> str:
    return uuid.uuid4().hex


def new_feed_id() -> str:
    """Unguessable feed capability id."""
    return secrets.token_urlsafe(24)


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


@dataclass(frozen=True)
class SourceRef:
    """
    Where a job's content comes from.

    Attributes:
        kind: "url" for a web article, "text" for an inline blob,
            "document" for the chapter text of an uploaded EPUB.
        value: The URL, or the text itself.
        title: Optional title for text and documents.
    """
    kind: str
    value: str
    title: Optional[str] = None

    @classmethod
    def url(cls, url: str) -> "SourceRef":
        return cls(kind="url", value=url)

    @classmethod
    def text(cls, text: str, title: Optional[str] = None) -> "SourceRef":
        return cls(kind="text", value=text, title=title)

    @classmethod
    def document(cls, text: str, title: Optional[str] = None) -> "SourceRef":
        return cls(kind="document", value=text, title=title)

    def describe(self) -> str:
        """Short label for logs (the URL, or the text length)."""
        if self.kind == "url":
            return self.value
        return f"<{self.kind} {len(self.value)} chars>"

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "value": self.value, "title": self.title}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SourceRef":
        return cls(kind=data["kind"], value=data["value"], title=data.get("title"))


@dataclass
class ConversionJob:
    """
    One request to turn a source into a published episode.

    Invariants:
        completed -> audio_url non-empty and duration_seconds > 0
        failed    -> error non-empty
    """
    owner_id: str
    source: SourceRef
    id: str = field(default_factory=new_job_id)
    status: JobStatus = JobStatus.PENDING
    title: str = ""
    summary: str = ""
    audio_url: Optional[str] = None
    duration_seconds: Optional[int] = None
    audio_bytes: Optional[int] = None
    published: bool = False
    error: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def evolve(self, **changes: Any) -> "ConversionJob":
        """Copy with changes applied and updated_at refreshed."""
        changes.setdefault("updated_at", utcnow())
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "source": self.source.to_dict(),
            "status": self.status.value,
            "title": self.title,
            "summary": self.summary,
            "audio_url": self.audio_url,
            "duration_seconds": self.duration_seconds,
            "audio_bytes": self.audio_bytes,
            "published": self.published,
            "error": self.error,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConversionJob":
        return cls(
            id=data["id"],
            owner_id=data["owner_id"],
            source=SourceRef.from_dict(data["source"]),
            status=JobStatus(data["status"]),
            title=data.get("title", ""),
            summary=data.get("summary", ""),
            audio_url=data.get("audio_url"),
            duration_seconds=data.get("duration_seconds"),
            audio_bytes=data.get("audio_bytes"),
            published=bool(data.get("published", False)),
            error=data.get("error"),
            created_at=_parse_dt(data.get("created_at")) or utcnow(),
            updated_at=_parse_dt(data.get("updated_at")) or utcnow(),
        )


@dataclass(frozen=True)
class FeedEntry:
    """
    One published episode. Entries are immutable once appended.

    `duration_label` is free-form: the pipeline writes HH:MM:SS, while
    administrative entries may carry raw seconds.
    """
    guid: str
    title: str
    description: str
    audio_url: str
    length_bytes: int
    duration_label: str
    published_at: datetime
    source_link: Optional[str] = None
    image_url: Optional[str] = None
    author: Optional[str] = None
    explicit: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "guid": self.guid,
            "title": self.title,
            "description": self.description,
            "audio_url": self.audio_url,
            "length_bytes": self.length_bytes,
            "duration_label": self.duration_label,
            "published_at": _iso(self.published_at),
            "source_link": self.source_link,
            "image_url": self.image_url,
            "author": self.author,
            "explicit": self.explicit,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeedEntry":
        return cls(
            guid=data["guid"],
            title=data["title"],
            description=data.get("description", ""),
            audio_url=data["audio_url"],
            length_bytes=int(data.get("length_bytes") or 0),
            duration_label=str(data.get("duration_label") or ""),
            published_at=_parse_dt(data["published_at"]),
            source_link=data.get("source_link"),
            image_url=data.get("image_url"),
            author=data.get("author"),
            explicit=bool(data.get("explicit", False)),
        )


@dataclass
class UserFeed:
    """
    An owner's podcast feed.

    The feed is readable by anyone who holds both owner_id and feed_id;
    feed_id is the capability and never appears in logs.
    """
    owner_id: str
    feed_id: str = field(default_factory=new_feed_id)
    display_name: str = ""
    email: str = ""
    artwork_url: Optional[str] = None
    entries: List[FeedEntry] = field(default_factory=list)

    def find(self, guid: str) -> Optional[FeedEntry]:
        for entry in self.entries:
            if entry.guid == guid:
                return entry
        return None

    def sorted_entries(self) -> List[FeedEntry]:
        """Entries newest first; ties keep insertion order."""
        return sorted(self.entries, key=lambda e: e.published_at, reverse=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner_id": self.owner_id,
            "feed_id": self.feed_id,
            "display_name": self.display_name,
            "email": self.email,
            "artwork_url": self.artwork_url,
            "entries": [e.to_dict() for e in self.entries],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserFeed":
        return cls(
            owner_id=data["owner_id"],
            feed_id=data["feed_id"],
            display_name=data.get("display_name", ""),
            email=data.get("email", ""),
            artwork_url=data.get("artwork_url"),
            entries=[FeedEntry.from_dict(e) for e in data.get("entries", [])],
        )
