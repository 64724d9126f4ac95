"""
Input Validation for Job Submission and Episode Append.

Validation happens before a job is created, so a malformed request never
produces a job record.

Validation Rules:
    - owner_id: Required, max 128 characters, no slashes or control chars
    - Source: exactly one of url / text
    - url: absolute http(s) URL, max 2048 characters
    - text: non-blank, max 500,000 characters
    - title: optional, max 300 characters
    - document: non-empty EPUB (.epub or application/epub+zip) within the
      upload ceiling; its chapter text at most 2,000,000 characters

Every failure raises ValidationError (HTTP 400) with a machine-readable
reason in details["reason"]:
    - {FIELD}_REQUIRED: Missing required field
    - {FIELD}_TOO_LONG: Exceeds max length
    - {FIELD}_INVALID: Format/content invalid

An oversized upload raises PayloadTooLargeError (HTTP 413) instead.

Usage:
    from snipr.services.validators import validate_owner_id, validate_source

    owner_id = validate_owner_id(request.owner_id)
    source = validate_source(url=request.url, text=request.text, title=request.title)
"""
from __future__ import annotations

import re
from pathlib import PurePosixPath
from typing import Optional
from urllib.parse import urlparse

from snipr.core.errors import PayloadTooLargeError, ValidationError
from snipr.core.logging import get_logger, warn
from snipr.pipeline.models import SourceRef

_LOG = get_logger("snipr.validators")

MAX_OWNER_ID_LENGTH = 128
MAX_URL_LENGTH = 2048
MAX_TEXT_LENGTH = 500_000
MAX_TITLE_LENGTH = 300
MAX_DOCUMENT_TEXT_LENGTH = 2_000_000

EPUB_SUFFIX = ".epub"
EPUB_MEDIA_TYPE = "application/epub+zip"

_OWNER_ID_BAD = re.compile(r"[/\\\x00-\x1f\x7f]")


def _fail(message: str, field: str, reason: str) -> ValidationError:
    return ValidationError(message, {"field": field, "reason": reason})


def validate_owner_id(owner_id: Optional[str]) -> str:
    """
    Validate an owner identifier.

    Owner ids appear in storage keys and URL paths, so path separators
    and control characters are rejected.
    """
    if not owner_id or not owner_id.strip():
        raise _fail("owner_id is required", "owner_id", "OWNER_ID_REQUIRED")
    if len(owner_id) > MAX_OWNER_ID_LENGTH:
        raise _fail(
            f"owner_id exceeds maximum length ({len(owner_id)} > {MAX_OWNER_ID_LENGTH})",
            "owner_id", "OWNER_ID_TOO_LONG",
        )
    if owner_id in (".", "..") or _OWNER_ID_BAD.search(owner_id):
        raise _fail("owner_id contains invalid characters", "owner_id", "OWNER_ID_INVALID")
    return owner_id


def validate_url(url: Optional[str], field: str = "url") -> str:
    """Validate an absolute http(s) URL."""
    if not url or not url.strip():
        raise _fail(f"{field} is required", field, f"{field.upper()}_REQUIRED")
    url = url.strip()
    if len(url) > MAX_URL_LENGTH:
        raise _fail(
            f"{field} exceeds maximum length ({len(url)} > {MAX_URL_LENGTH})",
            field, f"{field.upper()}_TOO_LONG",
        )
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        warn(_LOG, "url_rejected", field=field, scheme=parsed.scheme or "-")
        raise _fail(f"{field} must be an absolute http(s) URL", field, f"{field.upper()}_INVALID")
    return url


def validate_text(text: Optional[str], max_length: int = MAX_TEXT_LENGTH) -> str:
    """Validate an inline text source."""
    if not text or not text.strip():
        raise _fail("text is required", "text", "TEXT_REQUIRED")
    if len(text) > max_length:
        raise _fail(
            f"text exceeds maximum length ({len(text)} > {max_length})",
            "text", "TEXT_TOO_LONG",
        )
    return text


def validate_title(title: Optional[str]) -> Optional[str]:
    if not title or not title.strip():
        return None
    title = title.strip()
    if len(title) > MAX_TITLE_LENGTH:
        raise _fail(
            f"title exceeds maximum length ({len(title)} > {MAX_TITLE_LENGTH})",
            "title", "TITLE_TOO_LONG",
        )
    return title


def validate_source(
    url: Optional[str] = None,
    text: Optional[str] = None,
    title: Optional[str] = None,
) -> SourceRef:
    """
    Build a SourceRef from request fields.

    Raises:
        ValidationError: Neither or both of url/text given, or a field
            fails its own check.
    """
    has_url = bool(url and url.strip())
    has_text = bool(text and text.strip())
    if has_url == has_text:
        raise _fail("Provide exactly one of url or text", "source", "SOURCE_REQUIRED" if not has_url else "SOURCE_AMBIGUOUS")
    if has_url:
        return SourceRef.url(validate_url(url))
    return SourceRef.text(validate_text(text), title=validate_title(title))


def validate_document(
    data: Optional[bytes],
    filename: Optional[str],
    content_type: Optional[str],
    max_bytes: int,
) -> bytes:
    """
    Check an uploaded book before it is parsed.

    The upload must be non-empty, within max_bytes, and identify as an
    EPUB by file suffix or media type.

    Raises:
        ValidationError: Empty or not an EPUB.
        PayloadTooLargeError: Over max_bytes.
    """
    if not data:
        raise _fail("document is required", "document", "DOCUMENT_REQUIRED")
    if len(data) > max_bytes:
        raise PayloadTooLargeError(
            f"document exceeds maximum size ({len(data)} > {max_bytes} bytes)",
            {"field": "document", "reason": "DOCUMENT_TOO_LARGE", "max_bytes": max_bytes},
        )
    suffix = PurePosixPath(filename or "").suffix.lower()
    media_type = (content_type or "").split(";", 1)[0].strip().lower()
    if suffix != EPUB_SUFFIX and media_type != EPUB_MEDIA_TYPE:
        warn(_LOG, "document_rejected", filename=filename or "-", content_type=media_type or "-")
        raise _fail("document must be an EPUB file", "document", "DOCUMENT_INVALID")
    return data


def document_title(title: Optional[str], book_title: str, filename: Optional[str]) -> str:
    """Explicit title, else the book's own, else the upload's file name."""
    explicit = validate_title(title)
    if explicit:
        return explicit
    if book_title:
        return book_title[:MAX_TITLE_LENGTH]
    stem = PurePosixPath(filename or "").stem.replace("_", " ").strip()
    return stem[:MAX_TITLE_LENGTH] or "Untitled"
