"""
API Request/Response Schemas.

Pydantic models for the snipr HTTP API.

Models:
    JobSubmitRequest: Body of POST /v1/jobs
    JobAccepted: 202 response to a submission
    JobResponse: Job record returned by GET /v1/jobs/{job_id}
    FeedInfoResponse: GET /v1/feeds/{owner_id}
    EpisodeRequest: Body of POST /v1/feeds/{owner_id}/episodes
    EpisodeResponse: 201 response to an episode append

Example Request:
    {
        "owner_id": "alice",
        "url": "https://example.com/post"
    }
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, Field

from snipr.pipeline.models import ConversionJob, FeedEntry


class JobSubmitRequest(BaseModel):
    """
    Submission of a conversion job.

    Exactly one of `url` and `text` must be set; the service rejects both
    or neither with 400.
    """
    owner_id: str = Field(..., description="Owner the job is created for; must match the token")
    url: Optional[str] = Field(default=None, description="Web article to convert")
    text: Optional[str] = Field(default=None, description="Inline text to convert")
    title: Optional[str] = Field(default=None, description="Title for inline text")


class JobAccepted(BaseModel):
    ok: bool = True
    job_id: str
    status: str


class SourceResponse(BaseModel):
    kind: str
    value: str
    title: Optional[str] = None


class JobResponse(BaseModel):
    id: str
    owner_id: str
    source: SourceResponse
    status: str
    title: str
    summary: str
    audio_url: Optional[str] = None
    duration_seconds: Optional[int] = None
    audio_bytes: Optional[int] = None
    published: bool
    error: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_job(cls, job: ConversionJob) -> "JobResponse":
        return cls.model_validate(job.to_dict())


class FeedInfoResponse(BaseModel):
    owner_id: str
    feed_id: str
    feed_path: str
    feed_url: str
    entries: int
    display_name: str = ""
    email: str = ""
    artwork_url: Optional[str] = None


class FeedProfileRequest(BaseModel):
    """
    Channel profile shown in the rendered feed.

    Omitted fields keep their current value.
    """
    display_name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    email: Optional[str] = Field(default=None, max_length=254, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    artwork_url: Optional[str] = Field(default=None, min_length=1, description="Square channel image URL")


class EpisodeRequest(BaseModel):
    """
    A fully-formed episode.

    `duration` is stored as given: HH:MM:SS or raw seconds.
    """
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    audio_url: str = Field(..., min_length=1)
    length_bytes: int = Field(..., gt=0, description="Audio size in bytes")
    duration: Union[int, str] = Field(..., description="HH:MM:SS or seconds")
    source_link: Optional[str] = None
    image_url: Optional[str] = None
    author: Optional[str] = None
    explicit: bool = False


class EpisodeResponse(BaseModel):
    ok: bool = True
    guid: str
    title: str
    published_at: datetime

    @classmethod
    def from_entry(cls, entry: FeedEntry) -> "EpisodeResponse":
        return cls(guid=entry.guid, title=entry.title, published_at=entry.published_at)
