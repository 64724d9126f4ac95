"""
snipr API Routes.

Endpoints:
    POST /v1/jobs                          - Submit a conversion job (202)
    POST /v1/jobs/document                 - Upload an EPUB as a job (multipart, 202)
    GET  /v1/jobs?owner_id=...             - List an owner's jobs, newest first
    GET  /v1/jobs/{job_id}                 - Job status and result (owner only)
    GET  /v1/feeds/{owner_id}              - Feed info, creating the feed (owner only)
    PUT  /v1/feeds/{owner_id}              - Set channel name, email, artwork (owner only)
    POST /v1/feeds/{owner_id}/episodes     - Append a fully-formed episode (201)
    GET  /v1/feeds/{owner_id}/{feed_id}    - RSS document (capability, no token)
    GET  /health                           - Health check
    GET  /metrics                          - Prometheus metrics

Error Handling:
    All errors are returned as JSON with standardized format:
    {
        "ok": false,
        "error": "<ERROR_CODE>",
        "message": "<human readable message>"
    }

    HTTP status codes come from core.errors.http_status_for():
        - AUTH_FAILED -> 401
        - FORBIDDEN -> 403
        - INVALID_INPUT -> 400
        - PAYLOAD_TOO_LARGE -> 413
        - JOB_NOT_FOUND / FEED_NOT_FOUND -> 404
        - SERVICE_UNAVAILABLE -> 503
        - anything unexpected -> 500 INTERNAL_ERROR, no internals exposed

Example Usage:
    >>> import httpx
    >>> r = httpx.post(
    ...     "http://localhost:8000/v1/jobs",
    ...     headers={"Authorization": f"Bearer {token}"},
    ...     json={"owner_id": "alice", "url": "https://example.com/post"},
    ... )
    >>> r.json()["job_id"]
"""
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, File, Form, Request, Response, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

import snipr
from snipr.api.dependencies import get_job_service, get_principal, get_settings
from snipr.api.schemas import (
    EpisodeRequest,
    EpisodeResponse,
    FeedInfoResponse,
    FeedProfileRequest,
    JobAccepted,
    JobResponse,
    JobSubmitRequest,
)
from snipr.core.config import Settings
from snipr.core.errors import ErrorCode, SniprError, http_status_for
from snipr.core.logging import error, get_logger, get_trace_id, warn
from snipr.core.metrics import metrics
from snipr.pipeline.feed import EpisodeInput
from snipr.services.job_service import JobService

router = APIRouter()

_LOG = get_logger("snipr.api")

RSS_MEDIA_TYPE = "application/rss+xml; charset=utf-8"
UPLOAD_CHUNK_BYTES = 1024 * 1024


# =============================================================================
# Jobs
# =============================================================================

@router.post("/v1/jobs", status_code=202, response_model=JobAccepted)
def submit_job(
    req: JobSubmitRequest,
    principal: str = Depends(get_principal),
    service: JobService = Depends(get_job_service),
):
    """
    Create a job and return immediately; conversion runs in the background.

    Poll GET /v1/jobs/{job_id} for the result.
    """
    job = service.submit(principal, req.owner_id, url=req.url, text=req.text, title=req.title)
    return JobAccepted(job_id=job.id, status=job.status.value)


@router.post("/v1/jobs/document", status_code=202, response_model=JobAccepted)
async def submit_document(
    epub: UploadFile = File(...),
    owner_id: str = Form(...),
    title: Optional[str] = Form(default=None),
    principal: str = Depends(get_principal),
    service: JobService = Depends(get_job_service),
):
    """
    Upload an EPUB book; its chapters are narrated as one episode.

    Reading stops one chunk past the size ceiling and the service answers
    413, so an oversized upload is never held in full.
    """
    limit = service.max_document_bytes
    data = bytearray()
    try:
        while len(data) <= limit:
            chunk = await epub.read(UPLOAD_CHUNK_BYTES)
            if not chunk:
                break
            data.extend(chunk)
    finally:
        await epub.close()

    job = await run_in_threadpool(
        service.submit_document,
        principal,
        owner_id,
        bytes(data),
        filename=epub.filename,
        content_type=epub.content_type,
        title=title,
    )
    return JobAccepted(job_id=job.id, status=job.status.value)


@router.get("/v1/jobs", response_model=List[JobResponse])
def list_jobs(
    owner_id: str,
    principal: str = Depends(get_principal),
    service: JobService = Depends(get_job_service),
):
    """An owner's jobs, newest first."""
    return [JobResponse.from_job(job) for job in service.list_jobs(owner_id, principal)]


@router.get("/v1/jobs/{job_id}", response_model=JobResponse)
def get_job(
    job_id: str,
    principal: str = Depends(get_principal),
    service: JobService = Depends(get_job_service),
):
    return JobResponse.from_job(service.get_job(job_id, principal))


# =============================================================================
# Feeds
# =============================================================================

@router.get("/v1/feeds/{owner_id}", response_model=FeedInfoResponse)
def feed_info(
    owner_id: str,
    principal: str = Depends(get_principal),
    service: JobService = Depends(get_job_service),
    settings: Settings = Depends(get_settings),
):
    data = service.feed_info(owner_id, principal)
    return FeedInfoResponse(feed_url=settings.public_base_url + data["feed_path"], **data)


@router.put("/v1/feeds/{owner_id}", response_model=FeedInfoResponse)
def update_feed_profile(
    owner_id: str,
    req: FeedProfileRequest,
    principal: str = Depends(get_principal),
    service: JobService = Depends(get_job_service),
    settings: Settings = Depends(get_settings),
):
    data = service.update_profile(
        owner_id,
        principal,
        display_name=req.display_name,
        email=req.email,
        artwork_url=req.artwork_url,
    )
    return FeedInfoResponse(feed_url=settings.public_base_url + data["feed_path"], **data)


@router.post("/v1/feeds/{owner_id}/episodes", status_code=201, response_model=EpisodeResponse)
def add_episode(
    owner_id: str,
    req: EpisodeRequest,
    principal: str = Depends(get_principal),
    service: JobService = Depends(get_job_service),
):
    payload = EpisodeInput(
        title=req.title,
        description=req.description,
        audio_url=req.audio_url,
        length_bytes=req.length_bytes,
        duration_label=str(req.duration),
        source_link=req.source_link,
        image_url=req.image_url,
        author=req.author,
        explicit=req.explicit,
    )
    return EpisodeResponse.from_entry(service.add_episode(owner_id, principal, payload))


@router.get("/v1/feeds/{owner_id}/{feed_id}")
def read_feed(
    owner_id: str,
    feed_id: str,
    service: JobService = Depends(get_job_service),
    settings: Settings = Depends(get_settings),
):
    """
    Public RSS document.

    The (owner_id, feed_id) pair is the capability; no token is needed.
    """
    self_link = f"{settings.public_base_url}/v1/feeds/{owner_id}/{feed_id}"
    xml = service.read_feed(owner_id, feed_id, self_link)
    cache_s = service.publisher.config.cache_max_age_s
    return Response(
        content=xml,
        media_type=RSS_MEDIA_TYPE,
        headers={"Cache-Control": f"public, max-age={cache_s}"},
    )


# =============================================================================
# Operations
# =============================================================================

@router.get("/health")
def health(service: JobService = Depends(get_job_service), settings: Settings = Depends(get_settings)):
    return {
        "ok": True,
        "service": settings.service_name,
        "version": snipr.__version__,
        **service.stats(),
    }


@router.get("/metrics")
def prometheus_metrics():
    content, content_type = metrics.get_metrics_response()
    return Response(content=content, media_type=content_type)


# =============================================================================
# Error handlers
# =============================================================================

def snipr_error_handler(request: Request, exc: SniprError) -> JSONResponse:
    status = http_status_for(exc)
    if status == 500:
        error(_LOG, "request_failed", path=request.url.path, code=exc.code)
        return _internal_error()
    warn(_LOG, "request_rejected", path=request.url.path, status=status, code=exc.code)
    return JSONResponse(status_code=status, content=exc.to_dict())


def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = [".".join(str(p) for p in e.get("loc", ())) for e in exc.errors()]
    warn(_LOG, "request_invalid", path=request.url.path, fields=fields)
    return JSONResponse(
        status_code=400,
        content={
            "ok": False,
            "error": ErrorCode.INVALID_INPUT,
            "message": "Invalid request body",
            "details": {"fields": fields},
        },
    )


def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    error(_LOG, "request_crashed", path=request.url.path, error=type(exc).__name__, exc_info=exc)
    return _internal_error()


def _internal_error() -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={
            "ok": False,
            "error": ErrorCode.INTERNAL_ERROR,
            "message": "Internal server error",
            "request_id": get_trace_id(),
        },
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SniprError, snipr_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
