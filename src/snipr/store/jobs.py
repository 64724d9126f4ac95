"""
Job Repository.

Typed access to conversion jobs in the document store, enforcing the
job state machine on every write:

    pending -> processing -> completed
                          -> failed
    pending -> failed

Rules:
    - Status never moves backwards or out of a terminal state
    - A completed job only accepts the `published` flag afterwards
    - completed requires audio_url and duration_seconds > 0
    - failed requires a non-empty error
"""
from __future__ import annotations

from typing import Any, Dict, List

from snipr.core.errors import InvalidTransitionError, JobNotFoundError
from snipr.core.logging import debug, get_logger
from snipr.pipeline.models import ConversionJob, JobStatus, utcnow
from snipr.store.documents import Document, DocumentStore

_LOG = get_logger("snipr.jobs")

COLLECTION = "jobs"

_ALLOWED = {
    JobStatus.PENDING: {JobStatus.PENDING, JobStatus.PROCESSING, JobStatus.FAILED},
    JobStatus.PROCESSING: {JobStatus.PROCESSING, JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: {JobStatus.COMPLETED},
    JobStatus.FAILED: {JobStatus.FAILED},
}

# Fields a terminal job may still change
_POST_TERMINAL_FIELDS = {
    JobStatus.COMPLETED: {"published"},
    JobStatus.FAILED: set(),
}


def _check_invariants(doc: Document) -> None:
    status = JobStatus(doc["status"])
    if status is JobStatus.COMPLETED:
        if not doc.get("audio_url") or not (doc.get("duration_seconds") or 0) > 0:
            raise InvalidTransitionError(
                "completed job requires audio_url and a positive duration",
                {"job_id": doc.get("id")},
            )
    if status is JobStatus.FAILED and not doc.get("error"):
        raise InvalidTransitionError("failed job requires an error message", {"job_id": doc.get("id")})


class JobRepository:
    """State-machine-checked job persistence."""

    def __init__(self, store: DocumentStore):
        self._store = store

    @property
    def store(self) -> DocumentStore:
        return self._store

    def create(self, job: ConversionJob) -> ConversionJob:
        if job.status is not JobStatus.PENDING:
            raise InvalidTransitionError("jobs are created pending", {"job_id": job.id})
        self._store.set(COLLECTION, job.id, job.to_dict())
        debug(_LOG, "job_created", job_id=job.id, owner_id=job.owner_id)
        return job

    def get(self, job_id: str) -> ConversionJob:
        doc = self._store.get(COLLECTION, job_id)
        if doc is None:
            raise JobNotFoundError(job_id)
        return ConversionJob.from_dict(doc)

    def update(self, job_id: str, **fields: Any) -> ConversionJob:
        """
        Apply field changes atomically.

        Raises:
            JobNotFoundError: Unknown job id.
            InvalidTransitionError: The write breaks the state machine.
        """
        if "status" in fields and isinstance(fields["status"], JobStatus):
            fields["status"] = fields["status"].value
        for immutable in ("id", "owner_id", "source", "created_at"):
            if immutable in fields:
                raise InvalidTransitionError(f"{immutable} is immutable", {"job_id": job_id})

        def _apply(doc):
            if doc is None:
                raise JobNotFoundError(job_id)
            current = JobStatus(doc["status"])
            target = JobStatus(fields.get("status", current.value))

            if target not in _ALLOWED[current]:
                raise InvalidTransitionError(
                    f"cannot move job from {current.value} to {target.value}",
                    {"job_id": job_id},
                )
            if current.is_terminal:
                illegal = set(fields) - {"status"} - _POST_TERMINAL_FIELDS[current]
                if illegal:
                    raise InvalidTransitionError(
                        f"{current.value} job is final",
                        {"job_id": job_id, "fields": sorted(illegal)},
                    )

            doc.update(fields)
            doc["updated_at"] = utcnow().isoformat()
            _check_invariants(doc)
            return doc

        new_doc = self._store.mutate(COLLECTION, job_id, _apply)
        debug(_LOG, "job_updated", job_id=job_id, fields=sorted(fields))
        return ConversionJob.from_dict(new_doc)

    def list_for_owner(self, owner_id: str) -> List[ConversionJob]:
        """All jobs of an owner, newest first."""
        jobs: List[ConversionJob] = []
        for job_id in self._store.ids(COLLECTION):
            doc = self._store.get(COLLECTION, job_id)
            if doc is not None and doc.get("owner_id") == owner_id:
                jobs.append(ConversionJob.from_dict(doc))
        return sorted(jobs, key=lambda j: j.created_at, reverse=True)

    def counts(self) -> Dict[str, int]:
        """Number of jobs per status."""
        out = {s.value: 0 for s in JobStatus}
        for job_id in self._store.ids(COLLECTION):
            doc = self._store.get(COLLECTION, job_id)
            if doc is not None:
                out[doc["status"]] = out.get(doc["status"], 0) + 1
        return out
