"""
Artifact Store.

Persists a job's rendered audio and returns a permanent public URL.

Retry Policy:
    Upload (put + existence check) and URL resolution are retried
    independently, `attempts` times each (default 3), sleeping
    backoff_base_s * 2**(attempt-1) between tries (2s, 4s, ...).
    A put whose object cannot be confirmed by exists() counts as a
    failed attempt. Exhaustion raises StorageError.

Key Layout:
    podcasts/{owner_id}/{job_id}.mp3
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar
from urllib.parse import urlparse

from snipr.core.config import StorageConfig
from snipr.core.errors import StorageError
from snipr.core.logging import get_logger, info, warn
from snipr.core.metrics import metrics
from snipr.store.objects import ObjectStorage

_LOG = get_logger("snipr.artifacts")

AUDIO_CONTENT_TYPE = "audio/mpeg"

T = TypeVar("T")


@dataclass(frozen=True)
class StoredArtifact:
    key: str
    url: str
    size: int


def artifact_key(owner_id: str, job_id: str) -> str:
    return f"podcasts/{owner_id}/{job_id}.mp3"


def _check_public_url(url: str) -> str:
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"not an absolute http(s) URL: {url!r}")
    if parsed.query:
        raise ValueError("public URL must not carry a query string")
    return url


class ArtifactStore:
    """
    Durable audio persistence with bounded retry.

    Args:
        storage: Object storage backend.
        config: Retry policy (attempts, backoff_base_s).
        sleep: Sleep function, injectable so tests can record delays.
    """

    def __init__(
        self,
        storage: ObjectStorage,
        config: Optional[StorageConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._storage = storage
        self._config = config or StorageConfig()
        self._sleep = sleep

    @property
    def storage(self) -> ObjectStorage:
        return self._storage

    def backoff_delay(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number `attempt` (1-based)."""
        return self._config.backoff_base_s * (2 ** (attempt - 1))

    def _with_retry(self, operation: str, fn: Callable[[], T], key: str) -> T:
        attempts = self._config.attempts
        last_error: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            try:
                return fn()
            except Exception as e:
                last_error = e
                if attempt >= attempts:
                    break
                delay = self.backoff_delay(attempt)
                metrics.record_storage_retry(operation)
                warn(
                    _LOG, "storage_retry",
                    operation=operation,
                    key=key,
                    attempt=attempt,
                    delay_s=delay,
                    error=str(e),
                )
                self._sleep(delay)

        raise StorageError(
            f"Failed to {operation} audio after {attempts} attempts: {last_error}",
            {"operation": operation, "key": key, "attempts": attempts},
        )

    def _upload_once(self, key: str, audio: bytes) -> None:
        self._storage.put(key, audio, AUDIO_CONTENT_TYPE)
        if not self._storage.exists(key):
            raise StorageError("File failed to upload", {"key": key})

    def persist(self, owner_id: str, job_id: str, audio: bytes) -> StoredArtifact:
        """
        Upload audio and resolve its public URL.

        Raises:
            StorageError: Empty audio, or either operation exhausted its
                attempts.
        """
        if not audio:
            raise StorageError("Refusing to store empty audio", {"job_id": job_id})

        key = artifact_key(owner_id, job_id)
        self._with_retry("upload", lambda: self._upload_once(key, audio), key)
        url = self._with_retry(
            "resolve_url",
            lambda: _check_public_url(self._storage.public_url(key)),
            key,
        )

        info(_LOG, "artifact_stored", key=key, bytes=len(audio), backend=self._storage.name)
        return StoredArtifact(key=key, url=url, size=len(audio))
