"""
Object Storage Backends.

Durable, publicly readable blob storage for audio artifacts.

Backends:
    LocalObjectStorage: Files under a base directory, served by the API
                        at /media (or any static host in front of it)
    S3ObjectStorage:    Amazon S3 (or compatible) via boto3, objects
                        written with a public-read ACL

All backends implement:
    put(key, data, content_type)  -> None
    exists(key)                   -> bool
    public_url(key)               -> str (permanent, unsigned)

Failures raise the backend's own exceptions (OSError, botocore errors);
retry policy lives one layer up in the artifact store.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import Any, Optional
from urllib.parse import quote

import boto3
from botocore.exceptions import ClientError

from snipr.core.config import Defaults, StorageConfig
from snipr.core.logging import get_logger, info, verbose

_LOG = get_logger("snipr.objects")


def _safe_key(key: str) -> str:
    """Reject keys that could escape the storage root."""
    parts = PurePosixPath(key).parts
    if not parts or key.startswith("/") or any(p in ("..", ".") for p in parts):
        raise ValueError(f"Invalid object key: {key!r}")
    return key


class ObjectStorage(ABC):
    """Abstract public blob store."""

    name: str = "base"

    @abstractmethod
    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        raise NotImplementedError

    @abstractmethod
    def exists(self, key: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def public_url(self, key: str) -> str:
        raise NotImplementedError


class LocalObjectStorage(ObjectStorage):
    """
    Filesystem backend.

    Writes are atomic (temp file then rename), so a reader never sees a
    partially written object.
    """

    name = "local"

    def __init__(self, base_dir: str, public_base_url: Optional[str] = None):
        self.base_dir = Path(base_dir)
        self.public_base_url = (public_base_url or Defaults.STORAGE_PUBLIC_BASE_URL).rstrip("/")

    def path_for(self, key: str) -> Path:
        return self.base_dir / _safe_key(key)

    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        p = self.path_for(key)
        p.parent.mkdir(parents=True, exist_ok=True)
        tmp = p.with_suffix(p.suffix + ".tmp")
        try:
            tmp.write_bytes(data)
            tmp.replace(p)
        finally:
            if tmp.exists():
                tmp.unlink()
        verbose(_LOG, "object_written", backend=self.name, key=key, bytes=len(data))

    def exists(self, key: str) -> bool:
        return self.path_for(key).is_file()

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{quote(_safe_key(key))}"


class S3ObjectStorage(ObjectStorage):
    """
    S3 backend.

    URLs are virtual-hosted style
    (https://{bucket}.s3.{region}.amazonaws.com/{key}) unless a
    public_base_url (CDN, custom domain) is configured.
    """

    name = "s3"

    def __init__(
        self,
        bucket: str,
        region: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        public_base_url: Optional[str] = None,
        client: Any = None,
    ):
        self.bucket = bucket
        self.region = region or "us-east-1"
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None
        self._client = client or boto3.client(
            "s3",
            region_name=self.region,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
        )

    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        self._client.put_object(
            Bucket=self.bucket,
            Key=_safe_key(key),
            Body=data,
            ContentType=content_type,
            ACL="public-read",
        )
        verbose(_LOG, "object_written", backend=self.name, key=key, bytes=len(data))

    def exists(self, key: str) -> bool:
        try:
            self._client.head_object(Bucket=self.bucket, Key=_safe_key(key))
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in ("404", "NoSuchKey", "NotFound"):
                return False
            raise
        return True

    def public_url(self, key: str) -> str:
        path = quote(_safe_key(key))
        if self.public_base_url:
            return f"{self.public_base_url}/{path}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{path}"


def get_object_storage(config: Optional[StorageConfig] = None) -> ObjectStorage:
    """Create the configured object storage backend."""
    config = config or StorageConfig()
    if config.backend == "s3":
        storage: ObjectStorage = S3ObjectStorage(
            bucket=str(config.bucket),
            region=config.region,
            access_key=config.access_key,
            secret_key=config.secret_key,
            public_base_url=config.public_base_url,
        )
    else:
        storage = LocalObjectStorage(config.base_dir, config.public_base_url)
    info(_LOG, "object_storage_ready", backend=storage.name)
    return storage
