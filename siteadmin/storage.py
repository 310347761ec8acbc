"""
Blob storage for uploaded images: S3-compatible object storage and an
in-memory double for tests.
"""

from __future__ import annotations

import logging
import mimetypes
import os
import random
import time
from dataclasses import dataclass, field
from typing import Optional, Protocol, Sequence
from urllib.parse import urlparse

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from siteadmin.errors import EmptyPayload, MissingCredential, UnsupportedMedia, UploadFailed

logger = logging.getLogger(__name__)


class BlobStore(Protocol):
    """Defines the operations the API needs from object storage."""

    def upload(self, data: bytes, original_name: str, *, prefix: str = "gallery") -> str:
        ...

    def delete(self, url: str) -> None:
        ...


@dataclass(frozen=True)
class MediaPolicy:
    """Which uploads a form field accepts."""

    extensions: frozenset
    max_bytes: int
    max_files: int = 10

    @property
    def label(self) -> str:
        return ", ".join(sorted(ext.upper() for ext in self.extensions))


GALLERY_MEDIA = MediaPolicy(
    extensions=frozenset({"jpeg", "jpg", "png", "webp"}),
    max_bytes=10 * 1024 * 1024,
    max_files=10,
)

HERO_MEDIA = MediaPolicy(
    extensions=frozenset({"jpeg", "jpg", "png", "gif", "webp"}),
    max_bytes=5 * 1024 * 1024,
    max_files=1,
)


def check_upload(
    policy: MediaPolicy,
    filename: Optional[str],
    content_type: Optional[str],
    size: int,
) -> None:
    """
    Reject a file unless both its extension and its declared content type are
    on the allow-list, and it fits the size cap.
    """
    ext = os.path.splitext(filename or "")[1].lower().lstrip(".")
    mime = (content_type or "").split(";")[0].strip().lower()
    major, _, subtype = mime.partition("/")
    if ext not in policy.extensions or major != "image" or subtype not in policy.extensions:
        raise UnsupportedMedia(
            f"Only image files ({policy.label}) are allowed",
            error=f"rejected {filename!r} ({content_type or 'unknown type'})",
        )
    if size > policy.max_bytes:
        raise UnsupportedMedia(
            f"File too large, limit is {policy.max_bytes // (1024 * 1024)}MB",
            error=f"{filename!r} is {size} bytes",
        )


def build_object_name(original_name: str, prefix: str) -> str:
    """``<prefix>/<epoch ms>-<random>.<ext>``; collision resistant without coordination."""
    ext = os.path.splitext(original_name or "")[1].lower()
    stamp = int(time.time() * 1000)
    return f"{prefix}/{stamp}-{random.randint(0, 10**9)}{ext}"


@dataclass
class InMemoryBlobStore:
    """Test double for blob storage interactions."""

    base_url: str = "https://blob.example.test"
    objects: dict = field(default_factory=dict)
    deleted: list = field(default_factory=list)

    def upload(self, data: bytes, original_name: str, *, prefix: str = "gallery") -> str:
        if not data:
            raise EmptyPayload("File buffer is empty", error=original_name)
        url = f"{self.base_url}/{build_object_name(original_name, prefix)}"
        self.objects[url] = bytes(data)
        return url

    def delete(self, url: str) -> None:
        if not url:
            return
        self.objects.pop(url, None)
        self.deleted.append(url)


@dataclass
class S3BlobStore:
    """
    S3-compatible blob store. Objects are written public-read and addressed by
    ``public_base_url/<key>``.
    """

    bucket: str
    region: str = ""
    endpoint: str = ""
    access_key_id: str = ""
    secret_access_key: str = ""
    public_base_url: str = ""

    def __post_init__(self):
        config = Config(
            s3={"addressing_style": "virtual"},
            signature_version="s3v4",
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id or None,
            aws_secret_access_key=self.secret_access_key or None,
            config=config,
        )
        if not self.public_base_url:
            self.public_base_url = self._default_public_base_url()
        self.public_base_url = self.public_base_url.rstrip("/")

    def _default_public_base_url(self) -> str:
        if self.endpoint:
            parsed = urlparse(self.endpoint)
            return f"{parsed.scheme or 'https'}://{self.bucket}.{parsed.netloc or parsed.path}"
        if self.region:
            return f"https://{self.bucket}.s3.{self.region}.amazonaws.com"
        return f"https://{self.bucket}.s3.amazonaws.com"

    def url_for(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"

    def key_for(self, url: str) -> str:
        prefix = self.public_base_url + "/"
        if url.startswith(prefix):
            return url[len(prefix):]
        return urlparse(url).path.lstrip("/")

    def upload(self, data: bytes, original_name: str, *, prefix: str = "gallery") -> str:
        if not self.access_key_id or not self.secret_access_key:
            raise MissingCredential("Blob storage credentials are not set")
        if not data:
            raise EmptyPayload("File buffer is empty", error=original_name)

        key = build_object_name(original_name, prefix)
        content_type = mimetypes.guess_type(original_name)[0] or "application/octet-stream"
        logger.info("Uploading blob %s (%d bytes) as %s", original_name, len(data), key)
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                ACL="public-read",
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("Blob upload failed for %s: %s", original_name, exc)
            raise UploadFailed("Failed to upload file", error=str(exc)) from exc
        return self.url_for(key)

    def delete(self, url: str) -> None:
        """Best-effort; failures are logged and never raised."""
        if not url:
            return
        key = self.key_for(url)
        try:
            self._client.delete_object(Bucket=self.bucket, Key=key)
            logger.info("Deleted blob %s", key)
        except (BotoCoreError, ClientError) as exc:
            logger.warning("Blob delete failed for %s: %s", url, exc)


def discard(blobs: BlobStore, urls: Sequence[str]) -> None:
    """Delete blobs uploaded by a request that did not commit; best-effort."""
    if not urls:
        return
    logger.warning("Rolling back %d uploaded blobs", len(urls))
    for url in urls:
        try:
            blobs.delete(url)
        except Exception:
            logger.exception("Compensating delete failed for %s", url)
