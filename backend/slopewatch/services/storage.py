"""Object storage for uploaded images.

Images are written through an ``ObjectStore``: ``put`` stores bytes under a
key and returns the public URL recorded on slopes and comments, ``delete``
removes the object behind such a URL. The S3 store is used whenever a bucket
is configured; otherwise objects land under ``settings.storage_dir`` and are
served from ``settings.public_base_url``.

``put`` failures surface as ``DependencyFailure``. Callers decide whether a
``delete`` failure matters; for image replacement it never does.

Example:
    >>> store = get_object_store(settings)
    >>> url = store.put("slopes/H-1/start/1700000000000_ab.jpg", data, "image/jpeg")
    >>> store.delete(url)
"""

from __future__ import annotations

import logging
import pathlib
import urllib.parse
from typing import TYPE_CHECKING, Protocol

import boto3
from botocore import exceptions as botocore_exceptions

from slopewatch.core import errors

if TYPE_CHECKING:
    from slopewatch.core import config

logger = logging.getLogger(__name__)


class ObjectStore(Protocol):
    """Protocol interface for image object storage."""

    def put(self, key: str, data: bytes, content_type: str) -> str: ...

    def delete(self, url: str) -> None: ...


class LocalObjectStore(ObjectStore):
    """Filesystem-backed store for development and single-host deployments."""

    def __init__(self, root: pathlib.Path, base_url: str) -> None:
        self.root = root
        self.base_url = base_url.rstrip("/")

    def put(self, key: str, data: bytes, content_type: str) -> str:
        target = self._path_for(key)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            raise errors.DependencyFailure("Failed to store image") from exc
        return f"{self.base_url}/{key}"

    def delete(self, url: str) -> None:
        prefix = f"{self.base_url}/"
        if not url.startswith(prefix):
            logger.warning("Not a local object URL, skipping delete: %s", url)
            return
        try:
            self._path_for(url[len(prefix):]).unlink(missing_ok=True)
        except OSError as exc:
            raise errors.DependencyFailure("Failed to delete image") from exc

    def _path_for(self, key: str) -> pathlib.Path:
        root = self.root.resolve()
        target = (root / key).resolve()
        if not target.is_relative_to(root):
            raise errors.ValidationFailure("Invalid object key")
        return target


class S3ObjectStore(ObjectStore):
    """Amazon S3 store; keys are placed under the configured prefix."""

    def __init__(
        self,
        bucket: str,
        *,
        region: str | None = None,
        prefix: str = "",
        client: object | None = None,
    ) -> None:
        self.bucket = bucket
        self.region = region
        self.prefix = prefix.strip("/")
        self.client = client or boto3.client("s3", region_name=region)

    def put(self, key: str, data: bytes, content_type: str) -> str:
        full_key = self._full_key(key)
        try:
            self.client.put_object(  # type: ignore[attr-defined]
                Bucket=self.bucket,
                Key=full_key,
                Body=data,
                ContentType=content_type,
            )
        except (botocore_exceptions.BotoCoreError, botocore_exceptions.ClientError) as exc:
            logger.exception("S3 upload failed for key=%s", full_key)
            raise errors.DependencyFailure("Failed to store image") from exc
        return self._url_for(full_key)

    def delete(self, url: str) -> None:
        full_key = self._key_from_url(url)
        if full_key is None:
            logger.warning("Not an object URL of this bucket: %s", url)
            return
        try:
            self.client.delete_object(  # type: ignore[attr-defined]
                Bucket=self.bucket,
                Key=full_key,
            )
        except (botocore_exceptions.BotoCoreError, botocore_exceptions.ClientError) as exc:
            raise errors.DependencyFailure("Failed to delete image") from exc

    def _full_key(self, key: str) -> str:
        key = key.lstrip("/")
        return f"{self.prefix}/{key}" if self.prefix else key

    def _host(self) -> str:
        if self.region:
            return f"{self.bucket}.s3.{self.region}.amazonaws.com"
        return f"{self.bucket}.s3.amazonaws.com"

    def _url_for(self, full_key: str) -> str:
        return f"https://{self._host()}/{urllib.parse.quote(full_key)}"

    def _key_from_url(self, url: str) -> str | None:
        parsed = urllib.parse.urlparse(url)
        if parsed.netloc != self._host():
            return None
        return urllib.parse.unquote(parsed.path.lstrip("/")) or None


def get_object_store(settings: config.Settings) -> ObjectStore:
    """Factory function to create the configured object store.

    Args:
        settings: Application settings with S3 and local storage options.

    Returns:
        S3ObjectStore when a bucket is configured, else LocalObjectStore.
    """
    if settings.s3_bucket:
        return S3ObjectStore(
            settings.s3_bucket,
            region=settings.s3_region,
            prefix=settings.s3_prefix,
        )
    return LocalObjectStore(settings.storage_dir, settings.public_base_url)
