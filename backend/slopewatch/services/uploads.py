"""Upload acceptance: validate an incoming file and put it in the object store.

This is the first half of every image-changing operation. It knows nothing
about slopes or comments; it turns an incoming file into a stored object URL
(or a ``ValidationFailure``), and the domain services then record that URL.

Object keys look like ``<prefix>/<epoch millis>_<uuid hex><ext>``.
"""

from __future__ import annotations

import dataclasses
import logging
import mimetypes
import pathlib
import uuid
from typing import TYPE_CHECKING, BinaryIO

from slopewatch.core import errors
from slopewatch.db import models as db_models

if TYPE_CHECKING:
    import datetime
    from collections.abc import Callable, Collection

    from slopewatch.services import storage

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024


@dataclasses.dataclass
class IncomingFile:
    """A file as received from the client, before any validation."""

    filename: str | None
    content_type: str | None
    stream: BinaryIO


@dataclasses.dataclass
class AcceptedUpload:
    url: str
    key: str
    size: int
    content_type: str


class UploadAcceptor:
    """Validates incoming files and stores them.

    Args:
        object_store: Destination for accepted files.
        clock: Source of the timestamp embedded in object keys.
    """

    def __init__(
        self,
        object_store: storage.ObjectStore,
        clock: Callable[[], datetime.datetime] = db_models.utcnow,
    ) -> None:
        self.object_store = object_store
        self.clock = clock

    def accept(
        self,
        incoming: IncomingFile,
        key_prefix: str,
        *,
        max_size: int,
        allowed_types: Collection[str] | None = None,
    ) -> AcceptedUpload:
        """Validate ``incoming`` and put it in the object store.

        Args:
            incoming: File received from the client.
            key_prefix: Key prefix, e.g. ``slopes/H-1/start``.
            max_size: Maximum size in bytes.
            allowed_types: Accepted content types; any ``image/*`` type
                when omitted.

        Returns:
            The stored object's URL and key.

        Raises:
            ValidationFailure: If the type is not accepted or the file is
                larger than ``max_size``.
            DependencyFailure: If the object store rejects the write.
        """
        content_type = (incoming.content_type or "").lower()
        if allowed_types is None:
            type_ok = content_type.startswith("image/")
        else:
            type_ok = content_type in allowed_types
        if not type_ok:
            raise errors.ValidationFailure(
                "Only image files can be uploaded",
                details={
                    "filename": incoming.filename,
                    "content_type": content_type or None,
                },
            )

        data = self._read_limited(incoming, max_size)
        key = f"{key_prefix.strip('/')}/{self._object_name(incoming, content_type)}"
        url = self.object_store.put(key, data, content_type)
        logger.info("Stored upload %s (%d bytes)", key, len(data))
        return AcceptedUpload(
            url=url,
            key=key,
            size=len(data),
            content_type=content_type,
        )

    def _read_limited(self, incoming: IncomingFile, max_size: int) -> bytes:
        chunks: list[bytes] = []
        size = 0
        for chunk in iter(lambda: incoming.stream.read(_CHUNK_SIZE), b""):
            size += len(chunk)
            if size > max_size:
                raise errors.ValidationFailure(
                    "Upload too large",
                    details={
                        "filename": incoming.filename,
                        "max_size_bytes": max_size,
                    },
                )
            chunks.append(chunk)
        return b"".join(chunks)

    def _object_name(self, incoming: IncomingFile, content_type: str) -> str:
        suffix = pathlib.PurePath(incoming.filename or "").suffix.lower()
        if not suffix:
            suffix = mimetypes.guess_extension(content_type) or ""
        millis = int(self.clock().timestamp() * 1000)
        return f"{millis}_{uuid.uuid4().hex}{suffix}"
