"""Slope photo management for the four fixed slots.

An image update runs in two steps. First every incoming file goes through
upload acceptance (type and size checks, then a put to the object store),
which either yields URLs or fails the whole request before the slope is
touched. Then the slope is updated with those URLs: requested deletions are
applied first, uploads fill or replace their slots, and the slope is saved
once.

Only after the save are replaced or deleted objects removed from the object
store and the shadow store brought up to date; both are best effort.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING, Any

from slopewatch.core import errors
from slopewatch.db import models as db_models
from slopewatch.services import uploads

if TYPE_CHECKING:
    import datetime
    from collections.abc import Callable, Iterable, Mapping

    from slopewatch.core import config
    from slopewatch.db import stores as db_stores
    from slopewatch.services import backups, storage

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class ImageUpdateSummary:
    history_number: str
    updated: list[str]
    deleted: list[str]
    errors: list[str]
    images: db_models.SlopeImages

    @property
    def total_images(self) -> int:
        return len(self.images.filled())

    def to_dict(self) -> dict[str, Any]:
        return {
            "history_number": self.history_number,
            "summary": {
                "updated": len(self.updated),
                "deleted": len(self.deleted),
                "errors": len(self.errors),
            },
            "details": {
                "updated_slots": self.updated,
                "deleted_slots": self.deleted,
                "errors": self.errors,
            },
            "images": dataclasses.asdict(self.images),
            "total_images": self.total_images,
        }


def _is_slot(name: str) -> bool:
    return name in db_models.SLOTS


class SlopeImageService:
    """Adds, replaces and deletes the photos of a slope."""

    def __init__(
        self,
        stores: db_stores.Stores,
        settings: config.Settings,
        object_store: storage.ObjectStore,
        backup_service: backups.ImageBackupService,
        clock: Callable[[], datetime.datetime] = db_models.utcnow,
    ) -> None:
        self.slopes = stores.slopes
        self.settings = settings
        self.object_store = object_store
        self.backups = backup_service
        self.acceptor = uploads.UploadAcceptor(object_store, clock)
        self.clock = clock

    def update_images(
        self,
        history_number: str,
        files: Mapping[str, uploads.IncomingFile],
        delete_slots: Iterable[str] = (),
    ) -> ImageUpdateSummary:
        """Apply slot deletions and uploads to one slope.

        Args:
            history_number: History number of the slope.
            files: Incoming files keyed by slot name.
            delete_slots: Slots to clear. Unknown names are reported in
                the summary's error list rather than failing the request.

        Returns:
            What changed, and the slope's images after the update.

        Raises:
            NotFoundFailure: If no slope has this history number.
            ValidationFailure: If a file targets an unknown slot, is not an
                image, or is too large.
            DependencyFailure: If storing a file or saving the slope fails.
        """
        slope = self.slopes.get_by_history_number(history_number)
        if slope is None:
            raise errors.NotFoundFailure(
                f"No slope with history number {history_number}",
            )

        unknown = sorted(name for name in files if not _is_slot(name))
        if unknown:
            raise errors.ValidationFailure(
                "Unknown image slot",
                details={"slots": unknown, "allowed": list(db_models.SLOTS)},
            )

        accepted = self._accept_all(history_number, files)

        updated: list[str] = []
        deleted: list[str] = []
        problems: list[str] = []
        discarded: list[str] = []
        backup_writes: list[tuple[db_models.SlotName, db_models.ImageRef | None]] = []

        for name in dict.fromkeys(delete_slots):
            if not _is_slot(name):
                problems.append(f"Unknown slot to delete: {name}")
                continue
            slot: db_models.SlotName = name  # type: ignore[assignment]
            existing = slope.images.get(slot)
            if existing is None or not existing.url:
                continue
            discarded.append(existing.url)
            slope.images.set(slot, None)
            backup_writes.append((slot, None))
            deleted.append(slot)

        now = self.clock()
        for slot, upload in accepted.items():
            existing = slope.images.get(slot)
            if existing is not None and existing.url:
                discarded.append(existing.url)
            image = db_models.ImageRef(url=upload.url, created_at=now)
            slope.images.set(slot, image)
            backup_writes.append((slot, image))
            updated.append(slot)

        try:
            self.slopes.update(slope)
        except errors.ServiceError:
            for upload in accepted.values():
                self._discard(upload.url)
            raise

        for url in discarded:
            self._discard(url)
        for slot, image in backup_writes:
            if image is None:
                self.backups.delete_slope_image(history_number, slot)
            else:
                self.backups.upsert_slope_image(history_number, slot, image)

        logger.info(
            "Images of slope %s: %d updated, %d deleted",
            history_number,
            len(updated),
            len(deleted),
        )
        return ImageUpdateSummary(
            history_number=history_number,
            updated=updated,
            deleted=deleted,
            errors=problems,
            images=slope.images,
        )

    def _accept_all(
        self,
        history_number: str,
        files: Mapping[str, uploads.IncomingFile],
    ) -> dict[db_models.SlotName, uploads.AcceptedUpload]:
        accepted: dict[db_models.SlotName, uploads.AcceptedUpload] = {}
        try:
            for slot in db_models.SLOTS:
                if slot not in files:
                    continue
                accepted[slot] = self.acceptor.accept(
                    files[slot],
                    f"slopes/{history_number}/{slot}",
                    max_size=self.settings.max_upload_size_bytes,
                )
        except errors.ServiceError:
            for upload in accepted.values():
                self._discard(upload.url)
            raise
        return accepted

    def _discard(self, url: str) -> None:
        try:
            self.object_store.delete(url)
        except Exception:
            logger.exception("Failed to delete stored image %s", url)
