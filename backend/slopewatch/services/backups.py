"""Image backup reconciler.

Every image reference written to a slope slot or a comment is mirrored into
a shadow store. If a primary record later loses a reference (a bad import,
a manual edit gone wrong), ``restore_all`` copies the shadowed reference back.

Shadow writes are best effort: a failure is logged and swallowed, and the
primary write that triggered it goes ahead regardless.

Restoring only fills gaps. A slope slot is restored when it is empty; a
comment gets back the shadowed URLs missing from its list. References the
primary record already has are never replaced. Slots cleared on purpose
are cleared in the shadow as well, so they stay empty.

Example:
    >>> service = ImageBackupService(stores)
    >>> service.upsert_slope_image("H-1", "start", ImageRef(url="https://..."))
    >>> summary = service.restore_all()
    >>> summary.combined.restored_images
    0
"""

from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING

from slopewatch.core import errors
from slopewatch.db import models as db_models

if TYPE_CHECKING:
    import datetime
    from collections.abc import Callable

    from slopewatch.db import stores as db_stores

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class RestoreReport:
    """Outcome of one reconciliation pass.

    Attributes:
        total: Shadow records examined.
        found: Shadow records whose primary record exists.
        modified: Primary records that were changed and saved.
        restored_images: Image references copied back.
        orphaned: Owner keys whose primary record is gone.
        errors: One message per owner that failed to reconcile.
    """

    total: int = 0
    found: int = 0
    modified: int = 0
    restored_images: int = 0
    orphaned: list[str] = dataclasses.field(default_factory=list)
    errors: list[str] = dataclasses.field(default_factory=list)

    def merge(self, other: RestoreReport) -> RestoreReport:
        return RestoreReport(
            total=self.total + other.total,
            found=self.found + other.found,
            modified=self.modified + other.modified,
            restored_images=self.restored_images + other.restored_images,
            orphaned=[*self.orphaned, *other.orphaned],
            errors=[*self.errors, *other.errors],
        )


@dataclasses.dataclass
class RestoreSummary:
    slopes: RestoreReport
    comments: RestoreReport

    @property
    def combined(self) -> RestoreReport:
        return self.slopes.merge(self.comments)


def _failure_message(owner_key: str, exc: Exception) -> str:
    if isinstance(exc, errors.ServiceError):
        return f"{owner_key}: {exc.message}"
    return f"{owner_key}: unexpected error"


class ImageBackupService:
    """Maintains the image shadow stores and restores from them."""

    def __init__(
        self,
        stores: db_stores.Stores,
        clock: Callable[[], datetime.datetime] = db_models.utcnow,
    ) -> None:
        self.slopes = stores.slopes
        self.comments = stores.comments
        self.slope_backups = stores.slope_backups
        self.comment_backups = stores.comment_backups
        self.clock = clock

    def upsert_slope_image(
        self,
        history_number: str,
        slot: db_models.SlotName,
        image: db_models.ImageRef,
    ) -> None:
        """Mirror a slope slot's new image; never raises."""
        try:
            self.slope_backups.upsert_slot(
                history_number,
                slot,
                image,
                self.clock(),
            )
        except Exception:
            logger.exception(
                "Image backup failed for slope %s slot %s",
                history_number,
                slot,
            )

    def delete_slope_image(
        self,
        history_number: str,
        slot: db_models.SlotName,
    ) -> None:
        """Clear a slope slot in the shadow; never raises."""
        try:
            self.slope_backups.clear_slot(history_number, slot, self.clock())
        except Exception:
            logger.exception(
                "Image backup clear failed for slope %s slot %s",
                history_number,
                slot,
            )

    def upsert_comment_images(
        self,
        comment_id: str,
        history_number: str,
        image_urls: list[str],
    ) -> None:
        """Replace a comment's shadowed list; never raises.

        Deleting images from a comment is recorded the same way, by
        passing the list that remains (possibly empty).
        """
        try:
            self.comment_backups.upsert(
                comment_id,
                history_number,
                image_urls,
                self.clock(),
            )
        except Exception:
            logger.exception(
                "Image backup failed for comment %s",
                comment_id,
            )

    def restore_slope_images(self) -> RestoreReport:
        """Refill empty slope slots from the shadow store."""
        report = RestoreReport()
        for backup in self.slope_backups.all():
            report.total += 1
            owner_key = backup.history_number
            try:
                slope = self.slopes.get_by_history_number(owner_key)
                if slope is None:
                    report.orphaned.append(owner_key)
                    continue
                report.found += 1

                restored = 0
                for slot, image in backup.images.filled().items():
                    current = slope.images.get(slot)
                    if current is None or not current.url:
                        slope.images.set(slot, image)
                        restored += 1

                if restored:
                    self.slopes.update(slope)
                    report.modified += 1
                    report.restored_images += restored
                    logger.info(
                        "Restored %d image(s) for slope %s",
                        restored,
                        owner_key,
                    )
            except Exception as exc:
                logger.exception("Restore failed for slope %s", owner_key)
                report.errors.append(_failure_message(owner_key, exc))
        return report

    def restore_comment_images(self) -> RestoreReport:
        """Append shadowed URLs missing from each comment's list."""
        report = RestoreReport()
        for backup in self.comment_backups.all():
            report.total += 1
            owner_key = backup.comment_id
            try:
                comment = self.comments.get(owner_key)
                if comment is None:
                    report.orphaned.append(owner_key)
                    continue
                report.found += 1

                missing = [
                    url
                    for url in backup.image_urls
                    if url and url not in comment.image_urls
                ]
                if missing:
                    comment.image_urls = [*comment.image_urls, *missing]
                    self.comments.update(comment)
                    report.modified += 1
                    report.restored_images += len(missing)
                    logger.info(
                        "Restored %d image(s) for comment %s",
                        len(missing),
                        owner_key,
                    )
            except Exception as exc:
                logger.exception("Restore failed for comment %s", owner_key)
                report.errors.append(_failure_message(owner_key, exc))
        return report

    def restore_all(self) -> RestoreSummary:
        """Run both reconciliation passes, slopes first."""
        summary = RestoreSummary(
            slopes=self.restore_slope_images(),
            comments=self.restore_comment_images(),
        )
        combined = summary.combined
        logger.info(
            "Image restore finished: total=%d found=%d modified=%d "
            "restored=%d orphaned=%d errors=%d",
            combined.total,
            combined.found,
            combined.modified,
            combined.restored_images,
            len(combined.orphaned),
            len(combined.errors),
        )
        return summary
