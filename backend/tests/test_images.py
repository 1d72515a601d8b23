"""Tests for slope photo management.

Covers slot uploads and replacement, deletions, shadow-store mirroring,
best-effort removal of replaced objects, and rejection of bad uploads
before the slope is touched.

See Also:
    - backend/slopewatch/services/images.py
"""

from __future__ import annotations

import datetime
import io
from typing import TYPE_CHECKING

import pytest

from slopewatch.core import config, errors
from slopewatch.db import models as db_models
from slopewatch.services import backups, images, uploads

if TYPE_CHECKING:
    from conftest import FakeObjectStore

    from slopewatch.db import stores as db_stores

T0 = datetime.datetime(2024, 3, 1, tzinfo=datetime.UTC)


def _jpeg(data: bytes = b"jpeg", content_type: str = "image/jpeg") -> uploads.IncomingFile:
    return uploads.IncomingFile("photo.jpg", content_type, io.BytesIO(data))


@pytest.fixture
def service(
    bundle: db_stores.Stores,
    settings: config.Settings,
    object_store: FakeObjectStore,
) -> images.SlopeImageService:
    bundle.slopes.add(
        db_models.Slope(
            id="s1",
            management_no="4211-001",
            name="Hillside",
            history=db_models.InspectionHistory(history_number="H-1"),
        ),
    )
    backup_service = backups.ImageBackupService(bundle, clock=lambda: T0)
    return images.SlopeImageService(
        bundle,
        settings,
        object_store,
        backup_service,
        clock=lambda: T0,
    )


def test_upload_fills_slots_and_backs_them_up(
    bundle: db_stores.Stores,
    service: images.SlopeImageService,
    object_store: FakeObjectStore,
) -> None:
    """Test that uploads are stored, recorded and shadowed."""
    summary = service.update_images(
        "H-1",
        {"start": _jpeg(), "end": _jpeg(b"end")},
    )

    assert summary.updated == ["start", "end"]
    assert summary.total_images == 2
    slope = bundle.slopes.get_by_history_number("H-1")
    assert slope is not None
    assert slope.images.start is not None
    assert object_store.objects[slope.images.start.url] == b"jpeg"
    backup = bundle.slope_backups.get("H-1")
    assert backup is not None
    assert backup.images.start == slope.images.start
    assert backup.images.end == slope.images.end


def test_replacing_a_slot_discards_the_old_object(
    bundle: db_stores.Stores,
    service: images.SlopeImageService,
    object_store: FakeObjectStore,
) -> None:
    """Test that the previous object is removed after the save."""
    first = service.update_images("H-1", {"start": _jpeg(b"one")})
    old_url = first.images.start.url  # type: ignore[union-attr]

    second = service.update_images("H-1", {"start": _jpeg(b"two")})

    assert object_store.deleted == [old_url]
    assert second.images.start is not None
    assert second.images.start.url != old_url
    backup = bundle.slope_backups.get("H-1")
    assert backup is not None
    assert backup.images.start == second.images.start


def test_delete_slots(
    bundle: db_stores.Stores,
    service: images.SlopeImageService,
    object_store: FakeObjectStore,
) -> None:
    """Test clearing slots in the slope and in the shadow store."""
    service.update_images("H-1", {"overview": _jpeg()})
    summary = service.update_images("H-1", {}, delete_slots=["overview", "end"])

    assert summary.deleted == ["overview"]
    assert summary.images.overview is None
    assert len(object_store.deleted) == 1
    backup = bundle.slope_backups.get("H-1")
    assert backup is not None
    assert backup.images.overview is None


def test_unknown_delete_slot_is_reported(
    service: images.SlopeImageService,
) -> None:
    """Test that a bad slot name to delete does not fail the request."""
    summary = service.update_images("H-1", {}, delete_slots=["roof"])
    body = summary.to_dict()
    assert body["summary"] == {"updated": 0, "deleted": 0, "errors": 1}
    assert "roof" in body["details"]["errors"][0]


def test_unknown_upload_slot_is_rejected(
    service: images.SlopeImageService,
    object_store: FakeObjectStore,
) -> None:
    """Test that files for unknown slots fail before anything is stored."""
    with pytest.raises(errors.ValidationFailure):
        service.update_images("H-1", {"roof": _jpeg()})
    assert object_store.objects == {}


def test_non_image_upload_leaves_slope_untouched(
    bundle: db_stores.Stores,
    service: images.SlopeImageService,
    object_store: FakeObjectStore,
) -> None:
    """Test that one rejected file aborts the request and cleans up."""
    with pytest.raises(errors.ValidationFailure):
        service.update_images(
            "H-1",
            {"start": _jpeg(), "end": _jpeg(b"%PDF", "application/pdf")},
        )

    slope = bundle.slopes.get_by_history_number("H-1")
    assert slope is not None
    assert slope.images.filled() == {}
    assert object_store.objects == {}
    assert bundle.slope_backups.get("H-1") is None


def test_failed_object_delete_does_not_fail_replacement(
    service: images.SlopeImageService,
    object_store: FakeObjectStore,
) -> None:
    """Test that removal of the old object is best effort."""
    service.update_images("H-1", {"start": _jpeg(b"one")})
    object_store.fail_deletes = True

    summary = service.update_images("H-1", {"start": _jpeg(b"two")})

    assert summary.updated == ["start"]
    assert summary.images.start is not None
    assert object_store.objects[summary.images.start.url] == b"two"


def test_missing_slope(service: images.SlopeImageService) -> None:
    """Test the not-found case."""
    with pytest.raises(errors.NotFoundFailure):
        service.update_images("H-404", {"start": _jpeg()})


def test_object_store_failure_is_a_dependency_failure(
    service: images.SlopeImageService,
    object_store: FakeObjectStore,
) -> None:
    """Test that a failed put surfaces to the caller."""
    object_store.fail_puts = True
    with pytest.raises(errors.DependencyFailure):
        service.update_images("H-1", {"start": _jpeg()})
