"""Tests for the image backup reconciler.

Covers best-effort shadow writes, gap-only restoration of slope slots and
comment image lists, orphan reporting, idempotence of restore_all, and
isolation of per-owner failures.

See Also:
    - backend/slopewatch/services/backups.py
"""

from __future__ import annotations

import datetime
import logging
from typing import TYPE_CHECKING

import pytest

from slopewatch.core import errors
from slopewatch.db import models as db_models
from slopewatch.db import slopes as db_slopes
from slopewatch.services import backups

if TYPE_CHECKING:
    from slopewatch.db import stores as db_stores

T0 = datetime.datetime(2024, 3, 1, tzinfo=datetime.UTC)


def _slope(history_number: str) -> db_models.Slope:
    return db_models.Slope(
        id=f"id-{history_number}",
        management_no="4211-001",
        name="Hillside",
        history=db_models.InspectionHistory(history_number=history_number),
    )


def _image(name: str) -> db_models.ImageRef:
    return db_models.ImageRef(url=f"https://objects.test/{name}", created_at=T0)


def _comment(comment_id: str, urls: list[str]) -> db_models.Comment:
    return db_models.Comment(
        id=comment_id,
        history_number="H-1",
        user_id="u1",
        content="Cracks near the drain",
        image_urls=urls,
    )


@pytest.fixture
def service(bundle: db_stores.Stores) -> backups.ImageBackupService:
    return backups.ImageBackupService(bundle, clock=lambda: T0)


def test_restore_fills_emptied_slot(
    bundle: db_stores.Stores,
    service: backups.ImageBackupService,
) -> None:
    """Test that a lost slot reference comes back from the shadow."""
    slope = _slope("H-1")
    slope.images.start = _image("s.jpg")
    bundle.slopes.add(slope)
    service.upsert_slope_image("H-1", "start", _image("s.jpg"))

    slope.images.start = None
    bundle.slopes.update(slope)

    report = service.restore_all().slopes
    assert (report.total, report.found, report.modified) == (1, 1, 1)
    assert report.restored_images == 1
    restored = bundle.slopes.get_by_history_number("H-1")
    assert restored is not None
    assert restored.images.start == _image("s.jpg")


def test_restore_never_replaces_present_reference(
    bundle: db_stores.Stores,
    service: backups.ImageBackupService,
) -> None:
    """Test that a slot already holding an image is left as is."""
    slope = _slope("H-1")
    slope.images.start = _image("new.jpg")
    bundle.slopes.add(slope)
    bundle.slope_backups.upsert_slot("H-1", "start", _image("old.jpg"), T0)

    report = service.restore_all().combined
    assert report.modified == 0
    assert report.restored_images == 0
    current = bundle.slopes.get_by_history_number("H-1")
    assert current is not None
    assert current.images.start == _image("new.jpg")


def test_restore_treats_blank_url_as_empty(
    bundle: db_stores.Stores,
    service: backups.ImageBackupService,
) -> None:
    """Test that a slot with an empty URL is refilled."""
    slope = _slope("H-1")
    slope.images.end = db_models.ImageRef(url="", created_at=T0)
    bundle.slopes.add(slope)
    service.upsert_slope_image("H-1", "end", _image("e.jpg"))

    assert service.restore_all().slopes.restored_images == 1


def test_restore_is_idempotent(
    bundle: db_stores.Stores,
    service: backups.ImageBackupService,
) -> None:
    """Test that a second pass finds nothing left to do."""
    bundle.slopes.add(_slope("H-1"))
    service.upsert_slope_image("H-1", "start", _image("s.jpg"))
    service.upsert_slope_image("H-1", "overview", _image("o.jpg"))
    bundle.comments.add(_comment("c1", []))
    service.upsert_comment_images("c1", "H-1", ["https://objects.test/c.jpg"])

    first = service.restore_all().combined
    second = service.restore_all().combined

    assert first.restored_images == 3
    assert first.modified == 2
    assert second.restored_images == 0
    assert second.modified == 0
    assert second.found == 2


def test_deliberately_cleared_slot_stays_empty(
    bundle: db_stores.Stores,
    service: backups.ImageBackupService,
) -> None:
    """Test that clearing the shadow slot prevents resurrection."""
    bundle.slopes.add(_slope("H-1"))
    service.upsert_slope_image("H-1", "start", _image("s.jpg"))
    service.delete_slope_image("H-1", "start")

    assert service.restore_all().slopes.restored_images == 0


def test_missing_owner_is_reported_as_orphan(
    bundle: db_stores.Stores,
    service: backups.ImageBackupService,
) -> None:
    """Test that shadows without a primary record are counted, not fixed."""
    service.upsert_slope_image("H-gone", "start", _image("s.jpg"))
    service.upsert_comment_images("c-gone", "H-gone", ["https://x/c.jpg"])

    summary = service.restore_all()
    assert summary.slopes.orphaned == ["H-gone"]
    assert summary.comments.orphaned == ["c-gone"]
    assert summary.combined.total == 2
    assert summary.combined.found == 0


def test_comment_restore_appends_missing_urls(
    bundle: db_stores.Stores,
    service: backups.ImageBackupService,
) -> None:
    """Test that shadowed URLs missing from a comment are appended."""
    bundle.comments.add(_comment("c1", ["https://x/a.jpg"]))
    service.upsert_comment_images(
        "c1",
        "H-1",
        ["https://x/a.jpg", "https://x/b.jpg"],
    )

    report = service.restore_comment_images()
    assert report.restored_images == 1
    comment = bundle.comments.get("c1")
    assert comment is not None
    assert comment.image_urls == ["https://x/a.jpg", "https://x/b.jpg"]


class _FlakySlopeRepository(db_slopes.InMemorySlopeRepository):
    """Fails to save one particular slope."""

    def __init__(self, failing: str) -> None:
        super().__init__()
        self.failing = failing

    def update(self, slope: db_models.Slope) -> db_models.Slope:
        if slope.history.history_number == self.failing:
            raise errors.DependencyFailure("Record store unavailable")
        return super().update(slope)


def test_failure_of_one_owner_does_not_stop_others(
    bundle: db_stores.Stores,
) -> None:
    """Test that errors are collected per owner while the pass continues."""
    bundle.slopes = _FlakySlopeRepository(failing="H-1")
    service = backups.ImageBackupService(bundle, clock=lambda: T0)
    for history_number in ("H-1", "H-2"):
        bundle.slopes.add(_slope(history_number))
        service.upsert_slope_image(history_number, "start", _image("s.jpg"))

    report = service.restore_all().slopes

    assert report.errors == ["H-1: Record store unavailable"]
    assert report.modified == 1
    healthy = bundle.slopes.get_by_history_number("H-2")
    assert healthy is not None
    assert healthy.images.start is not None


class _BrokenBackupRepository:
    def upsert(self, *args: object) -> None:
        raise RuntimeError("shadow store down")

    def upsert_slot(self, *args: object) -> None:
        raise RuntimeError("shadow store down")

    def clear_slot(self, *args: object) -> None:
        raise RuntimeError("shadow store down")


def test_shadow_write_failures_are_swallowed(
    bundle: db_stores.Stores,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """Test that backup writes log their failure and return normally."""
    bundle.slope_backups = _BrokenBackupRepository()  # type: ignore[assignment]
    bundle.comment_backups = _BrokenBackupRepository()  # type: ignore[assignment]
    service = backups.ImageBackupService(bundle, clock=lambda: T0)

    with caplog.at_level(logging.ERROR, logger="slopewatch.services.backups"):
        service.upsert_slope_image("H-1", "start", _image("s.jpg"))
        service.delete_slope_image("H-1", "start")
        service.upsert_comment_images("c1", "H-1", [])

    assert len(caplog.records) == 3


def test_report_merge() -> None:
    """Test that combined counts add up and lists concatenate."""
    merged = backups.RestoreReport(1, 1, 1, 2, ["a"], []).merge(
        backups.RestoreReport(2, 1, 0, 0, ["b"], ["c: boom"]),
    )
    assert merged == backups.RestoreReport(3, 2, 1, 2, ["a", "b"], ["c: boom"])


def test_restore_over_empty_store_reports_zeros(
    service: backups.ImageBackupService,
) -> None:
    """Test that restoring with no shadow records changes and reports nothing."""
    summary = service.restore_all()
    for report in (summary.combined, summary.slopes, summary.comments):
        assert report.total == 0
        assert report.found == 0
        assert report.modified == 0
        assert report.restored_images == 0
        assert report.orphaned == []
        assert report.errors == []
