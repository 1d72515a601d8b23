"""Integration test for the slope photo and image restore flow.

This module wires the services together the way the API does, against
in-memory repositories and an in-memory object store, and checks that:
    - A registered slope gets its derived start point,
    - Photos uploaded to slots are recorded on the slope and shadowed,
    - Comment images are shadowed as well,
    - References lost from the primary records come back on restore,
    - A second restore changes nothing.

See Also:
    - backend/slopewatch/services/images.py
    - backend/slopewatch/services/backups.py
"""

from __future__ import annotations

import io
from typing import TYPE_CHECKING

from slopewatch.db import models as db_models
from slopewatch.services import (
    backups,
    comments,
    commands,
    images,
    slopes,
    tokens,
    uploads,
)

if TYPE_CHECKING:
    from conftest import FakeObjectStore

    from slopewatch.core import config
    from slopewatch.db import stores as db_stores


def _file(name: str, content_type: str = "image/jpeg") -> uploads.IncomingFile:
    return uploads.IncomingFile(name, content_type, io.BytesIO(name.encode()))


def test_images_survive_primary_record_loss(
    bundle: db_stores.Stores,
    settings: config.Settings,
    object_store: FakeObjectStore,
) -> None:
    """Test upload, shadowing, loss and restore of slope and comment images."""
    backup_service = backups.ImageBackupService(bundle)
    slope_service = slopes.SlopeService(bundle, settings)
    image_service = images.SlopeImageService(
        bundle,
        settings,
        object_store,
        backup_service,
    )
    comment_service = comments.CommentService(
        bundle,
        settings,
        object_store,
        backup_service,
    )
    actor = tokens.AccessClaims("u1", "0100000001", "Kim", False)

    slope = slope_service.create_slope(
        commands.SlopeCreateCommand.model_validate(
            {
                "management_no": "4211-001",
                "name": "Hillside 3",
                "history_number": "H-0001",
                "location": {
                    "start": {
                        "latitude": {"degree": 37, "minute": 52, "second": 12},
                        "longitude": {"degree": 127, "minute": 43, "second": 48},
                    },
                },
            },
        ),
    )
    assert slope.location.start.point is not None
    assert slope.location.start.point.latitude == 37 + 52 / 60 + 12 / 3600

    image_service.update_images(
        "H-0001",
        {"start": _file("start.jpg"), "end": _file("end.jpg")},
    )
    comment = comment_service.add_comment(
        actor,
        "H-0001",
        "Cracks along the retaining wall",
        [_file("crack.png", "image/png")],
    )

    damaged = bundle.slopes.get_by_history_number("H-0001")
    assert damaged is not None
    damaged.images = db_models.SlopeImages()
    bundle.slopes.update(damaged)
    stripped = bundle.comments.get(comment.id)
    assert stripped is not None
    stripped.image_urls = []
    bundle.comments.update(stripped)

    first = backup_service.restore_all()
    assert first.slopes.restored_images == 2
    assert first.comments.restored_images == 1
    assert first.combined.errors == []

    repaired = bundle.slopes.get_by_history_number("H-0001")
    assert repaired is not None
    assert set(repaired.images.filled()) == {"start", "end"}
    for image in repaired.images.filled().values():
        assert image.url in object_store.objects
    restored_comment = bundle.comments.get(comment.id)
    assert restored_comment is not None
    assert restored_comment.image_urls == comment.image_urls

    second = backup_service.restore_all()
    assert second.combined.modified == 0
    assert second.combined.restored_images == 0
