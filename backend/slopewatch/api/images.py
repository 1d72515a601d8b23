"""Slope photo endpoint.

One multipart request can replace, add and delete photos in the four slots:
file fields are named after the slot they fill (``position``, ``start``,
``overview``, ``end``) and ``delete_slots`` lists slots to clear.

Example:
    >>> client.put(
    ...     "/api/slopes/history/H-0001/images",
    ...     files={"start": ("start.jpg", data, "image/jpeg")},
    ...     data={"delete_slots": ["overview"]},
    ...     headers=auth,
    ... )
"""

from __future__ import annotations

from typing import Any

import fastapi

from slopewatch.api import deps
from slopewatch.services import images, tokens, uploads

router = fastapi.APIRouter(prefix="/api/slopes", tags=["images"])


def to_incoming(file: fastapi.UploadFile) -> uploads.IncomingFile:
    return uploads.IncomingFile(
        filename=file.filename,
        content_type=file.content_type,
        stream=file.file,
    )


@router.put("/history/{history_number}/images")
def update_slope_images(
    history_number: str,
    position: fastapi.UploadFile | None = fastapi.File(None),  # noqa: B008
    start: fastapi.UploadFile | None = fastapi.File(None),  # noqa: B008
    overview: fastapi.UploadFile | None = fastapi.File(None),  # noqa: B008
    end: fastapi.UploadFile | None = fastapi.File(None),  # noqa: B008
    delete_slots: list[str] = fastapi.Form([]),  # noqa: B008
    _actor: tokens.AccessClaims = fastapi.Depends(deps.current_actor),  # noqa: B008
    service: images.SlopeImageService = fastapi.Depends(  # noqa: B008
        deps.get_image_service,
    ),
) -> dict[str, Any]:
    """Add, replace or delete a slope's photos in one request.

    Deletions are applied before uploads. Each upload must be an image of
    at most ``max_upload_size_bytes``.

    Returns:
        Counts and slot names of what changed, any per-slot problems, and
        the slope's images after the update.
    """
    files = {
        slot: to_incoming(file)
        for slot, file in (
            ("position", position),
            ("start", start),
            ("overview", overview),
            ("end", end),
        )
        if file is not None
    }
    summary = service.update_images(
        history_number,
        files,
        [slot for slot in delete_slots if slot],
    )
    return {"success": True, "message": "Images updated", **summary.to_dict()}
