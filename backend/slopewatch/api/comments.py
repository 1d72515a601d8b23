"""Comment endpoints (bearer token required).

Comments are posted as multipart forms: ``content`` plus up to five
``images``. Edits send ``keep_image_urls`` for the attached images to keep.
"""

from __future__ import annotations

from typing import Any

import fastapi

from slopewatch.api import deps
from slopewatch.api.images import to_incoming
from slopewatch.services import comments, tokens

router = fastapi.APIRouter(prefix="/api", tags=["comments"])


@router.get("/slopes/history/{history_number}/comments")
def list_comments(
    history_number: str,
    _actor: tokens.AccessClaims = fastapi.Depends(deps.current_actor),  # noqa: B008
    service: comments.CommentService = fastapi.Depends(  # noqa: B008
        deps.get_comment_service,
    ),
) -> dict[str, Any]:
    """Comments on a slope, newest first."""
    return {"success": True, "data": service.list_comments(history_number)}


@router.post("/slopes/history/{history_number}/comments", status_code=201)
def add_comment(
    history_number: str,
    content: str | None = fastapi.Form(None),  # noqa: B008
    images: list[fastapi.UploadFile] | None = fastapi.File(None),  # noqa: B008
    actor: tokens.AccessClaims = fastapi.Depends(deps.current_actor),  # noqa: B008
    service: comments.CommentService = fastapi.Depends(  # noqa: B008
        deps.get_comment_service,
    ),
) -> dict[str, Any]:
    """Post a comment; images must be JPEG, PNG or GIF up to 5 MB each."""
    comment = service.add_comment(
        actor,
        history_number,
        content,
        [to_incoming(file) for file in images or []],
    )
    return {"success": True, "data": comment}


@router.put("/comments/{comment_id}")
def update_comment(
    comment_id: str,
    content: str | None = fastapi.Form(None),  # noqa: B008
    keep_image_urls: list[str] = fastapi.Form([]),  # noqa: B008
    images: list[fastapi.UploadFile] | None = fastapi.File(None),  # noqa: B008
    actor: tokens.AccessClaims = fastapi.Depends(deps.current_actor),  # noqa: B008
    service: comments.CommentService = fastapi.Depends(  # noqa: B008
        deps.get_comment_service,
    ),
) -> dict[str, Any]:
    """Edit a comment's text and images (author only)."""
    comment = service.update_comment(
        actor,
        comment_id,
        content,
        keep_image_urls,
        [to_incoming(file) for file in images or []],
    )
    return {"success": True, "data": comment}


@router.delete("/comments/{comment_id}")
def delete_comment(
    comment_id: str,
    actor: tokens.AccessClaims = fastapi.Depends(deps.current_actor),  # noqa: B008
    service: comments.CommentService = fastapi.Depends(  # noqa: B008
        deps.get_comment_service,
    ),
) -> dict[str, Any]:
    """Delete a comment (author or administrator)."""
    service.delete_comment(actor, comment_id)
    return {"success": True, "message": "Comment deleted"}
