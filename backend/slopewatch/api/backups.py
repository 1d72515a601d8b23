"""Administrative image restore endpoint."""

from __future__ import annotations

import dataclasses
from typing import Any

import fastapi

from slopewatch.api import deps
from slopewatch.core import errors
from slopewatch.services import backups, tokens

router = fastapi.APIRouter(prefix="/api/backups", tags=["backups"])


@router.post("/restore")
def restore_images(
    actor: tokens.AccessClaims = fastapi.Depends(deps.current_actor),  # noqa: B008
    service: backups.ImageBackupService = fastapi.Depends(  # noqa: B008
        deps.get_backup_service,
    ),
) -> dict[str, Any]:
    """Refill missing slope and comment images from the shadow stores.

    Runs synchronously. Failures for single owners are reported in
    ``errors`` and do not stop the pass.

    Returns:
        The combined counts, plus the counts per owner kind under
        ``slopes`` and ``comments``.

    Example:
        >>> client.post("/api/backups/restore", headers=admin_auth).json()
        >>> # {"success": true, "data": {"total": 3, "found": 2,
        >>> #   "modified": 1, "restored_images": 1, "orphaned": ["H-9"],
        >>> #   "errors": [], "slopes": {...}, "comments": {...}}}
    """
    if not actor.is_admin:
        raise errors.forbidden("Administrator privileges required")
    summary = service.restore_all()
    return {
        "success": True,
        "data": {
            **dataclasses.asdict(summary.combined),
            "slopes": dataclasses.asdict(summary.slopes),
            "comments": dataclasses.asdict(summary.comments),
        },
    }
