"""User account endpoints (bearer token required)."""

from __future__ import annotations

from typing import Any

import fastapi

from slopewatch.api import deps
from slopewatch.services import accounts, commands, tokens

router = fastapi.APIRouter(prefix="/api/users", tags=["users"])


@router.get("")
def list_users(
    actor: tokens.AccessClaims = fastapi.Depends(deps.current_actor),  # noqa: B008
    service: accounts.AccountService = fastapi.Depends(  # noqa: B008
        deps.get_account_service,
    ),
) -> dict[str, Any]:
    """List every account, oldest first (administrators only)."""
    return {
        "success": True,
        "data": [accounts.public_user(user) for user in service.list_users(actor)],
    }


@router.get("/{user_id}")
def get_user(
    user_id: str,
    actor: tokens.AccessClaims = fastapi.Depends(deps.current_actor),  # noqa: B008
    service: accounts.AccountService = fastapi.Depends(  # noqa: B008
        deps.get_account_service,
    ),
) -> dict[str, Any]:
    user = service.get_user(actor, user_id)
    return {"success": True, "data": accounts.public_user(user)}


@router.put("/{user_id}")
def update_user(
    user_id: str,
    command: commands.UserUpdateCommand,
    actor: tokens.AccessClaims = fastapi.Depends(deps.current_actor),  # noqa: B008
    service: accounts.AccountService = fastapi.Depends(  # noqa: B008
        deps.get_account_service,
    ),
) -> dict[str, Any]:
    """Update profile fields; a password change needs the current password."""
    user = service.update_user(actor, user_id, command)
    return {
        "success": True,
        "message": "Account updated",
        "data": accounts.public_user(user),
    }


@router.delete("/{user_id}")
def delete_user(
    user_id: str,
    actor: tokens.AccessClaims = fastapi.Depends(deps.current_actor),  # noqa: B008
    service: accounts.AccountService = fastapi.Depends(  # noqa: B008
        deps.get_account_service,
    ),
) -> dict[str, Any]:
    service.delete_user(actor, user_id)
    return {"success": True, "message": "Account deleted"}


@router.post("/{user_id}/approve")
def approve_user(
    user_id: str,
    actor: tokens.AccessClaims = fastapi.Depends(deps.current_actor),  # noqa: B008
    service: accounts.AccountService = fastapi.Depends(  # noqa: B008
        deps.get_account_service,
    ),
) -> dict[str, Any]:
    """Approve a pending account (administrators only)."""
    user = service.approve_user(actor, user_id)
    return {"success": True, "data": accounts.public_user(user)}
