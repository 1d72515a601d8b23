"""Registration and session endpoints.

Example:
    Register, then log in once an administrator has approved the account:
        >>> client.post("/api/auth/register", json={
        ...     "name": "Kim", "phone": "0100000001",
        ...     "organization": "A", "password": "pw1",
        ... })
        >>> response = client.post("/api/auth/login", json={
        ...     "phone": "0100000001", "password": "pw1",
        ... })
        >>> refresh_token = response.json()["refresh_token"]

    Exchange the refresh token for a new pair:
        >>> client.post("/api/auth/refresh", json={"refresh_token": refresh_token})
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import fastapi

from slopewatch.api import deps
from slopewatch.services import accounts, commands, tokens

if TYPE_CHECKING:
    from slopewatch.db import models as db_models

router = fastapi.APIRouter(prefix="/api/auth", tags=["auth"])


def _session_body(
    pair: tokens.SessionPair,
    user: db_models.User,
    message: str,
) -> dict[str, Any]:
    return {
        "success": True,
        "message": message,
        "access_token": pair.access_token,
        "refresh_token": pair.refresh_token,
        "user": accounts.public_user(user),
    }


@router.post("/register", status_code=201)
def register(
    command: commands.RegisterCommand,
    actor: tokens.AccessClaims | None = fastapi.Depends(deps.optional_actor),  # noqa: B008
    service: accounts.AccountService = fastapi.Depends(  # noqa: B008
        deps.get_account_service,
    ),
) -> dict[str, Any]:
    """Create an account that waits for administrator approval.

    The ``is_admin`` flag is only honoured when the request carries an
    administrator's access token.

    Returns:
        The created account (without password hash).
    """
    user = service.register(
        command,
        allow_admin=actor is not None and actor.is_admin,
    )
    return {
        "success": True,
        "message": "Registration complete",
        "user": accounts.public_user(user),
    }


@router.post("/login")
def login(
    command: commands.LoginCommand,
    service: tokens.TokenService = fastapi.Depends(deps.get_token_service),  # noqa: B008
) -> dict[str, Any]:
    """Log in with phone number and password.

    Returns:
        Access and refresh tokens plus the account.

    Raises:
        ServiceError: 400 on missing fields, 401 on bad credentials, 403
            when the account is pending approval.
    """
    pair, user = service.issue_session(command.phone, command.password)
    return _session_body(pair, user, "Login successful")


@router.post("/refresh")
def refresh(
    command: commands.RefreshCommand,
    service: tokens.TokenService = fastapi.Depends(deps.get_token_service),  # noqa: B008
) -> dict[str, Any]:
    """Rotate a refresh token; the one sent is invalid afterwards."""
    pair, user = service.rotate_refresh(command.refresh_token)
    return _session_body(pair, user, "Token refreshed")


@router.post("/logout")
def logout(
    command: commands.RefreshCommand,
    service: tokens.TokenService = fastapi.Depends(deps.get_token_service),  # noqa: B008
) -> dict[str, Any]:
    """Revoke a refresh token. Succeeds for unknown tokens too."""
    service.revoke_session(command.refresh_token)
    return {"success": True, "message": "Logged out"}
