"""User account management.

Accounts are identified by phone number. New accounts start unapproved and
cannot log in until an administrator approves them; administrator accounts
are approved on creation. Password hashes never leave this module: use
``public_user`` to build the caller-facing view of an account.

Permission rules: listing and approving accounts is reserved to
administrators; reading, updating and deleting an account is allowed to the
account itself and to administrators.
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Any

from slopewatch.core import errors
from slopewatch.db import models as db_models
from slopewatch.services import passwords

if TYPE_CHECKING:
    from slopewatch.core import config
    from slopewatch.db import stores as db_stores
    from slopewatch.services import commands
    from slopewatch.services.tokens import AccessClaims

logger = logging.getLogger(__name__)

PHONE_TAKEN = "Phone number is already registered"


def public_user(user: db_models.User) -> dict[str, Any]:
    """Caller-facing view of an account, without the password hash."""
    return {
        "id": user.id,
        "name": user.name,
        "phone": user.phone,
        "organization": user.organization,
        "is_admin": user.is_admin,
        "is_approved": user.is_approved,
        "created_at": user.created_at.isoformat(),
    }


def _check_password_length(password: str) -> None:
    if len(password.encode("utf-8")) > passwords.MAX_PASSWORD_BYTES:
        raise errors.ValidationFailure(
            "Password is too long",
            details={"password": "too_long"},
        )


def _require_admin(actor: AccessClaims) -> None:
    if not actor.is_admin:
        raise errors.forbidden("Administrator privileges required")


def _require_self_or_admin(actor: AccessClaims, user_id: str) -> None:
    if actor.user_id != user_id and not actor.is_admin:
        raise errors.forbidden()


class AccountService:
    """Registration, approval and self-service for user accounts."""

    def __init__(
        self,
        stores: db_stores.Stores,
        settings: config.Settings,
    ) -> None:
        self.users = stores.users
        self.tokens = stores.tokens
        self.settings = settings

    def register(
        self,
        command: commands.RegisterCommand,
        *,
        allow_admin: bool = False,
    ) -> db_models.User:
        """Create an account.

        Args:
            command: Registration fields; all four text fields are required.
            allow_admin: Whether ``command.is_admin`` may be honoured. The
                HTTP layer sets it only for authenticated administrators.

        Returns:
            The created user.

        Raises:
            ValidationFailure: If a field is missing or the password is
                too long.
            ConflictFailure: If the phone number is already registered.
        """
        missing = {
            field: "required"
            for field in ("name", "phone", "organization", "password")
            if not getattr(command, field)
        }
        if missing:
            raise errors.ValidationFailure(
                "All fields are required",
                details=missing,
            )
        _check_password_length(command.password)  # type: ignore[arg-type]

        if self.users.get_by_phone(command.phone) is not None:  # type: ignore[arg-type]
            raise errors.ConflictFailure(PHONE_TAKEN)

        is_admin = command.is_admin and allow_admin
        user = db_models.User(
            id=str(uuid.uuid4()),
            name=command.name,  # type: ignore[arg-type]
            phone=command.phone,  # type: ignore[arg-type]
            organization=command.organization,  # type: ignore[arg-type]
            password_hash=passwords.hash_password(
                command.password,  # type: ignore[arg-type]
                self.settings.password_hash_rounds,
            ),
            is_admin=is_admin,
            is_approved=is_admin,
        )
        self.users.add(user)
        logger.info("Registered user %s (admin=%s)", user.id, is_admin)
        return user

    def list_users(self, actor: AccessClaims) -> list[db_models.User]:
        _require_admin(actor)
        return sorted(self.users.all(), key=lambda u: u.created_at)

    def get_user(self, actor: AccessClaims, user_id: str) -> db_models.User:
        _require_self_or_admin(actor, user_id)
        return self._get(user_id)

    def update_user(
        self,
        actor: AccessClaims,
        user_id: str,
        command: commands.UserUpdateCommand,
    ) -> db_models.User:
        """Update profile fields and, optionally, the password.

        Empty fields are left unchanged. Changing the password requires the
        current one.

        Raises:
            AuthFailure: 403 if the actor may not edit this account, 401 if
                the current password does not match.
            NotFoundFailure: If the account does not exist.
            ValidationFailure: If a new password is given without the
                current one.
            ConflictFailure: If the new phone number belongs to another
                account.
        """
        _require_self_or_admin(actor, user_id)
        user = self._get(user_id)

        if command.password:
            if not command.current_password:
                raise errors.ValidationFailure(
                    "Current password is required to change the password",
                    details={"current_password": "required"},
                )
            if not passwords.verify_password(
                command.current_password,
                user.password_hash,
            ):
                raise errors.AuthFailure("Current password does not match")
            _check_password_length(command.password)
            user.password_hash = passwords.hash_password(
                command.password,
                self.settings.password_hash_rounds,
            )

        if command.phone and command.phone != user.phone:
            other = self.users.get_by_phone(command.phone)
            if other is not None and other.id != user.id:
                raise errors.ConflictFailure(PHONE_TAKEN)
            user.phone = command.phone
        if command.name:
            user.name = command.name
        if command.organization:
            user.organization = command.organization

        self.users.update(user)
        logger.info("Updated user %s", user.id)
        return user

    def delete_user(self, actor: AccessClaims, user_id: str) -> None:
        """Delete an account and revoke its refresh tokens."""
        _require_self_or_admin(actor, user_id)
        self._get(user_id)
        revoked = self.tokens.delete_for_user(user_id)
        self.users.delete(user_id)
        logger.info("Deleted user %s (%d session(s) revoked)", user_id, revoked)

    def approve_user(self, actor: AccessClaims, user_id: str) -> db_models.User:
        _require_admin(actor)
        user = self._get(user_id)
        if not user.is_approved:
            user.is_approved = True
            self.users.update(user)
            logger.info("Approved user %s", user.id)
        return user

    def _get(self, user_id: str) -> db_models.User:
        user = self.users.get(user_id)
        if user is None:
            raise errors.NotFoundFailure("User not found")
        return user
