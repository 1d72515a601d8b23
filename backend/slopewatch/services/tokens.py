"""Session issuance, verification, rotation and revocation.

A session is a pair of HS256 JWTs signed with two distinct secrets:

* the access token (15 minutes) carries the user's id, phone, name and
  admin flag and is verified by signature and expiry only;
* the refresh token (7 days) is additionally backed by a record in the
  credential store. It is valid only while that record exists, and every
  successful refresh swaps the record for a new one (rotation on use), so
  a rotated-out token is rejected as not found.

Login checks, in order: both fields present (before any store access), the
user exists, the account is approved, the password matches. Unknown phone
numbers and wrong passwords share one message.

Example:
    >>> service = TokenService(stores, settings)
    >>> pair, user = service.issue_session("0100000001", "pw1")
    >>> service.verify_access(pair.access_token).user_id == user.id
    True
    >>> new_pair, _ = service.rotate_refresh(pair.refresh_token)
"""

from __future__ import annotations

import dataclasses
import datetime
import logging
import uuid
from typing import TYPE_CHECKING, Literal, NamedTuple

import jwt

from slopewatch.core import errors
from slopewatch.db import models as db_models
from slopewatch.services import passwords

if TYPE_CHECKING:
    from collections.abc import Callable

    from slopewatch.core import config
    from slopewatch.db import stores as db_stores

logger = logging.getLogger(__name__)

TokenKind = Literal["access", "refresh"]

INVALID_CREDENTIALS = "Invalid phone number or password"


class AccessClaims(NamedTuple):
    user_id: str
    phone: str
    name: str
    is_admin: bool


@dataclasses.dataclass
class SessionPair:
    access_token: str
    refresh_token: str


class TokenService:
    """Issues and validates session pairs for user accounts."""

    def __init__(
        self,
        stores: db_stores.Stores,
        settings: config.Settings,
        clock: Callable[[], datetime.datetime] = db_models.utcnow,
    ) -> None:
        self.users = stores.users
        self.tokens = stores.tokens
        self.settings = settings
        self.clock = clock

    def issue_session(
        self,
        phone: str | None,
        password: str | None,
    ) -> tuple[SessionPair, db_models.User]:
        """Log a user in and start a fresh session.

        Any refresh records the user already holds are replaced.

        Args:
            phone: Phone number identifying the account.
            password: Plain-text password.

        Returns:
            The new session pair and the authenticated user.

        Raises:
            ValidationFailure: If phone or password is missing.
            AuthFailure: If the credentials are wrong, or (403,
                ``pending_approval``) the account is not approved yet.
            ConfigurationFailure: If a signing secret is not configured.
        """
        missing = {
            field: "required"
            for field, value in (("phone", phone), ("password", password))
            if not value
        }
        if missing:
            raise errors.ValidationFailure(
                "Phone number and password are required",
                details=missing,
            )

        user = self.users.get_by_phone(phone)  # type: ignore[arg-type]
        if user is None:
            logger.info("Login rejected: unknown phone number")
            raise errors.AuthFailure(INVALID_CREDENTIALS)

        if not user.is_approved:
            logger.info("Login rejected: user %s pending approval", user.id)
            raise errors.pending_approval()

        if not passwords.verify_password(password, user.password_hash):  # type: ignore[arg-type]
            logger.info("Login rejected: wrong password for user %s", user.id)
            raise errors.AuthFailure(INVALID_CREDENTIALS)

        pair, record = self._issue(user)
        self.tokens.replace_for_user(record)
        logger.info("Issued session for user %s", user.id)
        return pair, user

    def verify_access(self, access_token: str | None) -> AccessClaims:
        """Validate an access token without touching any store.

        Raises:
            AuthFailure: On a missing, malformed, tampered or expired token.
            ConfigurationFailure: If a signing secret is not configured.
        """
        if not access_token:
            raise errors.AuthFailure("Access token required")

        # Both secrets are required for the service to operate at all.
        self._secret("refresh")

        payload = self._decode(access_token, "access")
        return AccessClaims(
            user_id=str(payload["sub"]),
            phone=str(payload.get("phone", "")),
            name=str(payload.get("name", "")),
            is_admin=bool(payload.get("is_admin", False)),
        )

    def rotate_refresh(
        self,
        refresh_token: str | None,
    ) -> tuple[SessionPair, db_models.User]:
        """Exchange a refresh token for a new session pair.

        Raises:
            ValidationFailure: If no token was supplied.
            NotFoundFailure: If the token has no record (never issued,
                revoked, or already rotated out), or its user is gone.
            AuthFailure: If the record has expired (the record is deleted),
                the signature is invalid, or the user is no longer approved.
            ConfigurationFailure: If a signing secret is not configured.
        """
        if not refresh_token:
            raise errors.ValidationFailure(
                "Refresh token is required",
                details={"refresh_token": "required"},
            )

        record = self.tokens.get(refresh_token)
        if record is None:
            raise errors.NotFoundFailure("Refresh token not found")

        if record.is_expired(self.clock()):
            self.tokens.delete(refresh_token)
            logger.info("Expired refresh token of user %s removed", record.user_id)
            raise errors.AuthFailure(
                "Refresh token has expired",
                code="token_expired",
            )

        payload = self._decode(refresh_token, "refresh")
        if str(payload.get("sub")) != record.user_id:
            raise errors.AuthFailure("Invalid refresh token")

        user = self.users.get(record.user_id)
        if user is None:
            raise errors.NotFoundFailure("User not found")
        if not user.is_approved:
            raise errors.pending_approval()

        pair, new_record = self._issue(user)
        self.tokens.rotate(refresh_token, new_record)
        logger.info("Rotated refresh token for user %s", user.id)
        return pair, user

    def revoke_session(self, refresh_token: str | None) -> None:
        """Delete the token's record; succeeds whether or not it existed."""
        if not refresh_token:
            raise errors.ValidationFailure(
                "Refresh token is required",
                details={"refresh_token": "required"},
            )
        if self.tokens.delete(refresh_token):
            logger.info("Refresh token revoked")

    def _secret(self, kind: TokenKind) -> str:
        secret = (
            self.settings.access_token_secret
            if kind == "access"
            else self.settings.refresh_token_secret
        )
        if not secret:
            logger.error("Signing secret for %s tokens is not configured", kind)
            raise errors.ConfigurationFailure(
                "Token signing is not configured",
            )
        return secret

    def _issue(
        self,
        user: db_models.User,
    ) -> tuple[SessionPair, db_models.RefreshTokenRecord]:
        access_secret = self._secret("access")
        refresh_secret = self._secret("refresh")
        now = self.clock()
        access_expires = now + datetime.timedelta(
            minutes=self.settings.access_token_ttl_minutes,
        )
        refresh_expires = now + datetime.timedelta(
            days=self.settings.refresh_token_ttl_days,
        )

        access_token = jwt.encode(
            {
                "sub": user.id,
                "phone": user.phone,
                "name": user.name,
                "is_admin": user.is_admin,
                "type": "access",
                "iat": now,
                "exp": access_expires,
            },
            access_secret,
            algorithm=self.settings.jwt_algorithm,
        )
        refresh_token = jwt.encode(
            {
                "sub": user.id,
                "type": "refresh",
                "jti": uuid.uuid4().hex,
                "iat": now,
                "exp": refresh_expires,
            },
            refresh_secret,
            algorithm=self.settings.jwt_algorithm,
        )
        record = db_models.RefreshTokenRecord(
            token=refresh_token,
            user_id=user.id,
            expires_at=refresh_expires,
            created_at=now,
        )
        return SessionPair(access_token, refresh_token), record

    def _decode(self, token: str, kind: TokenKind) -> dict[str, object]:
        try:
            payload = jwt.decode(
                token,
                self._secret(kind),
                algorithms=[self.settings.jwt_algorithm],
                options={"require": ["exp", "sub"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise errors.AuthFailure(
                f"{kind.capitalize()} token has expired",
                code="token_expired",
            ) from exc
        except jwt.InvalidTokenError as exc:
            raise errors.AuthFailure(f"Invalid {kind} token") from exc

        if payload.get("type") != kind:
            raise errors.AuthFailure(f"Invalid {kind} token")
        return payload
