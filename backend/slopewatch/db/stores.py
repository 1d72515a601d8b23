"""Repository bundle handed to the services at construction time.

The services never reach for a global connection: they receive a ``Stores``
bundle. ``in_memory_stores()`` builds one for tests and local development;
``get_stores(settings)`` builds the PostgreSQL/PostGIS one for production.

Example:
    Wire the account service against in-memory repositories:
        >>> from slopewatch.db import stores
        >>> from slopewatch.services import accounts
        >>> bundle = stores.in_memory_stores()
        >>> service = accounts.AccountService(bundle, settings)
"""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING

from slopewatch.db import backups, comments, database, slopes, tokens, users

if TYPE_CHECKING:
    from slopewatch.core import config


@dataclasses.dataclass
class Stores:
    """Every repository the services depend on."""

    users: users.UserRepositoryProtocol
    tokens: tokens.RefreshTokenRepositoryProtocol
    slopes: slopes.SlopeRepositoryProtocol
    comments: comments.CommentRepositoryProtocol
    slope_backups: backups.SlopeImageBackupRepositoryProtocol
    comment_backups: backups.CommentImageBackupRepositoryProtocol


def in_memory_stores() -> Stores:
    """Build a bundle of fresh in-memory repositories."""
    return Stores(
        users=users.InMemoryUserRepository(),
        tokens=tokens.InMemoryRefreshTokenRepository(),
        slopes=slopes.InMemorySlopeRepository(),
        comments=comments.InMemoryCommentRepository(),
        slope_backups=backups.InMemorySlopeImageBackupRepository(),
        comment_backups=backups.InMemoryCommentImageBackupRepository(),
    )


def get_stores(settings: config.Settings) -> Stores:
    """Factory function to create the PostgreSQL repository bundle.

    Enables PostGIS, then lets each repository ensure its own table.

    Args:
        settings: Application settings for database connection.

    Returns:
        Stores backed by PostgreSQL/PostGIS.
    """
    with database.transaction(settings) as cur:
        cur.execute("CREATE EXTENSION IF NOT EXISTS postgis;")

    return Stores(
        users=users.PostgresUserRepository(settings),
        tokens=tokens.PostgresRefreshTokenRepository(settings),
        slopes=slopes.PostgresSlopeRepository(settings),
        comments=comments.PostgresCommentRepository(settings),
        slope_backups=backups.PostgresSlopeImageBackupRepository(settings),
        comment_backups=backups.PostgresCommentImageBackupRepository(settings),
    )
