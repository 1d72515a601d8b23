"""Connection and transaction helpers shared by the PostgreSQL repositories."""

from __future__ import annotations

import contextlib
import logging
from typing import TYPE_CHECKING

import psycopg2
import psycopg2.errors
import psycopg2.extensions
import psycopg2.extras

from slopewatch.core import errors

if TYPE_CHECKING:
    from collections.abc import Iterator

    from slopewatch.core import config

logger = logging.getLogger(__name__)


def get_connection(
    settings: config.Settings,
) -> psycopg2.extensions.connection:
    """Create a synchronous psycopg2 connection.

    Args:
        settings: Application settings containing database connection URL.

    Returns:
        psycopg2 connection object for direct database access.
    """
    return psycopg2.connect(settings.database_url)


@contextlib.contextmanager
def transaction(
    settings: config.Settings,
) -> Iterator[psycopg2.extras.RealDictCursor]:
    """Yield a dict cursor inside one committed-or-rolled-back transaction.

    Driver errors are translated into the service failure taxonomy: unique
    violations become ConflictFailure, everything else DependencyFailure.

    Args:
        settings: Application settings containing database connection URL.

    Yields:
        Cursor returning rows as dictionaries.

    Raises:
        ConflictFailure: If a unique constraint was violated.
        DependencyFailure: If the database could not be reached or the
            statement failed.
    """
    try:
        conn = get_connection(settings)
    except psycopg2.Error as exc:
        logger.exception("Record store connection failed")
        raise errors.DependencyFailure("Record store unavailable") from exc

    try:
        with conn, conn.cursor(
            cursor_factory=psycopg2.extras.RealDictCursor,
        ) as cur:
            yield cur
    except psycopg2.errors.UniqueViolation as exc:
        raise errors.ConflictFailure("Duplicate key") from exc
    except psycopg2.Error as exc:
        logger.exception("Record store statement failed")
        raise errors.DependencyFailure("Record store unavailable") from exc
    finally:
        conn.close()


def like_pattern(keyword: str) -> str:
    """Build an ILIKE substring pattern with wildcards escaped."""
    escaped = (
        keyword.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    )
    return f"%{escaped}%"

