"""Refresh-token (credential) repositories.

A refresh token is only valid while its record exists here. Login replaces
every record of the user; rotation swaps the presented record for a new
one. Both swaps run in a single transaction, and a rotation whose old
record is already gone inserts nothing, so a token is exchanged at most
once. Nothing prevents two concurrent logins of the same user from each
leaving a record behind.
"""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Protocol

from slopewatch.core import errors
from slopewatch.db import database
from slopewatch.db import models as db_models

if TYPE_CHECKING:
    from slopewatch.core import config


class RefreshTokenRepositoryProtocol(Protocol):
    """Protocol interface for persisted refresh-token records."""

    def get(self, token: str) -> db_models.RefreshTokenRecord | None: ...

    def delete(self, token: str) -> bool: ...

    def delete_for_user(self, user_id: str) -> int: ...

    def replace_for_user(
        self,
        record: db_models.RefreshTokenRecord,
    ) -> db_models.RefreshTokenRecord: ...

    def rotate(
        self,
        old_token: str,
        record: db_models.RefreshTokenRecord,
    ) -> db_models.RefreshTokenRecord: ...


class InMemoryRefreshTokenRepository(RefreshTokenRepositoryProtocol):
    """Simple in-memory store for tests and local development."""

    def __init__(self) -> None:
        self._store: dict[str, db_models.RefreshTokenRecord] = {}

    def get(self, token: str) -> db_models.RefreshTokenRecord | None:
        record = self._store.get(token)
        return copy.deepcopy(record) if record else None

    def delete(self, token: str) -> bool:
        return self._store.pop(token, None) is not None

    def delete_for_user(self, user_id: str) -> int:
        stale = [
            token
            for token, record in self._store.items()
            if record.user_id == user_id
        ]
        for token in stale:
            del self._store[token]
        return len(stale)

    def replace_for_user(
        self,
        record: db_models.RefreshTokenRecord,
    ) -> db_models.RefreshTokenRecord:
        self.delete_for_user(record.user_id)
        self._store[record.token] = copy.deepcopy(record)
        return record

    def rotate(
        self,
        old_token: str,
        record: db_models.RefreshTokenRecord,
    ) -> db_models.RefreshTokenRecord:
        if self._store.pop(old_token, None) is None:
            raise errors.NotFoundFailure("Refresh token not found")
        self._store[record.token] = copy.deepcopy(record)
        return record


class PostgresRefreshTokenRepository(RefreshTokenRepositoryProtocol):
    """PostgreSQL-backed repository for refresh-token records."""

    CREATE_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS refresh_tokens (
      token TEXT PRIMARY KEY,
      user_id TEXT NOT NULL REFERENCES users (id) ON DELETE CASCADE,
      expires_at TIMESTAMPTZ NOT NULL,
      created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    CREATE INDEX IF NOT EXISTS refresh_tokens_user_id_idx
      ON refresh_tokens (user_id);
    """

    INSERT_SQL = """
    INSERT INTO refresh_tokens (token, user_id, expires_at, created_at)
    VALUES (%(token)s, %(user_id)s, %(expires_at)s, %(created_at)s);
    """

    def __init__(self, settings: config.Settings) -> None:
        self.settings = settings
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        with database.transaction(self.settings) as cur:
            cur.execute(self.CREATE_TABLE_SQL)

    def get(self, token: str) -> db_models.RefreshTokenRecord | None:
        with database.transaction(self.settings) as cur:
            cur.execute(
                "SELECT * FROM refresh_tokens WHERE token = %s",
                (token,),
            )
            row = cur.fetchone()
        if row is None:
            return None
        return db_models.RefreshTokenRecord(
            token=str(row["token"]),
            user_id=str(row["user_id"]),
            expires_at=row["expires_at"],
            created_at=row["created_at"],
        )

    def delete(self, token: str) -> bool:
        with database.transaction(self.settings) as cur:
            cur.execute("DELETE FROM refresh_tokens WHERE token = %s", (token,))
            return cur.rowcount > 0

    def delete_for_user(self, user_id: str) -> int:
        with database.transaction(self.settings) as cur:
            cur.execute(
                "DELETE FROM refresh_tokens WHERE user_id = %s",
                (user_id,),
            )
            return cur.rowcount

    def replace_for_user(
        self,
        record: db_models.RefreshTokenRecord,
    ) -> db_models.RefreshTokenRecord:
        with database.transaction(self.settings) as cur:
            cur.execute(
                "DELETE FROM refresh_tokens WHERE user_id = %s",
                (record.user_id,),
            )
            cur.execute(self.INSERT_SQL, self._to_row(record))
        return record

    def rotate(
        self,
        old_token: str,
        record: db_models.RefreshTokenRecord,
    ) -> db_models.RefreshTokenRecord:
        with database.transaction(self.settings) as cur:
            cur.execute(
                "DELETE FROM refresh_tokens WHERE token = %s",
                (old_token,),
            )
            if cur.rowcount == 0:
                raise errors.NotFoundFailure("Refresh token not found")
            cur.execute(self.INSERT_SQL, self._to_row(record))
        return record

    @staticmethod
    def _to_row(record: db_models.RefreshTokenRecord) -> dict[str, object]:
        return {
            "token": record.token,
            "user_id": record.user_id,
            "expires_at": record.expires_at,
            "created_at": record.created_at,
        }
