"""User account repositories."""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Protocol

from slopewatch.db import database
from slopewatch.db import models as db_models

if TYPE_CHECKING:
    from collections.abc import Iterable

    from slopewatch.core import config


class UserRepositoryProtocol(Protocol):
    """Protocol interface for storing and retrieving user accounts."""

    def add(self, user: db_models.User) -> db_models.User: ...

    def get(self, user_id: str) -> db_models.User | None: ...

    def get_by_phone(self, phone: str) -> db_models.User | None: ...

    def all(self) -> Iterable[db_models.User]: ...

    def update(self, user: db_models.User) -> db_models.User: ...

    def delete(self, user_id: str) -> bool: ...


class InMemoryUserRepository(UserRepositoryProtocol):
    """Simple in-memory store for tests and local development.

    Records are copied on the way in and out so callers never share state
    with the store, as with a real database.
    """

    def __init__(self) -> None:
        self._store: dict[str, db_models.User] = {}

    def add(self, user: db_models.User) -> db_models.User:
        self._store[user.id] = copy.deepcopy(user)
        return user

    def get(self, user_id: str) -> db_models.User | None:
        user = self._store.get(user_id)
        return copy.deepcopy(user) if user else None

    def get_by_phone(self, phone: str) -> db_models.User | None:
        for user in self._store.values():
            if user.phone == phone:
                return copy.deepcopy(user)
        return None

    def all(self) -> Iterable[db_models.User]:
        return [copy.deepcopy(user) for user in self._store.values()]

    def update(self, user: db_models.User) -> db_models.User:
        self._store[user.id] = copy.deepcopy(user)
        return user

    def delete(self, user_id: str) -> bool:
        return self._store.pop(user_id, None) is not None


class PostgresUserRepository(UserRepositoryProtocol):
    """PostgreSQL-backed repository for user accounts."""

    CREATE_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS users (
      id TEXT PRIMARY KEY,
      name TEXT NOT NULL,
      phone TEXT NOT NULL UNIQUE,
      organization TEXT NOT NULL,
      password_hash TEXT NOT NULL,
      is_admin BOOLEAN NOT NULL DEFAULT FALSE,
      is_approved BOOLEAN NOT NULL DEFAULT FALSE,
      created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    """

    def __init__(self, settings: config.Settings) -> None:
        self.settings = settings
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        with database.transaction(self.settings) as cur:
            cur.execute(self.CREATE_TABLE_SQL)

    def add(self, user: db_models.User) -> db_models.User:
        with database.transaction(self.settings) as cur:
            cur.execute(
                """
                INSERT INTO users (
                    id, name, phone, organization, password_hash,
                    is_admin, is_approved, created_at
                ) VALUES (%(id)s, %(name)s, %(phone)s, %(organization)s,
                    %(password_hash)s, %(is_admin)s, %(is_approved)s,
                    %(created_at)s);
                """,
                self._to_row(user),
            )
        return user

    def get(self, user_id: str) -> db_models.User | None:
        with database.transaction(self.settings) as cur:
            cur.execute("SELECT * FROM users WHERE id = %s", (user_id,))
            row = cur.fetchone()
        return self._from_row(row) if row else None

    def get_by_phone(self, phone: str) -> db_models.User | None:
        with database.transaction(self.settings) as cur:
            cur.execute("SELECT * FROM users WHERE phone = %s", (phone,))
            row = cur.fetchone()
        return self._from_row(row) if row else None

    def all(self) -> Iterable[db_models.User]:
        with database.transaction(self.settings) as cur:
            cur.execute("SELECT * FROM users ORDER BY created_at DESC")
            rows = cur.fetchall()
        return [self._from_row(row) for row in rows]

    def update(self, user: db_models.User) -> db_models.User:
        with database.transaction(self.settings) as cur:
            cur.execute(
                """
                UPDATE users SET
                    name = %(name)s,
                    phone = %(phone)s,
                    organization = %(organization)s,
                    password_hash = %(password_hash)s,
                    is_admin = %(is_admin)s,
                    is_approved = %(is_approved)s
                WHERE id = %(id)s;
                """,
                self._to_row(user),
            )
        return user

    def delete(self, user_id: str) -> bool:
        with database.transaction(self.settings) as cur:
            cur.execute("DELETE FROM users WHERE id = %s", (user_id,))
            return cur.rowcount > 0

    @staticmethod
    def _to_row(user: db_models.User) -> dict[str, object]:
        return {
            "id": user.id,
            "name": user.name,
            "phone": user.phone,
            "organization": user.organization,
            "password_hash": user.password_hash,
            "is_admin": user.is_admin,
            "is_approved": user.is_approved,
            "created_at": user.created_at,
        }

    @staticmethod
    def _from_row(row: dict[str, object]) -> db_models.User:
        return db_models.User(
            id=str(row["id"]),
            name=str(row["name"]),
            phone=str(row["phone"]),
            organization=str(row["organization"]),
            password_hash=str(row["password_hash"]),
            is_admin=bool(row["is_admin"]),
            is_approved=bool(row["is_approved"]),
            created_at=row["created_at"],  # type: ignore[arg-type]
        )
