"""Comment repositories; comments are threaded per slope history number."""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Protocol

from slopewatch.db import database
from slopewatch.db import models as db_models

if TYPE_CHECKING:
    from collections.abc import Iterable

    from slopewatch.core import config


class CommentRepositoryProtocol(Protocol):
    """Protocol interface for storing and retrieving comments."""

    def add(self, comment: db_models.Comment) -> db_models.Comment: ...

    def get(self, comment_id: str) -> db_models.Comment | None: ...

    def for_history(self, history_number: str) -> list[db_models.Comment]: ...

    def all(self) -> Iterable[db_models.Comment]: ...

    def update(self, comment: db_models.Comment) -> db_models.Comment: ...

    def delete(self, comment_id: str) -> bool: ...


class InMemoryCommentRepository(CommentRepositoryProtocol):
    """Simple in-memory store for tests and local development."""

    def __init__(self) -> None:
        self._store: dict[str, db_models.Comment] = {}

    def add(self, comment: db_models.Comment) -> db_models.Comment:
        self._store[comment.id] = copy.deepcopy(comment)
        return comment

    def get(self, comment_id: str) -> db_models.Comment | None:
        comment = self._store.get(comment_id)
        return copy.deepcopy(comment) if comment else None

    def for_history(self, history_number: str) -> list[db_models.Comment]:
        """Comments on one slope, newest first."""
        return sorted(
            (
                copy.deepcopy(comment)
                for comment in self._store.values()
                if comment.history_number == history_number
            ),
            key=lambda c: c.created_at,
            reverse=True,
        )

    def all(self) -> Iterable[db_models.Comment]:
        return [copy.deepcopy(comment) for comment in self._store.values()]

    def update(self, comment: db_models.Comment) -> db_models.Comment:
        self._store[comment.id] = copy.deepcopy(comment)
        return comment

    def delete(self, comment_id: str) -> bool:
        return self._store.pop(comment_id, None) is not None


class PostgresCommentRepository(CommentRepositoryProtocol):
    """PostgreSQL-backed repository for comments."""

    CREATE_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS comments (
      id TEXT PRIMARY KEY,
      history_number TEXT NOT NULL,
      user_id TEXT NOT NULL,
      content TEXT NOT NULL,
      image_urls TEXT[] NOT NULL DEFAULT '{}',
      created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
      updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    CREATE INDEX IF NOT EXISTS comments_history_created_idx
      ON comments (history_number, created_at DESC);
    CREATE INDEX IF NOT EXISTS comments_user_id_idx ON comments (user_id);
    """

    def __init__(self, settings: config.Settings) -> None:
        self.settings = settings
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        with database.transaction(self.settings) as cur:
            cur.execute(self.CREATE_TABLE_SQL)

    def add(self, comment: db_models.Comment) -> db_models.Comment:
        with database.transaction(self.settings) as cur:
            cur.execute(
                """
                INSERT INTO comments (
                    id, history_number, user_id, content, image_urls,
                    created_at, updated_at
                ) VALUES (%(id)s, %(history_number)s, %(user_id)s,
                    %(content)s, %(image_urls)s::text[], %(created_at)s,
                    %(updated_at)s);
                """,
                self._to_row(comment),
            )
        return comment

    def get(self, comment_id: str) -> db_models.Comment | None:
        with database.transaction(self.settings) as cur:
            cur.execute("SELECT * FROM comments WHERE id = %s", (comment_id,))
            row = cur.fetchone()
        return self._from_row(row) if row else None

    def for_history(self, history_number: str) -> list[db_models.Comment]:
        with database.transaction(self.settings) as cur:
            cur.execute(
                """
                SELECT * FROM comments WHERE history_number = %s
                ORDER BY created_at DESC
                """,
                (history_number,),
            )
            rows = cur.fetchall()
        return [self._from_row(row) for row in rows]

    def all(self) -> Iterable[db_models.Comment]:
        with database.transaction(self.settings) as cur:
            cur.execute("SELECT * FROM comments ORDER BY created_at DESC")
            rows = cur.fetchall()
        return [self._from_row(row) for row in rows]

    def update(self, comment: db_models.Comment) -> db_models.Comment:
        with database.transaction(self.settings) as cur:
            cur.execute(
                """
                UPDATE comments SET
                    content = %(content)s,
                    image_urls = %(image_urls)s::text[],
                    updated_at = %(updated_at)s
                WHERE id = %(id)s;
                """,
                self._to_row(comment),
            )
        return comment

    def delete(self, comment_id: str) -> bool:
        with database.transaction(self.settings) as cur:
            cur.execute("DELETE FROM comments WHERE id = %s", (comment_id,))
            return cur.rowcount > 0

    @staticmethod
    def _to_row(comment: db_models.Comment) -> dict[str, object]:
        return {
            "id": comment.id,
            "history_number": comment.history_number,
            "user_id": comment.user_id,
            "content": comment.content,
            "image_urls": list(comment.image_urls),
            "created_at": comment.created_at,
            "updated_at": comment.updated_at,
        }

    @staticmethod
    def _from_row(row: dict[str, object]) -> db_models.Comment:
        return db_models.Comment(
            id=str(row["id"]),
            history_number=str(row["history_number"]),
            user_id=str(row["user_id"]),
            content=str(row["content"]),
            image_urls=list(row.get("image_urls") or []),  # type: ignore[call-overload]
            created_at=row["created_at"],  # type: ignore[arg-type]
            updated_at=row["updated_at"],  # type: ignore[arg-type]
        )
