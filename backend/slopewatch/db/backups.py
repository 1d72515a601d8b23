"""Shadow stores for image references.

Slope backups are keyed by history number and hold the four image slots;
comment backups are keyed by comment id and hold the comment's image list.
Records are created lazily by the first upsert. Clearing a slot removes only
that slot, never the record.
"""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Protocol

import psycopg2.extras
import pydantic

from slopewatch.db import database
from slopewatch.db import models as db_models

if TYPE_CHECKING:
    import datetime
    from collections.abc import Iterable

    from slopewatch.core import config

_IMAGES_ADAPTER = pydantic.TypeAdapter(db_models.SlopeImages)
_IMAGE_ADAPTER = pydantic.TypeAdapter(db_models.ImageRef)


class SlopeImageBackupRepositoryProtocol(Protocol):
    """Protocol interface for the slope image shadow store."""

    def get(self, history_number: str) -> db_models.SlopeImageBackup | None: ...

    def all(self) -> Iterable[db_models.SlopeImageBackup]: ...

    def upsert_slot(
        self,
        history_number: str,
        slot: db_models.SlotName,
        image: db_models.ImageRef,
        at: datetime.datetime,
    ) -> None: ...

    def clear_slot(
        self,
        history_number: str,
        slot: db_models.SlotName,
        at: datetime.datetime,
    ) -> None: ...


class CommentImageBackupRepositoryProtocol(Protocol):
    """Protocol interface for the comment image shadow store."""

    def get(self, comment_id: str) -> db_models.CommentImageBackup | None: ...

    def all(self) -> Iterable[db_models.CommentImageBackup]: ...

    def upsert(
        self,
        comment_id: str,
        history_number: str,
        image_urls: list[str],
        at: datetime.datetime,
    ) -> None: ...


class InMemorySlopeImageBackupRepository(SlopeImageBackupRepositoryProtocol):
    """Simple in-memory store for tests and local development."""

    def __init__(self) -> None:
        self._store: dict[str, db_models.SlopeImageBackup] = {}

    def get(self, history_number: str) -> db_models.SlopeImageBackup | None:
        backup = self._store.get(history_number)
        return copy.deepcopy(backup) if backup else None

    def all(self) -> Iterable[db_models.SlopeImageBackup]:
        return [copy.deepcopy(backup) for backup in self._store.values()]

    def upsert_slot(
        self,
        history_number: str,
        slot: db_models.SlotName,
        image: db_models.ImageRef,
        at: datetime.datetime,
    ) -> None:
        backup = self._store.setdefault(
            history_number,
            db_models.SlopeImageBackup(history_number, created_at=at),
        )
        backup.images.set(slot, copy.deepcopy(image))
        backup.last_backup_at = at

    def clear_slot(
        self,
        history_number: str,
        slot: db_models.SlotName,
        at: datetime.datetime,
    ) -> None:
        backup = self._store.get(history_number)
        if backup is None:
            return
        backup.images.set(slot, None)
        backup.last_backup_at = at


class InMemoryCommentImageBackupRepository(
    CommentImageBackupRepositoryProtocol,
):
    """Simple in-memory store for tests and local development."""

    def __init__(self) -> None:
        self._store: dict[str, db_models.CommentImageBackup] = {}

    def get(self, comment_id: str) -> db_models.CommentImageBackup | None:
        backup = self._store.get(comment_id)
        return copy.deepcopy(backup) if backup else None

    def all(self) -> Iterable[db_models.CommentImageBackup]:
        return [copy.deepcopy(backup) for backup in self._store.values()]

    def upsert(
        self,
        comment_id: str,
        history_number: str,
        image_urls: list[str],
        at: datetime.datetime,
    ) -> None:
        self._store[comment_id] = db_models.CommentImageBackup(
            comment_id=comment_id,
            history_number=history_number,
            image_urls=list(image_urls),
            last_backup_at=at,
        )


class PostgresSlopeImageBackupRepository(SlopeImageBackupRepositoryProtocol):
    """PostgreSQL-backed slope image shadow store (slots kept as JSONB)."""

    CREATE_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS slope_image_backups (
      history_number TEXT PRIMARY KEY,
      images JSONB NOT NULL DEFAULT '{}'::jsonb,
      last_backup_at TIMESTAMPTZ NOT NULL DEFAULT now(),
      created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    """

    def __init__(self, settings: config.Settings) -> None:
        self.settings = settings
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        with database.transaction(self.settings) as cur:
            cur.execute(self.CREATE_TABLE_SQL)

    def get(self, history_number: str) -> db_models.SlopeImageBackup | None:
        with database.transaction(self.settings) as cur:
            cur.execute(
                "SELECT * FROM slope_image_backups WHERE history_number = %s",
                (history_number,),
            )
            row = cur.fetchone()
        return self._from_row(row) if row else None

    def all(self) -> Iterable[db_models.SlopeImageBackup]:
        with database.transaction(self.settings) as cur:
            cur.execute(
                "SELECT * FROM slope_image_backups ORDER BY history_number"
            )
            rows = cur.fetchall()
        return [self._from_row(row) for row in rows]

    def upsert_slot(
        self,
        history_number: str,
        slot: db_models.SlotName,
        image: db_models.ImageRef,
        at: datetime.datetime,
    ) -> None:
        with database.transaction(self.settings) as cur:
            cur.execute(
                """
                INSERT INTO slope_image_backups (
                    history_number, images, last_backup_at, created_at
                ) VALUES (
                    %(key)s, jsonb_build_object(%(slot)s::text, %(image)s::jsonb),
                    %(at)s, %(at)s
                )
                ON CONFLICT (history_number) DO UPDATE SET
                    images = slope_image_backups.images
                        || jsonb_build_object(%(slot)s::text, %(image)s::jsonb),
                    last_backup_at = EXCLUDED.last_backup_at;
                """,
                {
                    "key": history_number,
                    "slot": slot,
                    "image": psycopg2.extras.Json(
                        _IMAGE_ADAPTER.dump_python(image, mode="json"),
                    ),
                    "at": at,
                },
            )

    def clear_slot(
        self,
        history_number: str,
        slot: db_models.SlotName,
        at: datetime.datetime,
    ) -> None:
        with database.transaction(self.settings) as cur:
            cur.execute(
                """
                UPDATE slope_image_backups
                SET images = images - %(slot)s::text, last_backup_at = %(at)s
                WHERE history_number = %(key)s;
                """,
                {"key": history_number, "slot": slot, "at": at},
            )

    @staticmethod
    def _from_row(row: dict[str, object]) -> db_models.SlopeImageBackup:
        return db_models.SlopeImageBackup(
            history_number=str(row["history_number"]),
            images=_IMAGES_ADAPTER.validate_python(row.get("images") or {}),
            last_backup_at=row["last_backup_at"],  # type: ignore[arg-type]
            created_at=row["created_at"],  # type: ignore[arg-type]
        )


class PostgresCommentImageBackupRepository(
    CommentImageBackupRepositoryProtocol,
):
    """PostgreSQL-backed comment image shadow store."""

    CREATE_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS comment_image_backups (
      comment_id TEXT PRIMARY KEY,
      history_number TEXT NOT NULL,
      image_urls TEXT[] NOT NULL DEFAULT '{}',
      last_backup_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    CREATE INDEX IF NOT EXISTS comment_image_backups_history_idx
      ON comment_image_backups (history_number, last_backup_at DESC);
    """

    def __init__(self, settings: config.Settings) -> None:
        self.settings = settings
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        with database.transaction(self.settings) as cur:
            cur.execute(self.CREATE_TABLE_SQL)

    def get(self, comment_id: str) -> db_models.CommentImageBackup | None:
        with database.transaction(self.settings) as cur:
            cur.execute(
                "SELECT * FROM comment_image_backups WHERE comment_id = %s",
                (comment_id,),
            )
            row = cur.fetchone()
        return self._from_row(row) if row else None

    def all(self) -> Iterable[db_models.CommentImageBackup]:
        with database.transaction(self.settings) as cur:
            cur.execute(
                "SELECT * FROM comment_image_backups ORDER BY history_number"
            )
            rows = cur.fetchall()
        return [self._from_row(row) for row in rows]

    def upsert(
        self,
        comment_id: str,
        history_number: str,
        image_urls: list[str],
        at: datetime.datetime,
    ) -> None:
        with database.transaction(self.settings) as cur:
            cur.execute(
                """
                INSERT INTO comment_image_backups (
                    comment_id, history_number, image_urls, last_backup_at
                ) VALUES (%(comment_id)s, %(history_number)s,
                    %(image_urls)s::text[], %(at)s)
                ON CONFLICT (comment_id) DO UPDATE SET
                    history_number = EXCLUDED.history_number,
                    image_urls = EXCLUDED.image_urls,
                    last_backup_at = EXCLUDED.last_backup_at;
                """,
                {
                    "comment_id": comment_id,
                    "history_number": history_number,
                    "image_urls": list(image_urls),
                    "at": at,
                },
            )

    @staticmethod
    def _from_row(row: dict[str, object]) -> db_models.CommentImageBackup:
        return db_models.CommentImageBackup(
            comment_id=str(row["comment_id"]),
            history_number=str(row["history_number"]),
            image_urls=list(row.get("image_urls") or []),  # type: ignore[call-overload]
            last_backup_at=row["last_backup_at"],  # type: ignore[arg-type]
        )
