"""Slope repositories with keyword and proximity queries.

Slopes are stored as a JSONB document next to a handful of indexed columns.
The derived start point is mirrored into a ``geography(Point, 4326)`` column
so that near-queries run on PostGIS (``ST_DWithin`` / ``ST_Distance``); the
in-memory repository answers the same queries with a haversine distance.

Keyword search is a case-insensitive substring match over the slope's
identifying text fields (see ``SEARCH_PATHS``).
"""

from __future__ import annotations

import copy
import math
from typing import TYPE_CHECKING, NamedTuple, Protocol

import psycopg2.extras
import pydantic

from slopewatch.db import database
from slopewatch.db import models as db_models

if TYPE_CHECKING:
    from collections.abc import Iterable

    from slopewatch.core import config

EARTH_RADIUS_M = 6371008.8

SEARCH_PATHS: tuple[tuple[str, ...], ...] = (
    ("management_no",),
    ("name",),
    ("location", "province"),
    ("location", "city"),
    ("location", "district"),
    ("location", "address"),
    ("location", "road_address"),
    ("management", "organization"),
    ("management", "department"),
    ("management", "authority"),
    ("collapse_risk", "district_name"),
)

REQUIRED_PATHS: tuple[tuple[str, ...], ...] = (
    ("management_no",),
    ("name",),
    ("location", "province"),
    ("location", "city"),
    ("location", "district"),
)

_SLOPE_ADAPTER = pydantic.TypeAdapter(db_models.Slope)


class SlopeMatch(NamedTuple):
    slope: db_models.Slope
    distance_m: float | None


def haversine_m(a: db_models.GeoPoint, b: db_models.GeoPoint) -> float:
    """Great-circle distance in meters on a spherical Earth."""
    p1 = math.radians(a.latitude)
    p2 = math.radians(b.latitude)
    dphi = p2 - p1
    dl = math.radians(b.longitude - a.longitude)
    h = (
        math.sin(dphi / 2.0) ** 2
        + math.cos(p1) * math.cos(p2) * math.sin(dl / 2.0) ** 2
    )
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(h))


def _lookup(slope: db_models.Slope, path: tuple[str, ...]) -> str | None:
    value: object = slope
    for attribute in path:
        value = getattr(value, attribute, None)
        if value is None:
            return None
    return str(value)


class SlopeRepositoryProtocol(Protocol):
    """Protocol interface for storing and querying slopes."""

    def add(self, slope: db_models.Slope) -> db_models.Slope: ...

    def get(self, slope_id: str) -> db_models.Slope | None: ...

    def get_by_history_number(
        self,
        history_number: str,
    ) -> db_models.Slope | None: ...

    def all(self) -> Iterable[db_models.Slope]: ...

    def update(self, slope: db_models.Slope) -> db_models.Slope: ...

    def delete_many(self, slope_ids: Iterable[str]) -> int: ...

    def search(
        self,
        keyword: str,
        near: db_models.GeoPoint | None = None,
    ) -> list[SlopeMatch]: ...

    def nearby(
        self,
        point: db_models.GeoPoint,
        radius_m: float,
        limit: int = 50,
    ) -> list[SlopeMatch]: ...

    def duplicate_management_numbers(self) -> list[db_models.Slope]: ...

    def missing_required_fields(self) -> list[db_models.Slope]: ...


class InMemorySlopeRepository(SlopeRepositoryProtocol):
    """Simple in-memory store for tests and local development."""

    def __init__(self) -> None:
        self._store: dict[str, db_models.Slope] = {}

    def add(self, slope: db_models.Slope) -> db_models.Slope:
        self._store[slope.id] = copy.deepcopy(slope)
        return slope

    def get(self, slope_id: str) -> db_models.Slope | None:
        slope = self._store.get(slope_id)
        return copy.deepcopy(slope) if slope else None

    def get_by_history_number(
        self,
        history_number: str,
    ) -> db_models.Slope | None:
        for slope in self._store.values():
            if slope.history.history_number == history_number:
                return copy.deepcopy(slope)
        return None

    def all(self) -> Iterable[db_models.Slope]:
        return [copy.deepcopy(slope) for slope in self._store.values()]

    def update(self, slope: db_models.Slope) -> db_models.Slope:
        self._store[slope.id] = copy.deepcopy(slope)
        return slope

    def delete_many(self, slope_ids: Iterable[str]) -> int:
        return sum(
            self._store.pop(slope_id, None) is not None
            for slope_id in slope_ids
        )

    def search(
        self,
        keyword: str,
        near: db_models.GeoPoint | None = None,
    ) -> list[SlopeMatch]:
        needle = keyword.casefold()
        matches = [
            SlopeMatch(copy.deepcopy(slope), self._distance(slope, near))
            for slope in self._store.values()
            if any(
                needle in value.casefold()
                for path in SEARCH_PATHS
                if (value := _lookup(slope, path)) is not None
            )
        ]
        if near is not None:
            matches.sort(
                key=lambda m: (m.distance_m is None, m.distance_m or 0.0),
            )
        return matches

    def nearby(
        self,
        point: db_models.GeoPoint,
        radius_m: float,
        limit: int = 50,
    ) -> list[SlopeMatch]:
        matches = [
            SlopeMatch(copy.deepcopy(slope), distance)
            for slope in self._store.values()
            if (distance := self._distance(slope, point)) is not None
            and distance <= radius_m
        ]
        matches.sort(key=lambda m: m.distance_m)
        return matches[:limit]

    def duplicate_management_numbers(self) -> list[db_models.Slope]:
        counts: dict[str, int] = {}
        for slope in self._store.values():
            counts[slope.management_no] = counts.get(slope.management_no, 0) + 1
        return [
            copy.deepcopy(slope)
            for slope in sorted(
                self._store.values(),
                key=lambda s: (s.management_no, s.created_at),
            )
            if counts[slope.management_no] > 1
        ]

    def missing_required_fields(self) -> list[db_models.Slope]:
        return [
            copy.deepcopy(slope)
            for slope in self._store.values()
            if any(not _lookup(slope, path) for path in REQUIRED_PATHS)
        ]

    @staticmethod
    def _distance(
        slope: db_models.Slope,
        point: db_models.GeoPoint | None,
    ) -> float | None:
        start = slope.location.start.point
        if point is None or start is None:
            return None
        return haversine_m(start, point)


class PostgresSlopeRepository(SlopeRepositoryProtocol):
    """PostgreSQL/PostGIS-backed repository for slopes."""

    CREATE_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS slopes (
      id TEXT PRIMARY KEY,
      management_no TEXT NOT NULL,
      history_number TEXT NOT NULL UNIQUE,
      name TEXT NOT NULL,
      document JSONB NOT NULL,
      start_point geography(Point, 4326),
      created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    CREATE INDEX IF NOT EXISTS slopes_start_point_idx
      ON slopes USING GIST (start_point);
    CREATE INDEX IF NOT EXISTS slopes_management_no_idx
      ON slopes (management_no);
    """

    def __init__(self, settings: config.Settings) -> None:
        self.settings = settings
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        with database.transaction(self.settings) as cur:
            cur.execute(self.CREATE_TABLE_SQL)

    def add(self, slope: db_models.Slope) -> db_models.Slope:
        with database.transaction(self.settings) as cur:
            cur.execute(
                """
                INSERT INTO slopes (
                    id, management_no, history_number, name, document,
                    start_point, created_at
                ) VALUES (%(id)s, %(management_no)s, %(history_number)s,
                    %(name)s, %(document)s, %(start_point)s::geography,
                    %(created_at)s);
                """,
                self._to_row(slope),
            )
        return slope

    def get(self, slope_id: str) -> db_models.Slope | None:
        with database.transaction(self.settings) as cur:
            cur.execute("SELECT document FROM slopes WHERE id = %s", (slope_id,))
            row = cur.fetchone()
        return self._from_row(row) if row else None

    def get_by_history_number(
        self,
        history_number: str,
    ) -> db_models.Slope | None:
        with database.transaction(self.settings) as cur:
            cur.execute(
                "SELECT document FROM slopes WHERE history_number = %s",
                (history_number,),
            )
            row = cur.fetchone()
        return self._from_row(row) if row else None

    def all(self) -> Iterable[db_models.Slope]:
        with database.transaction(self.settings) as cur:
            cur.execute("SELECT document FROM slopes ORDER BY created_at DESC")
            rows = cur.fetchall()
        return [self._from_row(row) for row in rows]

    def update(self, slope: db_models.Slope) -> db_models.Slope:
        with database.transaction(self.settings) as cur:
            cur.execute(
                """
                UPDATE slopes SET
                    management_no = %(management_no)s,
                    history_number = %(history_number)s,
                    name = %(name)s,
                    document = %(document)s,
                    start_point = %(start_point)s::geography
                WHERE id = %(id)s;
                """,
                self._to_row(slope),
            )
        return slope

    def delete_many(self, slope_ids: Iterable[str]) -> int:
        with database.transaction(self.settings) as cur:
            cur.execute(
                "DELETE FROM slopes WHERE id = ANY(%s)",
                (list(slope_ids),),
            )
            return cur.rowcount

    def search(
        self,
        keyword: str,
        near: db_models.GeoPoint | None = None,
    ) -> list[SlopeMatch]:
        conditions = " OR ".join(
            f"document #>> '{{{','.join(path)}}}' ILIKE %(pattern)s"
            for path in SEARCH_PATHS
        )
        params: dict[str, object] = {"pattern": database.like_pattern(keyword)}
        if near is None:
            distance = "NULL::double precision"
            order = "created_at DESC"
        else:
            distance = (
                "ST_Distance(start_point, ST_SetSRID("
                "ST_MakePoint(%(lon)s, %(lat)s), 4326)::geography)"
            )
            order = "distance ASC NULLS LAST"
            params.update(lon=near.longitude, lat=near.latitude)

        with database.transaction(self.settings) as cur:
            cur.execute(
                f"SELECT document, {distance} AS distance FROM slopes "  # noqa: S608
                f"WHERE {conditions} ORDER BY {order}",
                params,
            )
            rows = cur.fetchall()
        return [self._to_match(row) for row in rows]

    def nearby(
        self,
        point: db_models.GeoPoint,
        radius_m: float,
        limit: int = 50,
    ) -> list[SlopeMatch]:
        with database.transaction(self.settings) as cur:
            cur.execute(
                """
                SELECT document, ST_Distance(start_point, ref.geog) AS distance
                FROM slopes, (
                    SELECT ST_SetSRID(
                        ST_MakePoint(%(lon)s, %(lat)s), 4326
                    )::geography AS geog
                ) AS ref
                WHERE ST_DWithin(start_point, ref.geog, %(radius)s)
                ORDER BY distance ASC
                LIMIT %(limit)s;
                """,
                {
                    "lon": point.longitude,
                    "lat": point.latitude,
                    "radius": radius_m,
                    "limit": limit,
                },
            )
            rows = cur.fetchall()
        return [self._to_match(row) for row in rows]

    def duplicate_management_numbers(self) -> list[db_models.Slope]:
        with database.transaction(self.settings) as cur:
            cur.execute(
                """
                SELECT document FROM slopes
                WHERE management_no IN (
                    SELECT management_no FROM slopes
                    GROUP BY management_no HAVING count(*) > 1
                )
                ORDER BY management_no, created_at;
                """
            )
            rows = cur.fetchall()
        return [self._from_row(row) for row in rows]

    def missing_required_fields(self) -> list[db_models.Slope]:
        conditions = " OR ".join(
            f"coalesce(document #>> '{{{','.join(path)}}}', '') = ''"
            for path in REQUIRED_PATHS
        )
        with database.transaction(self.settings) as cur:
            cur.execute(
                f"SELECT document FROM slopes WHERE {conditions}"  # noqa: S608
            )
            rows = cur.fetchall()
        return [self._from_row(row) for row in rows]

    @staticmethod
    def _to_row(slope: db_models.Slope) -> dict[str, object]:
        """Convert a Slope to a parameter dictionary for insert/update."""
        start = slope.location.start.point
        start_point = (
            f"SRID=4326;POINT({start.longitude} {start.latitude})"
            if start is not None
            else None
        )
        return {
            "id": slope.id,
            "management_no": slope.management_no,
            "history_number": slope.history.history_number,
            "name": slope.name,
            "document": psycopg2.extras.Json(
                _SLOPE_ADAPTER.dump_python(slope, mode="json"),
            ),
            "start_point": start_point,
            "created_at": slope.created_at,
        }

    @staticmethod
    def _from_row(row: dict[str, object]) -> db_models.Slope:
        return _SLOPE_ADAPTER.validate_python(row["document"])

    @classmethod
    def _to_match(cls, row: dict[str, object]) -> SlopeMatch:
        distance = row.get("distance")
        return SlopeMatch(
            cls._from_row(row),
            float(distance) if distance is not None else None,  # type: ignore[arg-type]
        )
