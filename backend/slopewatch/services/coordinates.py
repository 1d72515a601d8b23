"""Degree/minute/second to decimal-degree derivation for slope endpoints.

A slope records its start and end as DMS latitude/longitude triples; the
decimal-degree ``GeoPoint`` used for map display and near-queries is
derived from them here. Derivation itself is pure. Whether a stored point
should be recomputed is decided by ``resolve_endpoint``, which writers call
explicitly before persisting:

* the DMS inputs changed since the last derivation, or
* the stored point is absent or (0, 0)

Otherwise the stored point is kept, so that a manually corrected point with
no matching DMS change survives later saves.

Example:
    >>> from slopewatch.db.models import DmsComponent
    >>> dms_to_decimal(DmsComponent(degree=37, minute=30, second=0))
    37.5
"""

from __future__ import annotations

import dataclasses
import math

from slopewatch.db import models as db_models


def dms_to_decimal(dms: db_models.DmsComponent) -> float:
    """Convert a DMS component to decimal degrees.

    The degree is rounded to the nearest integer (halves round up) before
    minutes/60 and seconds/3600 are added. Absent parts count as zero. No
    range checking is done; the function never fails.

    Args:
        dms: Degree, minute and second, each possibly None.

    Returns:
        Decimal degrees.
    """
    degree = math.floor((dms.degree or 0) + 0.5)
    return degree + (dms.minute or 0) / 60 + (dms.second or 0) / 3600


def derive_point(
    latitude: db_models.DmsComponent,
    longitude: db_models.DmsComponent,
) -> db_models.GeoPoint:
    """Build a GeoPoint (longitude first) from DMS latitude and longitude."""
    return db_models.GeoPoint(
        coordinates=(dms_to_decimal(longitude), dms_to_decimal(latitude)),
    )


def derive_coordinates(
    location: db_models.SlopeLocation,
) -> tuple[db_models.GeoPoint, db_models.GeoPoint]:
    """Derive the start and end points of a location from its DMS inputs."""
    return (
        derive_point(location.start.latitude, location.start.longitude),
        derive_point(location.end.latitude, location.end.longitude),
    )


def _dms_changed(
    endpoint: db_models.SlopeEndpoint,
    previous: db_models.SlopeEndpoint | None,
) -> bool:
    if previous is None:
        return True
    return (
        endpoint.latitude != previous.latitude
        or endpoint.longitude != previous.longitude
    )


def resolve_endpoint(
    endpoint: db_models.SlopeEndpoint,
    previous: db_models.SlopeEndpoint | None = None,
) -> db_models.SlopeEndpoint:
    """Return ``endpoint`` with its point recomputed when required.

    Args:
        endpoint: Endpoint about to be persisted.
        previous: The endpoint as last persisted, or None for a new record.

    Returns:
        A new endpoint; the input is not modified.
    """
    point = endpoint.point
    if point is None or point.is_zero() or _dms_changed(endpoint, previous):
        point = derive_point(endpoint.latitude, endpoint.longitude)
    return dataclasses.replace(endpoint, point=point)


def resolve_location(
    location: db_models.SlopeLocation,
    previous: db_models.SlopeLocation | None = None,
) -> db_models.SlopeLocation:
    """Apply ``resolve_endpoint`` to both endpoints of a location."""
    return dataclasses.replace(
        location,
        start=resolve_endpoint(
            location.start,
            previous.start if previous else None,
        ),
        end=resolve_endpoint(
            location.end,
            previous.end if previous else None,
        ),
    )
