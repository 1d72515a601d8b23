"""Slope endpoints: registration, field-group updates, lookup and search.

Search and nearby queries are public; every other route needs a bearer
access token.

Example:
    Move a slope's start point (the decimal point is re-derived):
        >>> client.put(f"/api/slopes/{slope_id}", json={
        ...     "group": "location",
        ...     "location": {"province": "Gangwon", "city": "Chuncheon",
        ...                  "district": "Hyoja",
        ...                  "start": {"latitude": {"degree": 37, "minute": 30}}},
        ... }, headers=auth)

    Find slopes within 500 m:
        >>> client.post("/api/slopes/nearby", json={
        ...     "longitude": 127.73, "latitude": 37.87, "radius_m": 500,
        ... })
"""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, Any

import fastapi

from slopewatch.api import deps
from slopewatch.services import commands, slopes, tokens

if TYPE_CHECKING:
    from slopewatch.db.slopes import SlopeMatch

router = fastapi.APIRouter(prefix="/api/slopes", tags=["slopes"])


def _match_to_dict(match: SlopeMatch) -> dict[str, Any]:
    return {**dataclasses.asdict(match.slope), "distance_m": match.distance_m}


@router.post("", status_code=201)
def create_slope(
    command: commands.SlopeCreateCommand,
    _actor: tokens.AccessClaims = fastapi.Depends(deps.current_actor),  # noqa: B008
    service: slopes.SlopeService = fastapi.Depends(deps.get_slope_service),  # noqa: B008
) -> dict[str, Any]:
    """Register a slope; start and end points are derived from DMS input."""
    return {"success": True, "data": service.create_slope(command)}


@router.get("")
def list_slopes(
    actor: tokens.AccessClaims = fastapi.Depends(deps.current_actor),  # noqa: B008
    service: slopes.SlopeService = fastapi.Depends(deps.get_slope_service),  # noqa: B008
) -> dict[str, Any]:
    """List every slope (administrators only)."""
    return {"success": True, "data": service.list_slopes(actor)}


@router.delete("")
def delete_slopes(
    command: commands.DeleteSlopesCommand,
    _actor: tokens.AccessClaims = fastapi.Depends(deps.current_actor),  # noqa: B008
    service: slopes.SlopeService = fastapi.Depends(deps.get_slope_service),  # noqa: B008
) -> dict[str, Any]:
    """Delete one or more slopes by id.

    The body is ``{"slope_ids": [...]}``; a single id string is accepted.
    """
    deleted = service.delete_slopes(command)
    return {
        "success": True,
        "message": f"{deleted} slope(s) deleted",
        "deleted": deleted,
    }


@router.get("/outliers")
def get_outliers(
    actor: tokens.AccessClaims = fastapi.Depends(deps.current_actor),  # noqa: B008
    service: slopes.SlopeService = fastapi.Depends(deps.get_slope_service),  # noqa: B008
) -> dict[str, Any]:
    """Slopes sharing a management number, and slopes with blank fields."""
    return {"success": True, "data": service.find_outliers(actor)}


@router.post("/search")
def search_slopes(
    query: commands.SearchQuery,
    service: slopes.SlopeService = fastapi.Depends(deps.get_slope_service),  # noqa: B008
) -> dict[str, Any]:
    """Keyword search; nearest first when longitude/latitude are given."""
    return {
        "success": True,
        "data": [_match_to_dict(match) for match in service.search(query)],
    }


@router.post("/nearby")
def nearby_slopes(
    query: commands.NearbyQuery,
    service: slopes.SlopeService = fastapi.Depends(deps.get_slope_service),  # noqa: B008
) -> dict[str, Any]:
    """Slopes whose start point lies within ``radius_m`` metres."""
    return {
        "success": True,
        "data": [_match_to_dict(match) for match in service.nearby(query)],
    }


@router.get("/history/{history_number}")
def get_slope_by_history_number(
    history_number: str,
    _actor: tokens.AccessClaims = fastapi.Depends(deps.current_actor),  # noqa: B008
    service: slopes.SlopeService = fastapi.Depends(deps.get_slope_service),  # noqa: B008
) -> dict[str, Any]:
    slope = service.get_by_history_number(history_number)
    return {
        "success": True,
        "data": slope,
        "images": dataclasses.asdict(slope.images),
    }


@router.put("/{slope_id}")
def update_slope(
    slope_id: str,
    payload: dict[str, Any] = fastapi.Body(...),  # noqa: B008
    _actor: tokens.AccessClaims = fastapi.Depends(deps.current_actor),  # noqa: B008
    service: slopes.SlopeService = fastapi.Depends(deps.get_slope_service),  # noqa: B008
) -> dict[str, Any]:
    """Update one field group, selected by the ``group`` key of the body."""
    command = commands.parse_slope_update(payload)
    return {"success": True, "data": service.update_slope(slope_id, command)}
