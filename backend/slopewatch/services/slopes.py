"""Slope registration, field-group updates, lookup and search.

Writers never persist a location as received: coordinates are derived first
(``coordinates.resolve_location``) and the derived location is what gets
stored. New slopes always derive; location updates follow the recompute
policy documented in ``slopewatch.services.coordinates``.
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from slopewatch.core import errors
from slopewatch.db import models as db_models
from slopewatch.services import commands, coordinates

if TYPE_CHECKING:
    from slopewatch.core import config
    from slopewatch.db import stores as db_stores
    from slopewatch.db.slopes import SlopeMatch
    from slopewatch.services.tokens import AccessClaims

logger = logging.getLogger(__name__)


class SlopeService:
    """CRUD and queries over slope records."""

    def __init__(
        self,
        stores: db_stores.Stores,
        settings: config.Settings,
    ) -> None:
        self.slopes = stores.slopes
        self.settings = settings

    def create_slope(
        self,
        command: commands.SlopeCreateCommand,
    ) -> db_models.Slope:
        """Register a slope.

        Raises:
            ValidationFailure: If management number, name or history number
                is blank.
            ConflictFailure: If the history number is already in use.
        """
        missing = {
            field: "required"
            for field in ("management_no", "name", "history_number")
            if not getattr(command, field).strip()
        }
        if missing:
            raise errors.ValidationFailure(
                "Management number, name and history number are required",
                details=missing,
            )
        if self.slopes.get_by_history_number(command.history_number):
            raise errors.ConflictFailure(
                f"History number {command.history_number} is already registered",
            )

        slope = db_models.Slope(
            id=str(uuid.uuid4()),
            management_no=command.management_no,
            name=command.name,
            history=db_models.InspectionHistory(
                history_number=command.history_number,
                inspection_date=command.inspection_date,
            ),
            location=coordinates.resolve_location(command.location),
            management=command.management,
            inspections=list(command.inspections),
            collapse_risk=command.collapse_risk,
            maintenance_project=command.maintenance_project,
        )
        self.slopes.add(slope)
        logger.info(
            "Created slope %s (history %s)",
            slope.id,
            slope.history.history_number,
        )
        return slope

    def update_slope(
        self,
        slope_id: str,
        command: commands.SlopeUpdateCommand,
    ) -> db_models.Slope:
        """Apply one field-group update to a slope.

        Raises:
            NotFoundFailure: If the slope does not exist.
            ValidationFailure: If a basic-info update blanks a required field.
        """
        slope = self.slopes.get(slope_id)
        if slope is None:
            raise errors.NotFoundFailure("Slope not found")

        if isinstance(command, commands.BasicInfoUpdate):
            blank = {
                field: "required"
                for field in ("management_no", "name")
                if (value := getattr(command, field)) is not None
                and not value.strip()
            }
            if blank:
                raise errors.ValidationFailure(
                    "Management number and name cannot be blank",
                    details=blank,
                )
            if command.management_no is not None:
                slope.management_no = command.management_no
            if command.name is not None:
                slope.name = command.name
            if command.inspection_date is not None:
                slope.history.inspection_date = command.inspection_date
        elif isinstance(command, commands.LocationUpdate):
            slope.location = coordinates.resolve_location(
                command.location,
                previous=slope.location,
            )
        elif isinstance(command, commands.ManagementUpdate):
            slope.management = command.management
        elif isinstance(command, commands.InspectionsUpdate):
            slope.inspections = list(command.inspections)
        elif isinstance(command, commands.CollapseRiskUpdate):
            slope.collapse_risk = command.collapse_risk
        elif isinstance(command, commands.MaintenanceUpdate):
            slope.maintenance_project = command.maintenance_project

        self.slopes.update(slope)
        logger.info("Updated %s of slope %s", command.group, slope.id)
        return slope

    def delete_slopes(self, command: commands.DeleteSlopesCommand) -> int:
        """Delete slopes by id; returns how many were deleted."""
        ids = [slope_id for slope_id in command.slope_ids if slope_id]
        if not ids:
            raise errors.ValidationFailure(
                "No slope ids given",
                details={"slope_ids": "required"},
            )
        deleted = self.slopes.delete_many(ids)
        if deleted == 0:
            raise errors.NotFoundFailure("No matching slopes to delete")
        logger.info("Deleted %d slope(s)", deleted)
        return deleted

    def get_by_history_number(self, history_number: str) -> db_models.Slope:
        slope = self.slopes.get_by_history_number(history_number)
        if slope is None:
            raise errors.NotFoundFailure(
                f"No slope with history number {history_number}",
            )
        return slope

    def list_slopes(self, actor: AccessClaims) -> list[db_models.Slope]:
        if not actor.is_admin:
            raise errors.forbidden("Administrator privileges required")
        return sorted(self.slopes.all(), key=lambda s: s.created_at)

    def search(self, query: commands.SearchQuery) -> list[SlopeMatch]:
        """Keyword search, nearest first when a reference point is given.

        Raises:
            ValidationFailure: If only one of longitude/latitude is given.
        """
        return self.slopes.search(
            query.keyword.strip(),
            near=_reference_point(query.longitude, query.latitude),
        )

    def nearby(self, query: commands.NearbyQuery) -> list[SlopeMatch]:
        """Slopes whose start point lies within the radius, nearest first."""
        radius_m = query.radius_m or self.settings.nearby_radius_m
        point = db_models.GeoPoint(coordinates=(query.longitude, query.latitude))
        return self.slopes.nearby(point, radius_m)

    def find_outliers(
        self,
        actor: AccessClaims,
    ) -> dict[str, list[db_models.Slope]]:
        """Slopes with a shared management number or blank required fields."""
        if not actor.is_admin:
            raise errors.forbidden("Administrator privileges required")
        return {
            "duplicates": self.slopes.duplicate_management_numbers(),
            "empty": self.slopes.missing_required_fields(),
        }


def _reference_point(
    longitude: float | None,
    latitude: float | None,
) -> db_models.GeoPoint | None:
    if longitude is None and latitude is None:
        return None
    if longitude is None or latitude is None:
        raise errors.ValidationFailure(
            "Longitude and latitude must be given together",
            details={
                "longitude" if longitude is None else "latitude": "required",
            },
        )
    return db_models.GeoPoint(coordinates=(longitude, latitude))
