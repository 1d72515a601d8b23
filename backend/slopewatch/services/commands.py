"""Validated command models accepted by the services.

Request bodies are parsed into these models at the HTTP boundary. Slope
records are reused directly as field types: pydantic validates the
dataclasses in ``slopewatch.db.models`` from plain JSON.

Slope updates are a tagged union, one variant per field group; the ``group``
key selects the variant:

    {"group": "location", "location": {...}}
"""

from __future__ import annotations

from typing import Annotated, Literal

import pydantic

from slopewatch.core import errors
from slopewatch.db import models as db_models


class RegisterCommand(pydantic.BaseModel):
    name: str | None = None
    phone: str | None = None
    organization: str | None = None
    password: str | None = None
    is_admin: bool = False


class LoginCommand(pydantic.BaseModel):
    phone: str | None = None
    password: str | None = None


class RefreshCommand(pydantic.BaseModel):
    refresh_token: str | None = None


class UserUpdateCommand(pydantic.BaseModel):
    name: str | None = None
    phone: str | None = None
    organization: str | None = None
    password: str | None = None
    current_password: str | None = None


class SlopeCreateCommand(pydantic.BaseModel):
    management_no: str
    name: str
    history_number: str
    inspection_date: str | None = None
    location: db_models.SlopeLocation = pydantic.Field(
        default_factory=db_models.SlopeLocation,
    )
    management: db_models.Management = pydantic.Field(
        default_factory=db_models.Management,
    )
    inspections: list[db_models.Inspection] = []
    collapse_risk: db_models.CollapseRisk | None = None
    maintenance_project: db_models.MaintenanceProject | None = None


class BasicInfoUpdate(pydantic.BaseModel):
    group: Literal["basic"]
    management_no: str | None = None
    name: str | None = None
    inspection_date: str | None = None


class LocationUpdate(pydantic.BaseModel):
    group: Literal["location"]
    location: db_models.SlopeLocation


class ManagementUpdate(pydantic.BaseModel):
    group: Literal["management"]
    management: db_models.Management


class InspectionsUpdate(pydantic.BaseModel):
    group: Literal["inspections"]
    inspections: list[db_models.Inspection]


class CollapseRiskUpdate(pydantic.BaseModel):
    group: Literal["collapse_risk"]
    collapse_risk: db_models.CollapseRisk | None = None


class MaintenanceUpdate(pydantic.BaseModel):
    group: Literal["maintenance"]
    maintenance_project: db_models.MaintenanceProject | None = None


SlopeUpdateCommand = Annotated[
    BasicInfoUpdate
    | LocationUpdate
    | ManagementUpdate
    | InspectionsUpdate
    | CollapseRiskUpdate
    | MaintenanceUpdate,
    pydantic.Field(discriminator="group"),
]


class DeleteSlopesCommand(pydantic.BaseModel):
    slope_ids: list[str]

    @pydantic.field_validator("slope_ids", mode="before")
    @classmethod
    def _single_id(cls, value: object) -> object:
        """Accept a bare id as well as a list of ids."""
        return [value] if isinstance(value, str) else value


class SearchQuery(pydantic.BaseModel):
    keyword: str = ""
    longitude: float | None = None
    latitude: float | None = None


class NearbyQuery(pydantic.BaseModel):
    longitude: float
    latitude: float
    radius_m: float | None = pydantic.Field(default=None, gt=0)


_SLOPE_UPDATE_ADAPTER: pydantic.TypeAdapter[SlopeUpdateCommand] = pydantic.TypeAdapter(
    SlopeUpdateCommand,
)


def parse_slope_update(payload: object) -> SlopeUpdateCommand:
    """Validate a slope update body into its field-group command."""
    try:
        return _SLOPE_UPDATE_ADAPTER.validate_python(payload)
    except pydantic.ValidationError as exc:
        raise errors.ValidationFailure(
            "Invalid slope update",
            details=errors.field_details(exc.errors()),
        ) from exc
