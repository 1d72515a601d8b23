"""Data models for slopes, users, comments and image backups.

This module defines the records kept in the primary store (Slope, Comment,
User), the refresh-token records of the credential store, and the shadow
records of the image backup store.

Coordinates follow GeoJSON order: a ``GeoPoint`` stores
``(longitude, latitude)`` in decimal degrees. The degree/minute/second
inputs a point was derived from are kept next to it on ``SlopeEndpoint``.

Example:
    Creating a slope with its start endpoint in DMS form:
        >>> from slopewatch.db.models import (
        ...     DmsComponent, InspectionHistory, Slope, SlopeEndpoint,
        ...     SlopeLocation,
        ... )
        >>> slope = Slope(
        ...     id="a1",
        ...     management_no="4211-001",
        ...     name="Hillside 3",
        ...     history=InspectionHistory(history_number="H-0001"),
        ...     location=SlopeLocation(
        ...         province="Gangwon",
        ...         city="Chuncheon",
        ...         district="Hyoja",
        ...         start=SlopeEndpoint(
        ...             latitude=DmsComponent(37, 52, 12),
        ...             longitude=DmsComponent(127, 43, 48),
        ...         ),
        ...     ),
        ... )
"""

from __future__ import annotations

import dataclasses
import datetime
from typing import Literal

SlotName = Literal["position", "start", "overview", "end"]
SLOTS: tuple[SlotName, ...] = ("position", "start", "overview", "end")


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(tz=datetime.UTC)


@dataclasses.dataclass
class GeoPoint:
    """Point geometry; ``coordinates`` is always (longitude, latitude)."""

    coordinates: tuple[float, float]
    kind: Literal["Point"] = "Point"

    @property
    def longitude(self) -> float:
        return self.coordinates[0]

    @property
    def latitude(self) -> float:
        return self.coordinates[1]

    def is_zero(self) -> bool:
        return self.coordinates[0] == 0 and self.coordinates[1] == 0


@dataclasses.dataclass
class DmsComponent:
    """Degrees/minutes/seconds; absent parts count as zero."""

    degree: float | None = None
    minute: float | None = None
    second: float | None = None


@dataclasses.dataclass
class SlopeEndpoint:
    latitude: DmsComponent = dataclasses.field(default_factory=DmsComponent)
    longitude: DmsComponent = dataclasses.field(default_factory=DmsComponent)
    point: GeoPoint | None = None


@dataclasses.dataclass
class SlopeLocation:
    province: str = ""
    city: str = ""
    district: str = ""
    address: str | None = None
    road_address: str | None = None
    mountain_address: str | None = None
    main_lot_number: str | None = None
    sub_lot_number: str | None = None
    start: SlopeEndpoint = dataclasses.field(default_factory=SlopeEndpoint)
    end: SlopeEndpoint = dataclasses.field(default_factory=SlopeEndpoint)


@dataclasses.dataclass
class Management:
    organization: str | None = None
    department: str | None = None
    authority: str | None = None


@dataclasses.dataclass
class Inspection:
    """One safety inspection with its disaster-risk assessment."""

    date: datetime.date | None = None
    result: str | None = None
    risk_level: str | None = None
    risk_type: str | None = None
    risk_score: str | None = None
    serial_number: str | None = None


@dataclasses.dataclass
class CollapseRisk:
    district_no: str | None = None
    district_name: str | None = None
    designated: bool = False
    designation_date: datetime.date | None = None


@dataclasses.dataclass
class MaintenanceProject:
    year: str | None = None
    type: str | None = None


@dataclasses.dataclass
class InspectionHistory:
    """Survey history entry; its number is the slope's owner key."""

    history_number: str
    inspection_date: str | None = None


@dataclasses.dataclass
class ImageRef:
    url: str
    created_at: datetime.datetime = dataclasses.field(default_factory=utcnow)


@dataclasses.dataclass
class SlopeImages:
    """The four fixed image slots of a slope."""

    position: ImageRef | None = None
    start: ImageRef | None = None
    overview: ImageRef | None = None
    end: ImageRef | None = None

    def get(self, slot: SlotName) -> ImageRef | None:
        return getattr(self, slot)

    def set(self, slot: SlotName, image: ImageRef | None) -> None:
        setattr(self, slot, image)

    def filled(self) -> dict[SlotName, ImageRef]:
        return {
            slot: image
            for slot in SLOTS
            if (image := self.get(slot)) is not None and image.url
        }


@dataclasses.dataclass
class Slope:
    """A steep-slope site and everything recorded about it.

    Attributes:
        id: Unique identifier (UUID string).
        management_no: Management number assigned by the authority. Not
            unique in practice; duplicates are reported as outliers.
        name: Human-readable slope name.
        history: Survey history; ``history.history_number`` is unique and
            correlates the slope with its image backup.
        location: Administrative address plus start/end coordinates.
        management: Responsible organization, department and authority.
        inspections: Safety inspections, oldest first.
        collapse_risk: Collapse-risk district designation, if any.
        maintenance_project: Maintenance project, if any.
        images: Photos in the four fixed slots.
        created_at: Timestamp when the slope was registered.
    """

    id: str
    management_no: str
    name: str
    history: InspectionHistory
    location: SlopeLocation = dataclasses.field(default_factory=SlopeLocation)
    management: Management = dataclasses.field(default_factory=Management)
    inspections: list[Inspection] = dataclasses.field(default_factory=list)
    collapse_risk: CollapseRisk | None = None
    maintenance_project: MaintenanceProject | None = None
    images: SlopeImages = dataclasses.field(default_factory=SlopeImages)
    created_at: datetime.datetime = dataclasses.field(default_factory=utcnow)


@dataclasses.dataclass
class User:
    id: str
    name: str
    phone: str
    organization: str
    password_hash: str
    is_admin: bool = False
    is_approved: bool = False
    created_at: datetime.datetime = dataclasses.field(default_factory=utcnow)


@dataclasses.dataclass
class RefreshTokenRecord:
    """Persisted refresh token; the token string is the key."""

    token: str
    user_id: str
    expires_at: datetime.datetime
    created_at: datetime.datetime = dataclasses.field(default_factory=utcnow)

    def is_expired(self, now: datetime.datetime) -> bool:
        return self.expires_at <= now


@dataclasses.dataclass
class Comment:
    id: str
    history_number: str
    user_id: str
    content: str
    image_urls: list[str] = dataclasses.field(default_factory=list)
    created_at: datetime.datetime = dataclasses.field(default_factory=utcnow)
    updated_at: datetime.datetime = dataclasses.field(default_factory=utcnow)


@dataclasses.dataclass
class SlopeImageBackup:
    """Shadow of a slope's image slots, keyed by history number."""

    history_number: str
    images: SlopeImages = dataclasses.field(default_factory=SlopeImages)
    last_backup_at: datetime.datetime = dataclasses.field(default_factory=utcnow)
    created_at: datetime.datetime = dataclasses.field(default_factory=utcnow)


@dataclasses.dataclass
class CommentImageBackup:
    """Shadow of a comment's image list, keyed by comment id."""

    comment_id: str
    history_number: str
    image_urls: list[str] = dataclasses.field(default_factory=list)
    last_backup_at: datetime.datetime = dataclasses.field(default_factory=utcnow)
