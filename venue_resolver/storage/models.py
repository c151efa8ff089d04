"""Pydantic models for canonical venue entities."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Location(BaseModel):
    """A reference point supplied by the caller or a location source."""

    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None


class EntityRecord(BaseModel):
    """Canonical, read-only snapshot of one venue row."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str
    created_at: datetime
    slug: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    lat: Optional[float] = Field(default=None, ge=-90, le=90)
    lng: Optional[float] = Field(default=None, ge=-180, le=180)
    category: Optional[str] = None

    @model_validator(mode="after")
    def _coordinates_paired(self) -> "EntityRecord":
        if (self.lat is None) != (self.lng is None):
            raise ValueError("lat and lng must be provided together")
        return self

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None


class RankedResult(EntityRecord):
    """Entity record annotated with its distance to the reference point."""

    distance_km: Optional[float] = None

    @classmethod
    def from_record(cls, record: EntityRecord, distance_km: Optional[float] = None) -> "RankedResult":
        return cls(**{**record.model_dump(), "distance_km": distance_km})
