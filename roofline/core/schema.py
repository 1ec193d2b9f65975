"""Pydantic input document for the CLI and JSON callers.

Example document::

    {
      "building_id": "parcel-42",
      "location": {"lat": 39.7392, "lng": -104.9903},
      "candidates": [
        {"source": "osm_buildings", "confidence": 0.85,
         "wkt": "POLYGON((-104.9904 39.7391, ...))"}
      ],
      "reference": {"area_sqft": 2050},
      "orientation": [{"azimuth_deg": 180, "pitch_deg": 26.6, "area_sqft": 900}],
      "roof_style": "hip"
    }
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field, ValidationError, model_validator

from roofline.core.exceptions import InputError
from roofline.core.models import (
    BoundingBox,
    Coordinate,
    Footprint,
    FootprintCandidate,
    PlaneOrientation,
    ReferenceMeasurement,
)


class LocationModel(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)

    def to_coordinate(self) -> Coordinate:
        return Coordinate(lat=self.lat, lng=self.lng)


class CandidateModel(BaseModel):
    """One footprint candidate given either as WKT or as ``[lng, lat]`` pairs."""

    source: str
    confidence: float = Field(default=0.5, ge=0, le=1)
    wkt: Optional[str] = None
    coordinates: Optional[list[tuple[float, float]]] = None
    properties: dict = Field(default_factory=dict)

    @model_validator(mode="after")
    def _one_geometry(self) -> "CandidateModel":
        if (self.wkt is None) == (self.coordinates is None):
            raise ValueError("candidate needs exactly one of 'wkt' or 'coordinates'")
        return self

    def to_candidate(self) -> FootprintCandidate:
        from roofline.geometry.wkt import footprint_from_wkt

        if self.wkt is not None:
            footprint = footprint_from_wkt(self.wkt)
        else:
            footprint = Footprint.from_lnglat(self.coordinates)
        return FootprintCandidate(
            footprint=footprint,
            source=self.source,
            confidence=self.confidence,
            properties=dict(self.properties),
        )


class BBoxModel(BaseModel):
    sw: LocationModel
    ne: LocationModel

    def to_bbox(self) -> BoundingBox:
        return BoundingBox(sw=self.sw.to_coordinate(), ne=self.ne.to_coordinate())


class ReferenceModel(BaseModel):
    area_sqft: Optional[float] = Field(default=None, gt=0)
    perimeter_ft: Optional[float] = Field(default=None, gt=0)
    bbox: Optional[BBoxModel] = None

    def to_reference(self) -> ReferenceMeasurement:
        return ReferenceMeasurement(
            area_sqft=self.area_sqft,
            perimeter_ft=self.perimeter_ft,
            bbox=self.bbox.to_bbox() if self.bbox else None,
        )


class OrientationModel(BaseModel):
    azimuth_deg: float = Field(ge=0, lt=360)
    pitch_deg: float = Field(default=0.0, ge=0, le=90)
    area_sqft: float = Field(default=1.0, gt=0)

    def to_orientation(self) -> PlaneOrientation:
        return PlaneOrientation(
            azimuth_deg=self.azimuth_deg,
            pitch_deg=self.pitch_deg,
            area_sqft=self.area_sqft,
        )


class RoofInput(BaseModel):
    """Everything the pipeline needs for one building."""

    building_id: str = "unknown"
    location: Optional[LocationModel] = None
    candidates: list[CandidateModel] = Field(default_factory=list)
    reference: Optional[ReferenceModel] = None
    orientation: list[OrientationModel] = Field(default_factory=list)
    ridge_bearing_deg: Optional[float] = None
    roof_style: Literal["hip", "gable"] = "hip"

    def to_candidates(self) -> list[FootprintCandidate]:
        return [c.to_candidate() for c in self.candidates]

    def to_reference(self) -> Optional[ReferenceMeasurement]:
        return self.reference.to_reference() if self.reference else None

    def to_orientation(self) -> list[PlaneOrientation]:
        return [o.to_orientation() for o in self.orientation]


def parse_input(data: dict) -> RoofInput:
    """Validate a decoded JSON document; schema violations raise :class:`InputError`."""
    try:
        return RoofInput.model_validate(data)
    except ValidationError as exc:
        raise InputError(f"Invalid input document: {exc}") from exc


def load_input(path: str | Path) -> RoofInput:
    """Read and validate an input document from a JSON file."""
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise InputError(f"File not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise InputError(f"{path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise InputError(f"{path} must contain a JSON object")
    return parse_input(data)
