"""Well-known-text interchange for footprints and roof lines.

Ordinates are written ``lng lat`` (x = longitude) as WKT expects.  Parsing
and formatting go through shapely so any WKT dialect shapely reads is
accepted.
"""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

from shapely import wkt as shapely_wkt
from shapely.errors import ShapelyError
from shapely.geometry import LineString, MultiLineString, Polygon

from roofline.core.exceptions import WKTError
from roofline.core.models import Coordinate, Footprint, LinearFeature
from roofline.geometry.primitives import LocalProjection

logger = logging.getLogger("roofline.geometry.wkt")


def _load(text: str):
    if not text or not text.strip():
        raise WKTError("Empty WKT string")
    try:
        return shapely_wkt.loads(text)
    except (ShapelyError, ValueError) as exc:
        raise WKTError(f"Unparseable WKT: {exc}") from exc


def footprint_to_wkt(footprint: Footprint) -> str:
    """``POLYGON ((lng lat, ...))`` with the closing vertex repeated."""
    return shapely_wkt.dumps(Polygon(footprint.to_lnglat()), trim=True)


def footprint_from_wkt(text: str) -> Footprint:
    """Parse a ``POLYGON`` into a footprint (exterior ring only)."""
    geom = _load(text)
    if geom.geom_type == "MultiPolygon" and len(geom.geoms) == 1:
        geom = geom.geoms[0]
    if geom.geom_type != "Polygon":
        raise WKTError(f"Expected POLYGON, got {geom.geom_type}")
    if len(geom.interiors):
        logger.warning("Ignoring %d interior ring(s) in footprint WKT", len(geom.interiors))
    return Footprint.from_lnglat(list(geom.exterior.coords))


def linestring_to_wkt(start: Coordinate, end: Coordinate) -> str:
    """``LINESTRING (lng1 lat1, lng2 lat2)``."""
    return shapely_wkt.dumps(LineString([(start.lng, start.lat), (end.lng, end.lat)]), trim=True)


def linestring_from_wkt(text: str) -> list[Coordinate]:
    geom = _load(text)
    if geom.geom_type != "LineString":
        raise WKTError(f"Expected LINESTRING, got {geom.geom_type}")
    return [Coordinate(lat=c[1], lng=c[0]) for c in geom.coords]


def feature_to_wkt(feature: LinearFeature, projection: LocalProjection) -> str:
    """Unproject a plane feature back to a geographic ``LINESTRING``."""
    return linestring_to_wkt(projection.unproject(feature.start), projection.unproject(feature.end))


def features_to_wkt(features: Iterable[LinearFeature], projection: LocalProjection) -> str:
    """Several features as one ``MULTILINESTRING``; empty input gives ``MULTILINESTRING EMPTY``."""
    lines = []
    for f in features:
        a, b = projection.unproject(f.start), projection.unproject(f.end)
        lines.append([(a.lng, a.lat), (b.lng, b.lat)])
    return shapely_wkt.dumps(MultiLineString(lines), trim=True)


def plane_polygon_to_wkt(points: Sequence[Sequence[float]]) -> str:
    """Planar ring as ``POLYGON`` in feet, for debugging and CLI output."""
    return shapely_wkt.dumps(Polygon([(p[0], p[1]) for p in points]), trim=True)


def plane_polygon_from_wkt(text: str) -> list[tuple[float, float]]:
    """Exterior ring of a planar ``POLYGON`` without the closing vertex."""
    geom = _load(text)
    if geom.geom_type != "Polygon":
        raise WKTError(f"Expected POLYGON, got {geom.geom_type}")
    coords = [(x, y) for x, y, *_ in geom.exterior.coords]
    return coords[:-1]


def plane_line_to_wkt(start: Sequence[float], end: Sequence[float]) -> str:
    return shapely_wkt.dumps(LineString([tuple(start[:2]), tuple(end[:2])]), trim=True)
