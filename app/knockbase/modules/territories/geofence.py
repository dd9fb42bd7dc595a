"""
Planar point-in-polygon assignment of coordinates to territories.

Latitude plays the x axis and longitude the y axis of the parity test; no geodesic
correction is applied. Polygons are implicitly closed (last vertex joins the first).
"""
from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, TypeVar


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float

    @classmethod
    def from_mapping(cls, raw: Any) -> "Coordinate":
        """Accepts {"latitude", "longitude"} / {"lat", "lng"} mappings or (lat, lng) pairs."""
        if isinstance(raw, Coordinate):
            return raw
        if isinstance(raw, dict):
            lat = raw.get("latitude", raw.get("lat"))
            lng = raw.get("longitude", raw.get("lng", raw.get("lon")))
        else:
            lat, lng = raw
        if lat is None or lng is None or isinstance(lat, bool) or isinstance(lng, bool):
            raise ValueError(f"Not a coordinate: {raw!r}")
        return cls(float(lat), float(lng))

    def to_dict(self) -> dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}


class Bounded(Protocol):
    id: Any
    points: Sequence[Any]


TerritoryT = TypeVar("TerritoryT", bound=Bounded)


def is_degenerate(polygon: Sequence[Any]) -> bool:
    return len(polygon) < 3


def contains(polygon: Sequence[Any], point: Coordinate) -> bool:
    """Ray-casting parity test. Fewer than 3 vertices never contains anything."""
    if is_degenerate(polygon):
        return False
    verts = [Coordinate.from_mapping(p) for p in polygon]
    n = len(verts)
    inside = False
    j = n - 1
    for i in range(n):
        pi, pj = verts[i], verts[j]
        if (pi.longitude > point.longitude) != (pj.longitude > point.longitude):
            x_cross = (pj.latitude - pi.latitude) * (point.longitude - pi.longitude) / (pj.longitude - pi.longitude) + pi.latitude
            if point.latitude < x_cross:
                inside = not inside
        j = i
    return inside


def assign(point: Coordinate, territories: Iterable[TerritoryT]) -> TerritoryT | None:
    """First territory, in the supplied order, whose polygon contains ``point``; None otherwise."""
    for territory in territories:
        if contains(territory.points, point):
            return territory
    return None


def polygon_area(polygon: Sequence[Any]) -> float:
    """Absolute shoelace area in square degrees; 0 for degenerate polygons."""
    if is_degenerate(polygon):
        return 0.0
    verts = [Coordinate.from_mapping(p) for p in polygon]
    total = 0.0
    for i, a in enumerate(verts):
        b = verts[(i + 1) % len(verts)]
        total += a.latitude * b.longitude - b.latitude * a.longitude
    return abs(total) / 2.0


class TieBreak(str, Enum):
    """How overlapping territories are ordered before first-match assignment."""

    OLDEST = "oldest"
    NEWEST = "newest"
    SMALLEST_AREA = "smallest_area"

    @classmethod
    def parse(cls, value: str | None) -> "TieBreak":
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.OLDEST


def order_for_tie_break(territories: Iterable[TerritoryT], policy: TieBreak) -> list[TerritoryT]:
    """
    Deterministic candidate order. Equal keys fall back to ascending id.
    ``created_at`` is read when present; otherwise the id alone decides age.
    """
    items = list(territories)

    def _created(t: Any) -> Any:
        return (getattr(t, "created_at", None) is None, getattr(t, "created_at", None) or 0, t.id)

    if policy is TieBreak.NEWEST:
        items.sort(key=lambda t: t.id)
        items.sort(key=lambda t: (getattr(t, "created_at", None) is not None, getattr(t, "created_at", None) or 0), reverse=True)
        return items
    if policy is TieBreak.SMALLEST_AREA:
        return sorted(items, key=lambda t: (polygon_area(t.points), t.id))
    return sorted(items, key=_created)
