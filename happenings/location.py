"""Location helpers for zip/city filters and radius search."""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass

from .config import settings

VALID_RADII = (5, 10, 25, 50)
EARTH_RADIUS_MILES = 3959.0
MILES_PER_DEGREE_LAT = 69.0


@dataclass(frozen=True)
class BoundingBox:
    lat_min: float
    lat_max: float
    lng_min: float
    lng_max: float

    def contains(self, latitude: float, longitude: float) -> bool:
        return (
            self.lat_min <= latitude <= self.lat_max
            and self.lng_min <= longitude <= self.lng_max
        )


def default_radius() -> int:
    configured = settings.default_radius_miles
    return configured if configured in VALID_RADII else 10


def normalize_radius_miles(value: str | int | None) -> int:
    """Clamp a radius to one of the supported values, else the default."""
    if value is None or value == "":
        return default_radius()
    try:
        parsed = int(str(value).strip())
    except ValueError:
        return default_radius()
    return parsed if parsed in VALID_RADII else default_radius()


def normalize_city(value: str | None) -> str | None:
    """Trim and drop a trailing ``, ST`` state suffix."""
    if not value:
        return None
    cleaned = value.strip()
    comma = cleaned.find(",")
    if comma > 0:
        cleaned = cleaned[:comma].strip()
    return cleaned or None


def normalize_zip(value: str | None) -> str | None:
    if not value:
        return None
    cleaned = "".join(str(value).split())
    return cleaned or None


def haversine_distance_miles(
    lat1: float, lng1: float, lat2: float, lng2: float
) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_MILES * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def compute_bounding_box(
    latitude: float, longitude: float, radius_miles: float
) -> BoundingBox:
    lat_delta = radius_miles / MILES_PER_DEGREE_LAT
    cos_lat = max(0.01, math.cos(math.radians(latitude)))
    lng_delta = radius_miles / (MILES_PER_DEGREE_LAT * cos_lat)
    return BoundingBox(
        lat_min=latitude - lat_delta,
        lat_max=latitude + lat_delta,
        lng_min=longitude - lng_delta,
        lng_max=longitude + lng_delta,
    )


def centroid(points: Iterable[tuple[float, float]]) -> tuple[float, float] | None:
    collected = list(points)
    if not collected:
        return None
    lat = sum(point[0] for point in collected) / len(collected)
    lng = sum(point[1] for point in collected) / len(collected)
    return lat, lng
