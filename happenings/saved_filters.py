"""Saved happenings filters and the subset that applies to digests."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .location import normalize_city, normalize_radius_miles, normalize_zip

FILTER_DAY_VALUES = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")
FILTER_COST_VALUES = ("free", "paid", "unknown")
FILTER_TYPE_VALUES = frozenset(
    {
        "open_mic",
        "shows",
        "showcase",
        "workshop",
        "song_circle",
        "gig",
        "jam_session",
        "poetry",
        "irish",
        "blues",
        "bluegrass",
        "comedy",
        "other",
    }
)
# "shows" is a synthetic type covering these categories.
SHOW_TYPES = frozenset({"showcase", "gig", "other"})


@dataclass(frozen=True)
class SavedFilters:
    type: str | None = None
    csc: bool = False
    days: tuple[str, ...] = ()
    cost: str | None = None
    city: str | None = None
    zip: str | None = None
    radius: int | None = None

    @property
    def has_location(self) -> bool:
        return bool(self.zip or self.city)

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.type:
            payload["type"] = self.type
        if self.csc:
            payload["csc"] = True
        if self.days:
            payload["days"] = list(self.days)
        if self.cost:
            payload["cost"] = self.cost
        if self.zip:
            payload["zip"] = self.zip
        elif self.city:
            payload["city"] = self.city
        if self.has_location and self.radius is not None:
            payload["radius"] = self.radius
        return payload


def _normalize_days(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        source = value.split(",")
    elif isinstance(value, (list, tuple, set)):
        source = list(value)
    else:
        return ()
    seen: list[str] = []
    for item in source:
        day = str(item).strip().lower()
        if day in FILTER_DAY_VALUES and day not in seen:
            seen.append(day)
    return tuple(seen)


def sanitize_saved_filters(raw: Any) -> SavedFilters:
    """Keep only recognized values from a stored filter payload.

    Raises ``ValueError`` when the payload is not a mapping at all.
    """
    if raw is None:
        return SavedFilters()
    if not isinstance(raw, Mapping):
        raise ValueError(f"Saved filters must be a mapping, got {type(raw).__name__}")

    raw_type = raw.get("type")
    filter_type = (
        raw_type if isinstance(raw_type, str) and raw_type in FILTER_TYPE_VALUES else None
    )
    csc = raw.get("csc") in (True, "1", 1)
    raw_cost = raw.get("cost")
    cost = raw_cost if isinstance(raw_cost, str) and raw_cost in FILTER_COST_VALUES else None
    raw_zip = raw.get("zip")
    raw_city = raw.get("city")
    zip_code = normalize_zip(raw_zip) if isinstance(raw_zip, str) else None
    city = normalize_city(raw_city) if isinstance(raw_city, str) else None
    radius_source = raw.get("radius")
    if not isinstance(radius_source, (str, int)) or isinstance(radius_source, bool):
        radius_source = None

    has_location = bool(zip_code or city)
    return SavedFilters(
        type=filter_type,
        csc=csc,
        days=_normalize_days(raw.get("days")),
        cost=cost,
        zip=zip_code,
        city=None if zip_code else city,
        radius=normalize_radius_miles(radius_source) if has_location else None,
    )


def has_saved_filters(filters: SavedFilters) -> bool:
    return bool(
        filters.type
        or filters.csc
        or filters.days
        or filters.cost
        or filters.city
        or filters.zip
    )


def to_digest_applicable(filters: SavedFilters) -> SavedFilters:
    """Drop the criteria a digest cannot apply (the CSC toggle)."""
    return SavedFilters(
        type=filters.type,
        days=filters.days,
        cost=filters.cost,
        zip=filters.zip,
        city=None if filters.zip else filters.city,
        radius=(
            normalize_radius_miles(filters.radius) if filters.has_location else None
        ),
    )


def has_digest_applicable_filters(filters: SavedFilters) -> bool:
    return bool(
        filters.type or filters.days or filters.cost or filters.city or filters.zip
    )
