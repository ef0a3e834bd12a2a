from __future__ import annotations

import pytest

from happenings.location import (
    centroid,
    compute_bounding_box,
    haversine_distance_miles,
    normalize_city,
    normalize_radius_miles,
    normalize_zip,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [(None, 10), ("", 10), ("25", 25), (50, 50), (7, 10), ("far", 10)],
)
def test_normalize_radius_clamps_to_supported_values(raw, expected):
    assert normalize_radius_miles(raw) == expected


def test_normalize_city_and_zip():
    assert normalize_city("  Denver, CO ") == "Denver"
    assert normalize_city("Boulder") == "Boulder"
    assert normalize_city("   ") is None
    assert normalize_zip(" 802 02 ") == "80202"
    assert normalize_zip("") is None


def test_haversine_distance_denver_to_boulder():
    distance = haversine_distance_miles(39.7392, -104.9903, 40.0150, -105.2705)
    assert 23 < distance < 26
    assert haversine_distance_miles(39.7, -104.9, 39.7, -104.9) == 0


def test_bounding_box_contains_points_within_radius():
    box = compute_bounding_box(39.7392, -104.9903, 10)
    assert box.contains(39.7392, -104.9903)
    assert box.contains(39.80, -105.05)
    assert not box.contains(40.0150, -105.2705)


def test_centroid_of_points():
    assert centroid([]) is None
    assert centroid([(1.0, 2.0), (3.0, 4.0)]) == (2.0, 3.0)
