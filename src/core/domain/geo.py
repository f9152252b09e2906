"""Utilidades geodésicas puras (sin I/O)."""

from __future__ import annotations

import math
from typing import Iterable


EARTH_RADIUS_M = 6_371_000.0

Coordinate = tuple[float, float]


def haversine_m(a: Coordinate, b: Coordinate) -> float:
    """Distancia en metros entre dos pares (lat, lng)."""

    lat1, lng1 = a
    lat2, lng2 = b
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    h = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def within_radius(center: Coordinate, point: Coordinate, radius_m: float) -> bool:
    return haversine_m(center, point) <= radius_m


def center_of(points: Iterable[Coordinate]) -> Coordinate | None:
    """Centroide aritmético; suficiente para extensiones de un rancho."""

    pts = list(points)
    if not pts:
        return None
    lat = sum(p[0] for p in pts) / len(pts)
    lng = sum(p[1] for p in pts) / len(pts)
    return (lat, lng)


def in_bounds(point: Coordinate, *, north_east: Coordinate, south_west: Coordinate) -> bool:
    lat, lng = point
    ne_lat, ne_lng = north_east
    sw_lat, sw_lng = south_west
    return sw_lat <= lat <= ne_lat and sw_lng <= lng <= ne_lng


def is_valid_coordinate(lat: float, lng: float) -> bool:
    return -90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0
