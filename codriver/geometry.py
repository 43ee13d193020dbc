"""Geometry utilities for GPS and road calculations."""

import math
from typing import Any, List, NamedTuple, Sequence, Tuple

from .errors import InputError

EARTH_RADIUS_M = 6371000


class GeoPoint(NamedTuple):
    """A WGS84 coordinate in GeoJSON order (longitude first)."""

    lng: float
    lat: float


def as_geo_point(point: Any) -> GeoPoint:
    """Normalise a point to a GeoPoint.

    Accepts GeoPoints, objects with .lat and .lng/.lon, or (lng, lat)
    sequences as used by GeoJSON.
    """
    if isinstance(point, GeoPoint):
        return point
    if hasattr(point, 'lat'):
        lng = getattr(point, 'lng', None)
        if lng is None:
            lng = getattr(point, 'lon', None)
        if lng is None:
            raise InputError(f"point has no longitude: {point!r}")
        return GeoPoint(float(lng), float(point.lat))
    try:
        lng, lat = point[0], point[1]
        return GeoPoint(float(lng), float(lat))
    except (TypeError, IndexError, ValueError) as e:
        raise InputError(f"not a coordinate: {point!r}") from e


def as_polyline(points: Sequence[Any]) -> Tuple[GeoPoint, ...]:
    """Normalise a sequence of points to an immutable polyline."""
    if points is None:
        return ()
    return tuple(as_geo_point(p) for p in points)


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate great circle distance between two GPS points in meters."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def point_distance(a: GeoPoint, b: GeoPoint) -> float:
    """Haversine distance between two GeoPoints in meters."""
    return haversine_distance(a.lat, a.lng, b.lat, b.lng)


def bearing(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate bearing from point 1 to point 2 in degrees (0-360)."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_lambda = math.radians(lon2 - lon1)

    x = math.sin(delta_lambda) * math.cos(phi2)
    y = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(
        delta_lambda
    )

    bearing_rad = math.atan2(x, y)
    return (math.degrees(bearing_rad) + 360) % 360


def point_bearing(a: GeoPoint, b: GeoPoint) -> float:
    """Bearing from GeoPoint a to GeoPoint b in degrees (0-360)."""
    return bearing(a.lat, a.lng, b.lat, b.lng)


def angle_difference(angle1: float, angle2: float) -> float:
    """Calculate smallest difference between two angles in degrees (-180 to 180).

    Positive means angle2 is clockwise of angle1 (a right turn).
    """
    diff = (angle2 - angle1 + 180) % 360 - 180
    return diff


def point_along_bearing(
    lat: float, lon: float, bearing_deg: float, distance_m: float
) -> Tuple[float, float]:
    """Calculate point at given distance and bearing from start point.

    Returns (lat, lon).
    """
    lat_rad = math.radians(lat)
    lon_rad = math.radians(lon)
    bearing_rad = math.radians(bearing_deg)
    angular = distance_m / EARTH_RADIUS_M

    lat2 = math.asin(
        math.sin(lat_rad) * math.cos(angular)
        + math.cos(lat_rad) * math.sin(angular) * math.cos(bearing_rad)
    )

    lon2 = lon_rad + math.atan2(
        math.sin(bearing_rad) * math.sin(angular) * math.cos(lat_rad),
        math.cos(angular) - math.sin(lat_rad) * math.sin(lat2),
    )

    return math.degrees(lat2), math.degrees(lon2)


def interpolate(a: GeoPoint, b: GeoPoint, t: float) -> GeoPoint:
    """Linear interpolation between two points (t in 0-1)."""
    return GeoPoint(a.lng + t * (b.lng - a.lng), a.lat + t * (b.lat - a.lat))


def closest_point_on_segment(
    point: GeoPoint,
    seg_start: GeoPoint,
    seg_end: GeoPoint,
) -> Tuple[GeoPoint, float]:
    """
    Find closest point on a line segment to a given point.

    Returns: (closest_point, distance_along_segment_fraction)
    """
    # Convert to approximate meters for calculation
    x1 = (seg_start.lng - point.lng) * 111320 * math.cos(math.radians(point.lat))
    y1 = (seg_start.lat - point.lat) * 110540
    x2 = (seg_end.lng - point.lng) * 111320 * math.cos(math.radians(point.lat))
    y2 = (seg_end.lat - point.lat) * 110540

    dx = x2 - x1
    dy = y2 - y1

    if dx == 0 and dy == 0:
        return seg_start, 0.0

    # Parameter t for closest point on infinite line
    t = max(0.0, min(1.0, -((x1 * dx + y1 * dy) / (dx * dx + dy * dy))))

    return interpolate(seg_start, seg_end, t), t


def cumulative_distances(points: List[GeoPoint]) -> List[float]:
    """Calculate cumulative distance along a list of points."""
    distances = [0.0]
    for i in range(1, len(points)):
        distances.append(distances[-1] + point_distance(points[i - 1], points[i]))
    return distances
