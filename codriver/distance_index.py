"""
Cumulative arc-length index over a route polyline.

Built once per route. Answers "where is the point N metres along the route",
"which way does the road point there" and "how far along the route is this
GPS position". Queries on an empty index raise InputError.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Tuple

import numpy as np

from .errors import InputError
from .geometry import (
    EARTH_RADIUS_M,
    GeoPoint,
    as_geo_point,
    as_polyline,
    closest_point_on_segment,
    interpolate,
    point_bearing,
    point_distance,
)
from . import config

logger = logging.getLogger('codriver.distance_index')


@dataclass(frozen=True)
class Projection:
    """Result of snapping a position onto the route."""
    distance_along: float  # Metres from route start
    offset_m: float  # Metres from the position to the route
    segment_index: int
    point: GeoPoint


class DistanceIndex:
    """Cumulative distance per vertex with point, heading and snap queries."""

    def __init__(self, points: Tuple[GeoPoint, ...], cumulative: np.ndarray):
        self._points = points
        self._cumulative = cumulative
        if points:
            self._lat_rad = np.radians(np.array([p.lat for p in points]))
            self._lng_rad = np.radians(np.array([p.lng for p in points]))
        else:
            self._lat_rad = np.empty(0)
            self._lng_rad = np.empty(0)

    @classmethod
    def build(cls, polyline: Optional[Sequence[Any]]) -> 'DistanceIndex':
        """
        Build an index from a polyline.

        Consecutive coincident vertices are collapsed. A polyline with fewer
        than two distinct vertices yields an empty index.
        """
        points = as_polyline(polyline)

        kept = []
        for p in points:
            if kept and point_distance(kept[-1], p) < config.MIN_SEGMENT_LENGTH_M:
                continue
            kept.append(p)

        if len(kept) < 2:
            if points:
                logger.warning("Degenerate polyline (%d points), index is empty", len(points))
            return cls((), np.zeros(0))

        lat = np.radians(np.array([p.lat for p in kept]))
        lng = np.radians(np.array([p.lng for p in kept]))
        seg = _haversine_np(lat[:-1], lng[:-1], lat[1:], lng[1:])
        cumulative = np.concatenate(([0.0], np.cumsum(seg)))

        logger.debug("Built distance index: %d vertices, %.0fm", len(kept), cumulative[-1])
        return cls(tuple(kept), cumulative)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def is_empty(self) -> bool:
        return len(self._points) < 2

    @property
    def total_length(self) -> float:
        """Route length in metres (0 for an empty index)."""
        if self.is_empty:
            return 0.0
        return float(self._cumulative[-1])

    @property
    def points(self) -> Tuple[GeoPoint, ...]:
        return self._points

    @property
    def cumulative(self) -> np.ndarray:
        """Read-only view of the cumulative distances."""
        view = self._cumulative.view()
        view.flags.writeable = False
        return view

    def __len__(self) -> int:
        return len(self._points)

    def distance_of_vertex(self, index: int) -> float:
        self._require()
        return float(self._cumulative[index])

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def point_at_distance(self, distance: float) -> GeoPoint:
        """Interpolated point at a distance along the route, clamped to the ends."""
        d = self._clamp(distance)
        i = self._segment_at(d)
        seg_len = self._cumulative[i + 1] - self._cumulative[i]
        t = (d - self._cumulative[i]) / seg_len if seg_len > 0 else 0.0
        return interpolate(self._points[i], self._points[i + 1], float(t))

    def heading_at_distance(self, distance: float) -> float:
        """
        Road heading (0-360) at a distance along the route.

        Bearing from the vertex at or before the distance to the vertex a few
        steps ahead, which damps single-vertex noise. Near the route end the
        final segment is used.
        """
        d = self._clamp(distance)
        last = len(self._points) - 1
        if d >= self.total_length - config.HEADING_END_ZONE_M:
            return point_bearing(self._points[last - 1], self._points[last])

        low = self._segment_at(d)
        high = min(low + config.HEADING_LOOKAHEAD_VERTICES, last)
        return point_bearing(self._points[low], self._points[high])

    def nearest_vertex(self, position: Any) -> int:
        """Index of the vertex closest to a position."""
        self._require()
        p = as_geo_point(position)
        distances = _haversine_np(
            math.radians(p.lat), math.radians(p.lng), self._lat_rad, self._lng_rad
        )
        return int(np.argmin(distances))

    def project(self, position: Any, window: Optional[Tuple[float, float]] = None) -> Projection:
        """
        Snap a position onto the route.

        Without a window, finds the nearest vertex anywhere on the route and
        refines by projecting onto the two segments either side of it. With a
        (start, end) window in metres along the route, only segments
        overlapping the window are considered, so a route that doubles back
        or runs beside itself cannot capture the fix.
        """
        self._require()
        p = as_geo_point(position)
        if window is None:
            nearest = self.nearest_vertex(p)
            segments = (nearest - 1, nearest)
        else:
            lo, hi = window
            first = self._segment_at(self._clamp(lo))
            last = self._segment_at(self._clamp(max(lo, hi)))
            segments = range(first, last + 1)

        best = None
        for seg in segments:
            if seg < 0 or seg >= len(self._points) - 1:
                continue
            start, end = self._points[seg], self._points[seg + 1]
            closest, t = closest_point_on_segment(p, start, end)
            offset = point_distance(p, closest)
            if best is None or offset < best.offset_m:
                seg_len = self._cumulative[seg + 1] - self._cumulative[seg]
                best = Projection(
                    distance_along=float(self._cumulative[seg] + t * seg_len),
                    offset_m=offset,
                    segment_index=seg,
                    point=closest,
                )
        return best

    def nearest_distance_to_point(self, position: Any) -> float:
        """Distance along the route of the closest point to a position."""
        return self.project(position).distance_along

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _require(self):
        if self.is_empty:
            raise InputError("distance query on an empty route index")

    def _clamp(self, distance: float) -> float:
        self._require()
        if distance is None or not math.isfinite(distance):
            raise InputError(f"invalid route distance: {distance!r}")
        return min(max(float(distance), 0.0), self.total_length)

    def _segment_at(self, d: float) -> int:
        """Index of the segment containing d (its start vertex)."""
        i = int(np.searchsorted(self._cumulative, d, side='right')) - 1
        return min(max(i, 0), len(self._points) - 2)


def _haversine_np(lat1, lng1, lat2, lng2):
    """Vectorised haversine on radians, returns metres."""
    dlat = lat2 - lat1
    dlng = lng2 - lng1
    a = np.sin(dlat / 2) ** 2 + np.cos(lat1) * np.cos(lat2) * np.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_M * np.arcsin(np.sqrt(np.clip(a, 0.0, 1.0)))
