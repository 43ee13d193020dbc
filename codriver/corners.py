"""
Curve detection from heading changes along a route polyline.

Produces discrete rally-style curve events: direction, severity 1-6 (6 is
tightest), modifier, and chicane grouping of tight alternating curves.
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Sequence, Tuple

from .errors import GeometryDegenerate
from .events import Direction
from .geometry import (
    GeoPoint,
    angle_difference,
    as_polyline,
    cumulative_distances,
    point_bearing,
    point_distance,
)
from . import config

logger = logging.getLogger('codriver.corners')


class Modifier(Enum):
    NONE = "none"
    TIGHTENS = "tightens"
    OPENS = "opens"
    LONG = "long"
    SHARP = "sharp"
    HAIRPIN = "hairpin"
    CREST = "crest"
    CAUTION = "caution"


@dataclass(frozen=True)
class CurveEvent:
    """
    A detected curve with rally-style classification.

    Attributes:
        event_id: Stable identifier ("curve-N", or "chicane-N" for groups).
        position: Apex point (run-midpoint vertex).
        direction: LEFT or RIGHT. For chicanes, the first turn direction.
        severity: 1 (gentlest) to 6 (tightest).
        angle_degrees: Total heading change through the curve, unsigned.
        radius_m: Arc length over angle in radians. For chicanes, the
            tightest child radius.
        modifier: HAIRPIN, SHARP, LONG or NONE.
        distance_from_start: Metres from route start to curve entry.
        length_m: Arc length in metres (entry to exit span for chicanes).
        apex_distance: Metres from route start to the apex.
        exit_distance: Metres from route start to curve exit.
        is_chicane: True for a grouped sequence of alternating curves.
        chicane_children: The grouped curves, in route order.
    """

    event_id: str
    position: GeoPoint
    direction: Direction
    severity: int
    angle_degrees: float
    radius_m: float
    modifier: Modifier
    distance_from_start: float
    length_m: float
    apex_distance: float
    exit_distance: float
    is_chicane: bool = False
    chicane_children: Tuple['CurveEvent', ...] = field(default_factory=tuple)

    @property
    def severity_level(self) -> int:
        return self.severity


def classify_severity(radius_m: float, angle_degrees: float) -> int:
    """Radius band, then escalate for large total angles."""
    severity = config.SEVERITY_TIGHTEST
    for min_radius, level in config.RADIUS_SEVERITY:
        if radius_m > min_radius:
            severity = level
            break

    if angle_degrees > config.ESCALATE_ANGLE_DEG:
        severity = min(severity + 1, 6)
    elif severity < 4 and angle_degrees > config.ESCALATE_SOFT_ANGLE_DEG:
        severity = min(severity + 1, 5)
    return severity


def classify_modifier(angle_degrees: float, length_m: float, severity: int) -> Modifier:
    if angle_degrees > config.HAIRPIN_ANGLE_DEG:
        return Modifier.HAIRPIN
    if angle_degrees > config.SHARP_ANGLE_DEG:
        return Modifier.SHARP
    if severity < config.HARD_SEVERITY and length_m > config.LONG_LENGTH_LOW_SEVERITY_M:
        return Modifier.LONG
    if severity >= config.HARD_SEVERITY and length_m > config.LONG_LENGTH_HIGH_SEVERITY_M:
        return Modifier.LONG
    return Modifier.NONE


@dataclass
class _Run:
    """Vertex span of one turning run (indices into the cleaned points)."""
    first_vertex: int
    last_vertex: int
    total: float


class CurveDetector:
    """
    Detect curves from signed heading changes between consecutive segments.

    Algorithm
    ---------
    1. Bearings:
        Bearing of each segment. Zero-length segments carry no bearing and
        are dropped.

    2. Runs:
        A run opens when |delta| exceeds start_threshold and continues
        while same-signed deltas exceed continue_threshold. One sample
        below threshold is absorbed if the sample after it resumes the same
        turn, so a single noisy vertex does not split one physical curve.

    3. Classification:
        Runs with |total| >= min_total_angle become curves. Arc length gives
        each turning vertex half of each adjacent segment. Radius is arc
        length over angle in radians, banded to severity 1-6 then escalated
        for large angles.

    4. Chicanes:
        Consecutive alternating curves separated by at most max_chicane_gap
        and spanning at most max_chicane_length are grouped.
    """

    def __init__(
        self,
        start_threshold: float = config.CURVE_START_THRESHOLD_DEG,
        continue_threshold: float = config.CURVE_CONTINUE_THRESHOLD_DEG,
        min_total_angle: float = config.CURVE_MIN_TOTAL_ANGLE_DEG,
        # Chicane grouping
        merge_chicanes: bool = True,
        max_chicane_gap: float = config.CHICANE_MAX_GAP_M,
        max_chicane_length: float = config.CHICANE_MAX_LENGTH_M,
        max_chicane_curves: int = config.CHICANE_MAX_CURVES,
    ):
        self.start_threshold = start_threshold
        self.continue_threshold = continue_threshold
        self.min_total_angle = min_total_angle
        self.merge_chicanes = merge_chicanes
        self.max_chicane_gap = max_chicane_gap
        self.max_chicane_length = max_chicane_length
        self.max_chicane_curves = max_chicane_curves

    def detect(self, polyline: Sequence[Any]) -> List[CurveEvent]:
        """
        Detect curves along a polyline.

        Args:
            polyline: Route points (GeoPoints, (lng, lat) pairs, or objects
                with lat/lng).

        Returns:
            Curve events sorted by distance_from_start. Empty for fewer than
            three usable points.
        """
        points = as_polyline(polyline)
        if len(points) < 3:
            return []

        points = self._drop_degenerate(points)
        if len(points) < 3:
            return []

        distances = cumulative_distances(list(points))
        bearings = [point_bearing(points[i], points[i + 1]) for i in range(len(points) - 1)]
        # deltas[k] is the heading change at vertex k + 1
        deltas = [angle_difference(bearings[k], bearings[k + 1]) for k in range(len(bearings) - 1)]

        curves = []
        for run in self._find_runs(deltas):
            angle = abs(run.total)
            if angle < self.min_total_angle:
                continue
            curves.append(self._build_curve(len(curves) + 1, run, points, distances))

        if self.merge_chicanes:
            curves = self._merge_chicanes(curves)

        logger.debug("Detected %d curves over %.0fm", len(curves), distances[-1])
        return curves

    def _drop_degenerate(self, points: Tuple[GeoPoint, ...]) -> Tuple[GeoPoint, ...]:
        kept = [points[0]]
        for p in points[1:]:
            try:
                self._check_segment(kept[-1], p)
            except GeometryDegenerate as e:
                logger.debug("Skipping segment: %s", e)
                continue
            kept.append(p)
        return tuple(kept)

    @staticmethod
    def _check_segment(a: GeoPoint, b: GeoPoint):
        if point_distance(a, b) < config.MIN_SEGMENT_LENGTH_M:
            raise GeometryDegenerate(f"zero-length segment at {b.lat:.6f},{b.lng:.6f}")

    def _find_runs(self, deltas: List[float]) -> List[_Run]:
        """Group heading changes into same-direction turning runs."""
        runs = []
        k = 0
        n = len(deltas)
        while k < n:
            if abs(deltas[k]) <= self.start_threshold:
                k += 1
                continue

            sign = 1.0 if deltas[k] > 0 else -1.0
            total = deltas[k]
            end = k
            j = k + 1
            while j < n:
                if deltas[j] * sign > self.continue_threshold:
                    total += deltas[j]
                    end = j
                    j += 1
                    continue
                # Absorb one quiet sample if the turn resumes right after it
                if (abs(deltas[j]) <= self.continue_threshold
                        and j + 1 < n
                        and deltas[j + 1] * sign > self.continue_threshold):
                    total += deltas[j] + deltas[j + 1]
                    end = j + 1
                    j += 2
                    continue
                break

            runs.append(_Run(first_vertex=k + 1, last_vertex=end + 1, total=total))
            k = end + 1
        return runs

    def _build_curve(
        self,
        number: int,
        run: _Run,
        points: Tuple[GeoPoint, ...],
        distances: List[float],
    ) -> CurveEvent:
        angle = abs(run.total)

        length = 0.0
        for v in range(run.first_vertex, run.last_vertex + 1):
            length += 0.5 * (distances[v] - distances[v - 1])
            length += 0.5 * (distances[v + 1] - distances[v])

        radius = length / math.radians(angle)
        severity = classify_severity(radius, angle)
        apex = (run.first_vertex + run.last_vertex) // 2

        return CurveEvent(
            event_id=f"curve-{number}",
            position=points[apex],
            direction=Direction.from_delta(run.total),
            severity=severity,
            angle_degrees=angle,
            radius_m=radius,
            modifier=classify_modifier(angle, length, severity),
            distance_from_start=distances[run.first_vertex],
            length_m=length,
            apex_distance=distances[apex],
            exit_distance=distances[run.last_vertex],
        )

    def _merge_chicanes(self, curves: List[CurveEvent]) -> List[CurveEvent]:
        """
        Group consecutive alternating curves into chicanes.

        A chicane is:
        - Two or more consecutive curves with alternating directions
        - Gap between each pair is at most max_chicane_gap
        - Total span is at most max_chicane_length
        """
        if len(curves) < 2:
            return curves

        merged = []
        i = 0
        while i < len(curves):
            group = [curves[i]]
            j = i + 1
            while j < len(curves) and len(group) < self.max_chicane_curves:
                prev, nxt = group[-1], curves[j]
                gap = nxt.distance_from_start - prev.exit_distance
                span = nxt.exit_distance - group[0].distance_from_start
                if (nxt.direction != prev.direction
                        and gap <= self.max_chicane_gap
                        and span <= self.max_chicane_length):
                    group.append(nxt)
                    j += 1
                else:
                    break

            if len(group) > 1:
                merged.append(self._build_chicane(group))
            else:
                merged.append(curves[i])
            i = j
        return merged

    @staticmethod
    def _build_chicane(group: List[CurveEvent]) -> CurveEvent:
        first, last = group[0], group[-1]
        tightest = min(group, key=lambda c: c.radius_m)
        # The group id is derived from the first child so it stays stable
        number = first.event_id.split('-')[-1]
        children = tuple(group)
        return CurveEvent(
            event_id=f"chicane-{number}",
            position=tightest.position,
            direction=first.direction,
            severity=max(c.severity for c in group),
            angle_degrees=sum(c.angle_degrees for c in group),
            radius_m=tightest.radius_m,
            modifier=Modifier.NONE,
            distance_from_start=first.distance_from_start,
            length_m=last.exit_distance - first.distance_from_start,
            apex_distance=tightest.apex_distance,
            exit_distance=last.exit_distance,
            is_chicane=True,
            chicane_children=children,
        )
