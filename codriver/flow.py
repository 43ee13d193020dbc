"""
Zone-aware flow event detection.

Resamples the route at a fixed arc-length interval that depends on the zone
(tight in technical sections, coarse on highways), then groups consecutive
same-direction heading changes into sweeper/significant/danger events.
Used by the advisory/highway driving modes in place of CurveDetector.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Sequence, Tuple

from .distance_index import DistanceIndex
from .events import Direction
from .geometry import GeoPoint, angle_difference
from .zones import Zone, ZoneCharacter, character_at, sort_zones
from . import config

logger = logging.getLogger('codriver.flow')


class FlowSeverity(Enum):
    SWEEPER = "sweeper"
    SIGNIFICANT = "significant"
    DANGER = "danger"


class FlowShape(Enum):
    TIGHT = "tight"
    MEDIUM = "medium"
    SWEEPER = "sweeper"


@dataclass(frozen=True)
class FlowEvent:
    """A continuous turn found by resampling."""
    event_id: str
    position: GeoPoint  # Apex
    direction: Direction
    total_angle: float  # Unsigned degrees
    shape: FlowShape
    severity: FlowSeverity
    zone: ZoneCharacter
    apex_distance: float
    start_distance: float
    end_distance: float
    length_m: float
    sample_count: int

    @property
    def distance_from_start(self) -> float:
        return self.start_distance

    @property
    def severity_level(self) -> int:
        return config.FLOW_SEVERITY_LEVELS[self.severity.value]

    @property
    def is_chicane(self) -> bool:
        return False

    @property
    def chicane_children(self) -> Tuple:
        return ()


@dataclass
class _Sample:
    distance: float
    heading: float
    delta: float
    character: ZoneCharacter

    @property
    def direction(self) -> Optional[Direction]:
        if self.delta > config.FLOW_DIRECTION_THRESHOLD_DEG:
            return Direction.RIGHT
        if self.delta < -config.FLOW_DIRECTION_THRESHOLD_DEG:
            return Direction.LEFT
        return None


class FlowEventDetector:
    """Detect flow events at zone-dependent sample spacing."""

    def __init__(
        self,
        sample_intervals: Optional[dict] = None,
        turn_thresholds: Optional[dict] = None,
    ):
        self.sample_intervals = sample_intervals or config.FLOW_SAMPLE_INTERVALS_M
        self.turn_thresholds = turn_thresholds or config.FLOW_TURN_THRESHOLDS

    def detect(
        self,
        route: Any,
        zones: Optional[Sequence[Zone]] = None,
    ) -> List[FlowEvent]:
        """
        Detect flow events along a route.

        Args:
            route: DistanceIndex, or a polyline to index.
            zones: Zone context. Uncovered stretches are treated as transit.

        Returns:
            Flow events sorted by start distance.
        """
        index = route if isinstance(route, DistanceIndex) else DistanceIndex.build(route)
        if index.is_empty or len(index) < 3:
            return []

        zones = sort_zones(zones)
        samples = self._resample(index, zones)

        events = []
        for first, last in self._find_runs(samples):
            event = self._classify(index, samples, first, last)
            if event is not None:
                events.append(event)

        logger.debug("Flow detection: %d samples, %d events", len(samples), len(events))
        return events

    def _resample(self, index: DistanceIndex, zones: List[Zone]) -> List[_Sample]:
        samples = []
        total = index.total_length
        d = 0.0
        prev_heading = None
        while True:
            character = character_at(zones, d)
            heading = index.heading_at_distance(d)
            delta = 0.0 if prev_heading is None else angle_difference(prev_heading, heading)
            samples.append(_Sample(d, heading, delta, character))
            prev_heading = heading
            if d >= total:
                break
            d = min(d + self.sample_intervals[character.value], total)
        return samples

    @staticmethod
    def _find_runs(samples: List[_Sample]) -> List[Tuple[int, int]]:
        """(first, last) sample indices of same-direction runs."""
        runs = []
        i = 1
        n = len(samples)
        while i < n:
            direction = samples[i].direction
            if direction is None:
                i += 1
                continue

            first = last = i
            j = i + 1
            while j < n:
                current = samples[j].direction
                if current == direction:
                    last = j
                    j += 1
                elif (current is None
                        and j + 1 < n
                        and samples[j + 1].direction == direction):
                    last = j + 1
                    j += 2
                else:
                    break

            runs.append((first, last))
            i = last + 1
        return runs

    def _classify(
        self,
        index: DistanceIndex,
        samples: List[_Sample],
        first: int,
        last: int,
    ) -> Optional[FlowEvent]:
        run = samples[first:last + 1]
        total = sum(s.delta for s in run)
        angle = abs(total)

        start = samples[first - 1].distance
        end = samples[last].distance
        character = samples[first - 1].character
        thresholds = self.turn_thresholds[character.value]

        if angle < thresholds['min_angle']:
            return None

        if angle >= thresholds['danger']:
            severity = FlowSeverity.DANGER
        elif angle >= thresholds['significant']:
            severity = FlowSeverity.SIGNIFICANT
        else:
            severity = FlowSeverity.SWEEPER

        length = max(end - start, 1.0)
        density = angle / length
        if density > config.FLOW_TIGHT_DENSITY:
            shape = FlowShape.TIGHT
        elif density > config.FLOW_MEDIUM_DENSITY:
            shape = FlowShape.MEDIUM
        else:
            shape = FlowShape.SWEEPER

        apex = max(run, key=lambda s: abs(s.delta))

        return FlowEvent(
            event_id=f"flow-{int(start)}",
            position=index.point_at_distance(apex.distance),
            direction=Direction.from_delta(total),
            total_angle=angle,
            shape=shape,
            severity=severity,
            zone=character,
            apex_distance=apex.distance,
            start_distance=start,
            end_distance=end,
            length_m=length,
            sample_count=len(run),
        )
