"""Tests for codriver/flow.py - zone-aware flow event detection."""

import pytest

from codriver.distance_index import DistanceIndex
from codriver.events import Direction
from codriver.flow import (
    FlowEvent,
    FlowEventDetector,
    FlowSeverity,
    FlowShape,
    _Sample,
)
from codriver.zones import Zone, ZoneCharacter

from route_builders import arc, straight, walk


def _whole_route(character, length=10_000.0):
    return [Zone(character, 0.0, length)]


class TestFlowDetection:
    """Tests for detecting flow events on synthetic routes."""

    @pytest.mark.unit
    def test_empty_route(self):
        assert FlowEventDetector().detect([]) == []

    @pytest.mark.unit
    def test_straight_has_no_events(self, straight_polyline):
        assert FlowEventDetector().detect(straight_polyline) == []

    @pytest.mark.unit
    def test_right_angle_in_transit(self, right_angle_polyline):
        """Uncovered routes are sampled every 50m as transit."""
        events = FlowEventDetector().detect(DistanceIndex.build(right_angle_polyline))

        assert len(events) == 1
        event = events[0]
        assert isinstance(event, FlowEvent)
        assert event.event_id == "flow-150"
        assert event.direction == Direction.RIGHT
        assert event.total_angle == pytest.approx(90.0, abs=1.0)
        assert event.severity == FlowSeverity.DANGER
        assert event.severity_level == 5
        assert event.zone == ZoneCharacter.TRANSIT
        assert event.shape == FlowShape.TIGHT
        assert event.distance_from_start == event.start_distance == 150.0
        assert event.start_distance < event.apex_distance <= event.end_distance

    @pytest.mark.unit
    def test_accepts_polyline_or_index(self, right_angle_polyline):
        detector = FlowEventDetector()
        from_polyline = detector.detect(right_angle_polyline)
        from_index = detector.detect(DistanceIndex.build(right_angle_polyline))
        assert from_polyline == from_index

    @pytest.mark.unit
    def test_technical_samples_finer(self, right_angle_polyline):
        detector = FlowEventDetector()
        transit = detector.detect(right_angle_polyline)
        technical = detector.detect(right_angle_polyline, _whole_route(ZoneCharacter.TECHNICAL))

        assert len(technical) == 1
        assert technical[0].zone == ZoneCharacter.TECHNICAL
        assert technical[0].total_angle == pytest.approx(90.0, abs=1.0)
        assert technical[0].sample_count > transit[0].sample_count

    @pytest.mark.unit
    def test_zone_thresholds(self):
        """A 36 degree bend matters on the highway but not in town."""
        polyline = walk(straight(0, 200) + arc(0, 36) + straight(36, 200))
        detector = FlowEventDetector()

        transit = detector.detect(polyline)
        urban = detector.detect(polyline, _whole_route(ZoneCharacter.URBAN))

        assert len(transit) == 1
        assert transit[0].severity == FlowSeverity.SIGNIFICANT
        assert transit[0].severity_level == 4
        assert urban == []

    @pytest.mark.unit
    def test_not_a_chicane(self, right_angle_polyline):
        event = FlowEventDetector().detect(right_angle_polyline)[0]
        assert event.is_chicane is False
        assert event.chicane_children == ()


class TestFlowRuns:
    """Tests for grouping resampled headings into runs."""

    @staticmethod
    def _samples(deltas):
        return [
            _Sample(distance=50.0 * i, heading=0.0, delta=d, character=ZoneCharacter.TRANSIT)
            for i, d in enumerate(deltas)
        ]

    @pytest.mark.unit
    def test_single_flat_sample_bridged(self):
        samples = self._samples([0, 10, 0, 10, 0, 0])
        assert FlowEventDetector._find_runs(samples) == [(1, 3)]

    @pytest.mark.unit
    def test_two_flat_samples_split(self):
        samples = self._samples([0, 10, 0, 0, 10, 0])
        assert FlowEventDetector._find_runs(samples) == [(1, 1), (4, 4)]

    @pytest.mark.unit
    def test_direction_change_splits(self):
        samples = self._samples([0, 10, -10, 0])
        assert FlowEventDetector._find_runs(samples) == [(1, 1), (2, 2)]

    @pytest.mark.unit
    def test_tiny_deltas_are_straight(self):
        samples = self._samples([0, 0.3, -0.4, 0.2])
        assert FlowEventDetector._find_runs(samples) == []
