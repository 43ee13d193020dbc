"""
Vehicle progress along the route.

Turns raw GPS fixes (or simulated progress) into a filtered, monotonic
distance-along-route plus speed and heading. Bad fixes are dropped and
logged, never raised.
"""

import logging
import math
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Optional, Tuple

from .distance_index import DistanceIndex
from .errors import InputError, TelemetryRejected
from .geometry import GeoPoint, as_geo_point, point_bearing, point_distance
from . import config

logger = logging.getLogger('codriver.progress')


@dataclass(frozen=True)
class VehicleFix:
    """A raw fix from the GPS (or any live position source)."""
    position: Any  # GeoPoint, (lng, lat), or object with lat/lng
    accuracy: Optional[float]  # Metres, None if unknown
    reported_speed: Optional[float]  # m/s, None or negative if unknown
    reported_heading: Optional[float]  # Degrees, None or negative if unknown
    timestamp: float  # Seconds


@dataclass(frozen=True)
class VehicleState:
    """Vehicle progress for one tick."""
    position: GeoPoint
    heading: float  # Degrees, 0 = north
    speed: float  # m/s
    distance_along_route: float  # Metres
    timestamp: float = 0.0


class ProgressTracker:
    """Filters fixes and snaps them onto the route."""

    def __init__(
        self,
        index: DistanceIndex,
        max_accuracy: float = config.GPS_MAX_ACCURACY_M,
        max_implied_speed: float = config.GPS_MAX_IMPLIED_SPEED_MPS,
        jump_window_s: float = config.GPS_JUMP_CHECK_WINDOW_S,
        min_fix_interval: float = config.GPS_MIN_FIX_INTERVAL_S,
        history_size: int = config.GPS_HISTORY_SIZE,
        heading_window: int = config.GPS_HEADING_WINDOW,
        heading_min_move: float = config.GPS_HEADING_MIN_MOVE_M,
        max_route_offset: float = config.MATCH_MAX_OFFSET_M,
    ):
        self.index = index
        self.max_accuracy = max_accuracy
        self.max_implied_speed = max_implied_speed
        self.jump_window_s = jump_window_s
        self.min_fix_interval = min_fix_interval
        self.heading_window = heading_window
        self.heading_min_move = heading_min_move
        self.max_route_offset = max_route_offset

        self._history: Deque[Tuple[GeoPoint, float]] = deque(maxlen=history_size)
        self._distance = 0.0
        self._heading: Optional[float] = None
        self._locked = False  # Snapping within a window around the last distance
        self._off_route = 0
        self.rejected_count = 0
        self.accepted_count = 0

    @property
    def distance(self) -> float:
        return self._distance

    def reset(self) -> None:
        """Forget all history, e.g. when navigation restarts."""
        self._history.clear()
        self._distance = 0.0
        self._heading = None
        self._locked = False
        self._off_route = 0
        self.rejected_count = 0
        self.accepted_count = 0

    # ------------------------------------------------------------------
    # Live GPS
    # ------------------------------------------------------------------

    def update_fix(self, fix: VehicleFix) -> Optional[VehicleState]:
        """
        Process a live fix.

        Returns:
            VehicleState, or None if the fix was rejected or the route is
            empty.
        """
        try:
            return self._accept(fix)
        except TelemetryRejected as e:
            self.rejected_count += 1
            logger.debug("Fix rejected: %s", e)
            return None
        except InputError as e:
            logger.warning("Cannot track fix: %s", e)
            return None

    def _accept(self, fix: VehicleFix) -> VehicleState:
        try:
            position = as_geo_point(fix.position)
            timestamp = float(fix.timestamp)
        except (InputError, TypeError, ValueError) as e:
            raise TelemetryRejected("malformed", str(e)) from e

        if fix.accuracy is not None and fix.accuracy > self.max_accuracy:
            raise TelemetryRejected("accuracy", f"{fix.accuracy:.0f}m > {self.max_accuracy:.0f}m")

        implied_speed = None
        dt = None
        if self._history:
            last_pos, last_ts = self._history[-1]
            dt = timestamp - last_ts
            if dt < self.min_fix_interval:
                raise TelemetryRejected("throttled", f"{dt:.2f}s since last fix")
            moved = point_distance(last_pos, position)
            implied_speed = moved / dt
            if dt < self.jump_window_s and implied_speed > self.max_implied_speed:
                raise TelemetryRejected(
                    "jump", f"{moved:.0f}m in {dt:.1f}s ({implied_speed:.0f} m/s)"
                )

        if _known(fix.reported_speed):
            speed = float(fix.reported_speed)
        else:
            speed = implied_speed or 0.0

        self._distance = self._match(position, speed, dt)

        self._history.append((position, timestamp))
        self.accepted_count += 1
        self._heading = self._estimate_heading(position, fix.reported_heading)

        return VehicleState(
            position=position,
            heading=self._heading,
            speed=speed,
            distance_along_route=self._distance,
            timestamp=timestamp,
        )

    def _match(self, position: GeoPoint, speed: float, dt: Optional[float]) -> float:
        """
        Distance along the route for an accepted fix.

        The first fix (and the first after losing the route) searches the
        whole route. After that only a window from just behind the last
        distance to a speed-dependent distance ahead is searched, and forward
        progress per fix is capped. A fix too far from the route keeps the
        last distance.
        """
        if not self._locked:
            projection = self.index.project(position)
            if projection.offset_m > self.max_route_offset:
                logger.debug("Fix %.0fm from route, waiting for lock", projection.offset_m)
                return self._distance
            self._locked = True
            self._off_route = 0
            return max(self._distance, projection.distance_along)

        v = max(speed, config.MATCH_MIN_SPEED_MPS)
        elapsed = dt or 0.0
        ahead = max(config.MATCH_WINDOW_MIN_M, v * max(config.MATCH_WINDOW_S, elapsed))
        window = (self._distance - config.MATCH_WINDOW_BEHIND_M, self._distance + ahead)
        projection = self.index.project(position, window=window)

        if projection.offset_m > self.max_route_offset:
            self._off_route += 1
            if self._off_route >= config.MATCH_REACQUIRE_FIXES:
                logger.info("Off route for %d fixes, searching whole route", self._off_route)
                self._locked = False
            return self._distance

        self._off_route = 0
        max_jump = v * max(config.MATCH_MAX_JUMP_S, elapsed)
        return min(max(self._distance, projection.distance_along), self._distance + max_jump)

    def _estimate_heading(self, position: GeoPoint, reported: Optional[float]) -> float:
        """Windowed heading, else reported, else previous, else the road."""
        if len(self._history) >= self.heading_window:
            oldest, _ = self._history[-self.heading_window]
            if point_distance(oldest, position) >= self.heading_min_move:
                return point_bearing(oldest, position)

        if _known(reported):
            return float(reported) % 360
        if self._heading is not None:
            return self._heading
        return self.index.heading_at_distance(self._distance)

    # ------------------------------------------------------------------
    # Simulation
    # ------------------------------------------------------------------

    def update_simulation(
        self,
        fraction: float,
        speed: float,
        timestamp: float = 0.0,
    ) -> Optional[VehicleState]:
        """Progress from a simulated fraction (0-1) of the route."""
        try:
            if fraction is None or not math.isfinite(fraction):
                raise InputError(f"invalid progress fraction: {fraction!r}")
            fraction = min(max(fraction, 0.0), 1.0)
            self._distance = max(self._distance, fraction * self.index.total_length)
            position = self.index.point_at_distance(self._distance)
            self._heading = self.index.heading_at_distance(self._distance)
        except InputError as e:
            logger.warning("Cannot track simulation: %s", e)
            return None

        return VehicleState(
            position=position,
            heading=self._heading,
            speed=max(speed, 0.0),
            distance_along_route=self._distance,
            timestamp=timestamp,
        )


def _known(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value) and value >= 0
