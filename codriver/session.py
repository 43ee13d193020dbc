"""Co-driver session: wires route, detectors, tracker and scheduler together."""

import logging
import time
from collections import deque
from typing import Any, Callable, Deque, List, Optional, Sequence

from .corners import CurveDetector
from .distance_index import DistanceIndex
from .events import CalloutCommand, EventSource
from .flow import FlowEventDetector
from .gps import GPSReader
from .progress import ProgressTracker, VehicleFix, VehicleState
from .scheduler import CalloutScheduler, DrivingMode, EventStrategy
from .simulator import DriveSimulator
from .zones import Zone, sort_zones
from . import config

logger = logging.getLogger('codriver.session')

HISTORY_SIZE = 50


class CoDriver:
    """
    A co-driver for one vehicle.

    Architecture
    ------------
    load_route() builds everything that depends on the route in one go:

    1. DistanceIndex over the polyline
    2. Events from CurveDetector or FlowEventDetector (per DrivingMode.strategy)
    3. A fresh ProgressTracker
    4. A scheduler reset (new phase map, timestamps and epoch)

    Each accepted fix or simulation step then runs one scheduler tick and
    returns the command it emitted, if any.

    Route and events are immutable after load. A new route replaces them
    wholesale rather than patching the old ones.
    """

    def __init__(
        self,
        announcer=None,
        mode: Optional[DrivingMode] = None,
        live_gps: bool = False,
        time_scale: float = 1.0,
        strict: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.mode = mode or DrivingMode()
        self.scheduler = CalloutScheduler(
            announcer=announcer,
            mode=self.mode,
            live_gps=live_gps,
            strict=strict,
            time_scale=time_scale,
            clock=clock,
        )
        self.curve_detector = CurveDetector()
        self.flow_detector = FlowEventDetector()

        self.index = DistanceIndex.build(())
        self.tracker = ProgressTracker(self.index)
        self.events: List[EventSource] = []
        self.zones: List[Zone] = []
        self.history: Deque[CalloutCommand] = deque(maxlen=HISTORY_SIZE)
        self.last_state: Optional[VehicleState] = None

    @property
    def announcer(self):
        return self.scheduler.announcer

    @property
    def has_route(self) -> bool:
        return not self.index.is_empty

    def load_route(self, polyline: Sequence[Any], zones: Optional[Sequence[Zone]] = None) -> int:
        """
        Load a new route and reset all callout state.

        Returns:
            Number of events detected.
        """
        index = DistanceIndex.build(polyline)
        zones = sort_zones(zones)

        if self.mode.strategy == EventStrategy.FLOW:
            events = self.flow_detector.detect(index, zones)
        else:
            events = self.curve_detector.detect(index.points)
        events = sorted(events, key=lambda e: e.distance_from_start)

        self.index = index
        self.zones = zones
        self.events = events
        self.tracker = ProgressTracker(index)
        self.scheduler.reset(zones)
        self.history.clear()
        self.last_state = None

        logger.info(
            "Route loaded: %.0fm, %d events (%s), %d zones",
            index.total_length, len(events), self.mode.strategy.value, len(zones),
        )
        return len(events)

    def start(self) -> None:
        """(Re)start navigation from the beginning of the current route."""
        self.tracker.reset()
        self.scheduler.reset()
        self.history.clear()
        self.last_state = None

    def update_fix(self, fix: VehicleFix, now: Optional[float] = None) -> Optional[CalloutCommand]:
        """Process a live GPS fix."""
        state = self.tracker.update_fix(fix)
        if state is None:
            return None
        return self._tick(state, now)

    def update_simulation(
        self,
        fraction: float,
        speed: float,
        now: Optional[float] = None,
    ) -> Optional[CalloutCommand]:
        """Process simulated progress."""
        state = self.tracker.update_simulation(fraction, speed, timestamp=now or 0.0)
        if state is None:
            return None
        return self._tick(state, now)

    def _tick(self, state: VehicleState, now: Optional[float]) -> Optional[CalloutCommand]:
        self.last_state = state
        command = self.scheduler.tick(state, self.events, now)
        if command is not None:
            self.history.append(command)
        return command

    def upcoming(self, limit: int = 5) -> List[EventSource]:
        """Next events ahead of the vehicle."""
        position = self.tracker.distance
        ahead = [e for e in self.events if e.distance_from_start >= position]
        return ahead[:limit]

    def run_simulation(
        self,
        simulator: DriveSimulator,
        tick_interval: float = config.SIM_TICK_INTERVAL_S,
        realtime: bool = True,
        sleep: Callable[[float], None] = time.sleep,
    ) -> List[CalloutCommand]:
        """
        Drive the whole route with a simulator.

        Ticks are tick_interval seconds of real time apart. The scheduler
        sees real time, the simulator advances by time_scale times that.
        """
        self.start()
        commands = []
        ticks = 0
        try:
            while not simulator.finished:
                fraction, speed = simulator.step(tick_interval)
                ticks += 1
                command = self.update_simulation(fraction, speed, now=ticks * tick_interval)
                if command is not None:
                    commands.append(command)
                if realtime:
                    sleep(tick_interval)
        except KeyboardInterrupt:
            logger.info("Simulation interrupted")

        logger.info("Simulation finished: %d callouts in %d ticks", len(commands), ticks)
        return commands

    def run_live(self, gps: GPSReader) -> None:
        """Main loop for a serial GPS. Runs until interrupted."""
        gps.connect()
        self.start()
        try:
            for fix in gps.fixes():
                self.update_fix(fix)
        except KeyboardInterrupt:
            logger.info("Shutting down...")
        finally:
            gps.disconnect()
