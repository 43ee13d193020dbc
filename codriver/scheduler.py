"""
Callout scheduler: the co-driver's state machine.

Consumes detected events plus vehicle progress once per tick and emits at
most one CalloutCommand. Per-event announcement progress is a single
event_id -> WarningPhase map owned by the scheduler and replaced wholesale on
reset, together with every timestamp bucket.
"""

import logging
import math
import time
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .audio import LoggingAnnouncer
from .errors import AnnouncerUnavailable, StateInconsistency
from .events import (
    CalloutCommand,
    CalloutKind,
    EventSource,
    Priority,
    WarningPhase,
    is_well_formed,
)
from .pacenotes import Phrasebook, Units
from .progress import VehicleState
from .zones import (
    DEFAULT_CHARACTER,
    Zone,
    ZoneCharacter,
    character_at,
    min_severity_for,
    sort_zones,
    zone_at,
)
from . import config

logger = logging.getLogger('codriver.scheduler')


class Aggressiveness(Enum):
    NORMAL = "normal"
    AGGRESSIVE = "aggressive"


class EventStrategy(Enum):
    CURVES = "curves"  # CurveDetector
    FLOW = "flow"  # FlowEventDetector


@dataclass
class DrivingMode:
    """Per-session driving options."""
    aggressiveness: Aggressiveness = Aggressiveness.NORMAL
    units: Units = Units.METRIC
    zone_min_severity: Optional[Dict[str, int]] = None  # Overrides by zone character value
    haptic_enabled: bool = True
    clear_callouts: bool = True
    zone_callouts: bool = True
    wake_up_callouts: bool = True
    strategy: EventStrategy = EventStrategy.CURVES
    min_pause_s: Optional[float] = None  # None uses the per-zone pause
    min_pause_floor_s: float = config.MIN_PAUSE_FLOOR_S


@dataclass(frozen=True)
class WarningWindows:
    """Distances (metres) at which each warning becomes due."""
    early: float
    main: float
    final: float


@dataclass
class _State:
    """Everything reset() throws away."""
    phases: Dict[str, WarningPhase] = field(default_factory=dict)
    tracked: Set[str] = field(default_factory=set)
    last_callout: float = -math.inf  # Curve callouts (EARLY/MAIN/FINAL)
    last_clear: float = -math.inf
    last_zone_callout: float = -math.inf
    zone_id: Optional[str] = None
    announced_zones: Set[str] = field(default_factory=set)
    pending_zone: Optional[Zone] = None
    woken: Set[str] = field(default_factory=set)  # Events already checked for a wake-up
    last_wake_up: float = -math.inf


@dataclass
class _Candidate:
    event: EventSource
    distance: float  # Metres from the vehicle to the event trigger point


class CalloutScheduler:
    """
    Decides which callout, if any, to emit on each tick.

    Per tick
    --------
    1. Tracking:
        Eligible events with -passed_margin < distance <= horizon are
        tracked. Events already tracked stay tracked after being passed
        until they have had their MAIN, so coarse ticks cannot skip one.
        Everything else is dropped along with its phase, silently.

    2. Warnings (nearest event first, first action wins):
        MAIN   HIGH   distance <= main window, phase < MAIN_DONE. Includes
                      the catch-up case where the vehicle is already inside
                      the final window or past the event. Compounds a
                      following non-chicane event starting within 150m.
        EARLY  NORMAL severity >= 4, final < distance <= early, UNANNOUNCED.
        FINAL  HIGH   severity >= 4, 15 < distance <= final, phase MAIN_DONE.

    3. Otherwise a "Curves ahead" wake-up (LOW) when the next event follows
       a long stretch without one, then a pending zone transition (LOW),
       then a "clear" (LOW). Each has its own timestamp bucket.

    NORMAL and LOW commands respect the minimum pause and are not emitted
    while the announcer is busy. HIGH commands ignore both and preempt.
    Phase changes are committed before delivery and never rolled back.
    """

    def __init__(
        self,
        announcer=None,
        mode: Optional[DrivingMode] = None,
        zones: Optional[Sequence[Zone]] = None,
        phrasebook: Optional[Phrasebook] = None,
        live_gps: bool = False,
        strict: bool = False,
        time_scale: float = 1.0,
        lookahead: float = config.LOOKAHEAD_DISTANCE_M,
        passed_margin: float = config.PASSED_MARGIN_M,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.announcer = announcer if announcer is not None else LoggingAnnouncer()
        self.mode = mode or DrivingMode()
        self.zones: List[Zone] = sort_zones(zones)
        self.phrasebook = phrasebook or Phrasebook()
        self.live_gps = live_gps
        self.strict = strict
        self.time_scale = time_scale
        self.lookahead = lookahead
        self.passed_margin = passed_margin
        self._clock = clock

        self.epoch = 0
        self.delivery_failures = 0
        self._state = _State()

    @property
    def time_scale(self) -> float:
        return self._time_scale

    @time_scale.setter
    def time_scale(self, value: float):
        if value is None or not value > 0:
            raise ValueError(f"time_scale must be positive, got {value!r}")
        self._time_scale = float(value)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def reset(self, zones: Optional[Sequence[Zone]] = None) -> int:
        """
        Forget everything: phases, timestamps and zone state.

        Called on route change and navigation (re)start. Returns the new
        epoch; delivery results tagged with an older epoch are ignored.
        """
        if zones is not None:
            self.zones = sort_zones(zones)
        self._state = _State()
        self.epoch += 1
        logger.info("Scheduler reset (epoch %d)", self.epoch)
        return self.epoch

    def phase(self, event_id: str) -> WarningPhase:
        return self._state.phases.get(event_id, WarningPhase.UNANNOUNCED)

    @property
    def tracked_ids(self) -> Set[str]:
        return set(self._state.tracked)

    def _advance(self, event_id: str, phase: WarningPhase) -> bool:
        """Move an event forward. Regressions are refused."""
        current = self.phase(event_id)
        if phase <= current:
            err = StateInconsistency(f"{event_id}: {current.name} -> {phase.name}")
            if self.strict:
                raise err
            logger.error("Ignoring phase regression %s", err)
            return False
        self._state.phases[event_id] = phase
        return True

    # ------------------------------------------------------------------
    # Timing
    # ------------------------------------------------------------------

    def warning_windows(self, speed: float) -> WarningWindows:
        """Seconds-to-arrival windows, floored for low speeds."""
        speed = max(speed or 0.0, 0.0)
        return WarningWindows(
            early=max(config.EARLY_WINDOW_MIN_M, speed * config.EARLY_WINDOW_S),
            main=max(config.MAIN_WINDOW_MIN_M, speed * config.MAIN_WINDOW_S),
            final=max(config.FINAL_WINDOW_MIN_M, speed * config.FINAL_WINDOW_S),
        )

    def min_interval(self, speed: float, character: ZoneCharacter = DEFAULT_CHARACTER) -> float:
        """Minimum pause between NORMAL callouts, shorter at speed and under time acceleration."""
        base = self.mode.min_pause_s
        if base is None:
            base = config.ZONE_MIN_PAUSE_S.get(character.value, config.MIN_PAUSE_S)
        if self.mode.aggressiveness == Aggressiveness.AGGRESSIVE:
            base *= config.AGGRESSIVE_PAUSE_FACTOR

        factor = 1.0
        if speed and speed > config.MIN_PAUSE_REFERENCE_SPEED_MPS:
            factor = max(
                config.MIN_PAUSE_SPEED_FACTOR_FLOOR,
                config.MIN_PAUSE_REFERENCE_SPEED_MPS / speed,
            )
        return max(self.mode.min_pause_floor_s, base * factor) / self.time_scale

    # ------------------------------------------------------------------
    # Eligibility
    # ------------------------------------------------------------------

    def is_eligible(self, event: EventSource) -> bool:
        """Whether an event is announced at all in its zone and mode."""
        severity = int(event.severity_level)
        if severity >= config.ALWAYS_ANNOUNCE_SEVERITY:
            return True

        if event.is_chicane:
            children = event.chicane_children or ()
            if any(int(c.severity_level) >= config.HARD_SEVERITY for c in children):
                return True

        character = self._character_at(event.distance_from_start)
        minimum = min_severity_for(character, self.mode.zone_min_severity)
        if self.live_gps and self.mode.aggressiveness == Aggressiveness.AGGRESSIVE:
            minimum = min(minimum, config.AGGRESSIVE_MIN_SEVERITY)
        return severity >= minimum

    def _character_at(self, distance: float) -> ZoneCharacter:
        return character_at(self.zones, distance)

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def tick(
        self,
        state: Optional[VehicleState],
        events: Iterable[EventSource],
        now: Optional[float] = None,
    ) -> Optional[CalloutCommand]:
        """
        Run one scheduling step.

        Args:
            state: Vehicle progress for this tick.
            events: Candidate events sorted by distance_from_start.
            now: Clock time in seconds (defaults to the scheduler clock).

        Returns:
            The command emitted this tick, or None.
        """
        if now is None:
            now = self._clock()
        try:
            return self._tick(state, events, now)
        except StateInconsistency:
            raise
        except Exception:
            logger.exception("Callout tick failed")
            return None

    def _tick(self, state, events, now: float) -> Optional[CalloutCommand]:
        if state is None:
            return None
        position = float(state.distance_along_route)
        speed = max(float(state.speed or 0.0), 0.0)
        if not math.isfinite(position):
            logger.warning("Ignoring tick with distance %r", state.distance_along_route)
            return None

        events = list(events or ())
        windows = self.warning_windows(speed)
        candidates = self._track(events, position, windows)
        busy = self._announcer_busy()
        vehicle_character = self._character_at(position)
        quiet_for = now - self._state.last_callout
        may_speak = quiet_for >= self.min_interval(speed, vehicle_character) and not busy

        self._update_zone(position)

        for i, candidate in enumerate(candidates):
            event, d = candidate.event, candidate.distance
            phase = self.phase(event.event_id)
            severity = int(event.severity_level)
            hard = severity >= config.HARD_SEVERITY

            if phase < WarningPhase.MAIN_DONE and d <= windows.main:
                return self._main(candidate, candidates[i + 1:], windows, now)

            if (hard and phase == WarningPhase.UNANNOUNCED
                    and windows.final < d <= windows.early):
                if may_speak:
                    return self._early(candidate, now)
                continue

            if (hard and phase == WarningPhase.MAIN_DONE
                    and config.FINAL_MIN_DISTANCE_M < d <= windows.final):
                return self._final(candidate, now)

        if may_speak:
            command = self._wake_up_callout(candidates, events, windows, now)
            if command is not None:
                return command
            command = self._zone_callout(now)
            if command is not None:
                return command

        if not busy:
            return self._clear_callout(candidates, vehicle_character, now)
        return None

    def _announcer_busy(self) -> bool:
        is_busy = getattr(self.announcer, 'is_busy', None)
        if is_busy is None:
            return False
        try:
            return bool(is_busy())
        except Exception as e:
            logger.warning("Announcer busy check failed, assuming idle: %s", e)
            return False

    def _track(
        self,
        events: Iterable[EventSource],
        position: float,
        windows: WarningWindows,
    ) -> List[_Candidate]:
        """Refresh the tracked window and return candidates nearest first."""
        horizon = max(self.lookahead, windows.early)
        previous = self._state.tracked
        tracked: Set[str] = set()
        candidates: List[_Candidate] = []

        for event in events or ():
            if not is_well_formed(event):
                logger.debug("Skipping malformed event %r", event)
                continue
            event_id = event.event_id
            if event_id in tracked:
                continue

            d = float(event.distance_from_start) - position
            in_window = -self.passed_margin < d <= horizon
            owed_main = (event_id in previous
                         and self.phase(event_id) < WarningPhase.MAIN_DONE
                         and d <= horizon)
            if not (in_window or owed_main):
                continue
            if not self.is_eligible(event):
                continue

            tracked.add(event_id)
            candidates.append(_Candidate(event, d))

        dropped = previous - tracked
        if dropped:
            logger.debug("No longer tracking %s", sorted(dropped))
            self._state.phases = {
                k: v for k, v in self._state.phases.items() if k in tracked
            }
        self._state.tracked = tracked

        candidates.sort(key=lambda c: c.distance)
        return candidates

    # ------------------------------------------------------------------
    # Warnings
    # ------------------------------------------------------------------

    def _main(
        self,
        candidate: _Candidate,
        following: List[_Candidate],
        windows: WarningWindows,
        now: float,
    ) -> CalloutCommand:
        event, d = candidate.event, candidate.distance
        second = None
        if not event.is_chicane:
            second = self._compound_partner(event, following)

        related: Tuple[str, ...] = ()
        gap = None
        if second is not None:
            related = (second.event_id,)
            exit_distance = getattr(event, 'exit_distance', event.distance_from_start)
            gap = second.distance_from_start - exit_distance

        text = self.phrasebook.render(
            event,
            CalloutKind.MAIN,
            self._character_at(event.distance_from_start),
            self.mode.units,
            distance=d,
            next_event=second,
            gap=gap,
        )

        self._advance(event.event_id, WarningPhase.MAIN_DONE)
        if d <= windows.final:
            # Too late for a separate FINAL, this MAIN is the last word
            self._advance(event.event_id, WarningPhase.FINAL_DONE)
        if second is not None:
            self._advance(second.event_id, WarningPhase.MAIN_DONE)

        haptic = None
        if self.mode.haptic_enabled:
            severe = int(event.severity_level) >= config.ALWAYS_ANNOUNCE_SEVERITY
            haptic = config.HAPTIC_SEVERE if severe else config.HAPTIC_NORMAL

        self._state.last_callout = now
        return self._emit(text, Priority.HIGH, CalloutKind.MAIN, event.event_id, now,
                          haptic=haptic, related=related)

    def _compound_partner(
        self,
        event: EventSource,
        following: List[_Candidate],
    ) -> Optional[EventSource]:
        """Next event starting within compound range, if it can share the callout."""
        for other in following:
            nxt = other.event
            gap = nxt.distance_from_start - event.distance_from_start
            if gap <= 0:
                continue
            if gap >= config.COMPOUND_MAX_GAP_M:
                return None
            if nxt.is_chicane or self.phase(nxt.event_id) >= WarningPhase.MAIN_DONE:
                return None
            return nxt
        return None

    def _early(self, candidate: _Candidate, now: float) -> CalloutCommand:
        event, d = candidate.event, candidate.distance
        text = self.phrasebook.render(
            event,
            CalloutKind.EARLY,
            self._character_at(event.distance_from_start),
            self.mode.units,
            distance=d,
        )
        self._advance(event.event_id, WarningPhase.EARLY_DONE)
        self._state.last_callout = now
        return self._emit(text, Priority.NORMAL, CalloutKind.EARLY, event.event_id, now)

    def _final(self, candidate: _Candidate, now: float) -> CalloutCommand:
        event, d = candidate.event, candidate.distance
        text = self.phrasebook.render(
            event,
            CalloutKind.FINAL,
            self._character_at(event.distance_from_start),
            self.mode.units,
            distance=d,
        )
        self._advance(event.event_id, WarningPhase.FINAL_DONE)
        haptic = config.HAPTIC_FINAL if self.mode.haptic_enabled else None
        self._state.last_callout = now
        return self._emit(text, Priority.HIGH, CalloutKind.FINAL, event.event_id, now,
                          haptic=haptic)

    # ------------------------------------------------------------------
    # Zone and clear callouts
    # ------------------------------------------------------------------

    def _update_zone(self, position: float) -> None:
        zone = zone_at(self.zones, position)
        if zone is None or zone.zone_id == self._state.zone_id:
            return
        logger.debug("Entered zone %s", zone.zone_id)
        self._state.zone_id = zone.zone_id
        if zone.zone_id in self._state.announced_zones:
            return
        self._state.pending_zone = zone

    def _zone_callout(self, now: float) -> Optional[CalloutCommand]:
        zone = self._state.pending_zone
        if zone is None or not self.mode.zone_callouts:
            return None
        if now - self._state.last_zone_callout < config.ZONE_CALLOUT_MIN_INTERVAL_S / self.time_scale:
            return None

        self._state.pending_zone = None
        self._state.announced_zones.add(zone.zone_id)
        self._state.last_zone_callout = now
        text = self.phrasebook.render_zone_transition(zone.character)
        return self._emit(text, Priority.LOW, CalloutKind.ZONE, zone.zone_id, now)

    def _wake_up_callout(
        self,
        candidates: List[_Candidate],
        events: Sequence[EventSource],
        windows: WarningWindows,
        now: float,
    ) -> Optional[CalloutCommand]:
        """Wake-up call before the first event after a long quiet stretch."""
        if not self.mode.wake_up_callouts:
            return None
        ahead = [c for c in candidates if c.distance > windows.main]
        if not ahead:
            return None
        candidate = ahead[0]
        event = candidate.event
        if (event.event_id in self._state.woken
                or self.phase(event.event_id) != WarningPhase.UNANNOUNCED
                or candidate.distance > max(config.WAKE_UP_LEAD_M, windows.early)):
            return None
        if now - self._state.last_wake_up < config.WAKE_UP_MIN_INTERVAL_S / self.time_scale:
            return None

        self._state.woken.add(event.event_id)
        quiet = self._quiet_stretch_before(event, events)
        if quiet < config.WAKE_UP_MIN_GAP_M:
            return None

        self._state.last_wake_up = now
        text = self.phrasebook.render_wake_up()
        return self._emit(text, Priority.LOW, CalloutKind.WAKE_UP, event.event_id, now)

    def _quiet_stretch_before(self, event: EventSource, events: Sequence[EventSource]) -> float:
        """Metres between the end of the previous announced event (or the route start) and this one."""
        start = float(event.distance_from_start)
        last_end = 0.0
        for other in events:
            if other is event or not is_well_formed(other):
                continue
            other_start = float(other.distance_from_start)
            if other_start >= start or not self.is_eligible(other):
                continue
            end = getattr(other, 'exit_distance', getattr(other, 'end_distance', other_start))
            last_end = max(last_end, float(end))
        return start - last_end

    def _clear_callout(
        self,
        candidates: List[_Candidate],
        character: ZoneCharacter,
        now: float,
    ) -> Optional[CalloutCommand]:
        if not self.mode.clear_callouts or character != ZoneCharacter.TECHNICAL:
            return None

        ahead = [c.distance for c in candidates if c.distance > 0]
        if not ahead or min(ahead) < config.CLEAR_MIN_DISTANCE_M:
            return None
        if now - self._state.last_callout < config.CLEAR_MIN_SILENCE_S / self.time_scale:
            return None
        if now - self._state.last_clear < config.CLEAR_MIN_INTERVAL_S / self.time_scale:
            return None

        self._state.last_clear = now
        text = self.phrasebook.render_clear(min(ahead), self.mode.units)
        return self._emit(text, Priority.LOW, CalloutKind.CLEAR, None, now)

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def _emit(
        self,
        text: str,
        priority: Priority,
        kind: CalloutKind,
        source_event_id: Optional[str],
        now: float,
        haptic: Optional[Tuple[int, ...]] = None,
        related: Tuple[str, ...] = (),
    ) -> CalloutCommand:
        command = CalloutCommand(
            text=text,
            priority=priority,
            haptic_pattern=haptic,
            source_event_id=source_event_id,
            timestamp=now,
            kind=kind,
            epoch=self.epoch,
            related_event_ids=related,
        )
        logger.info("Callout %s [%s] %s: %s", kind.value, priority.name, source_event_id, text)
        self._deliver(command)
        return command

    def _deliver(self, command: CalloutCommand) -> None:
        """Fire and forget. Failures are logged, never retried."""
        try:
            result = self.announcer.announce(command.text, command.priority)
        except Exception as e:
            self._delivery_failed(command, e)
        else:
            if isinstance(result, Future):
                result.add_done_callback(partial(self._on_delivered, command))
            elif result is False:
                self._delivery_failed(command, None)

        if command.haptic_pattern:
            vibrate = getattr(self.announcer, 'vibrate', None)
            if vibrate is not None:
                try:
                    vibrate(command.haptic_pattern)
                except Exception as e:
                    logger.warning("Haptic feedback failed: %s", e)

    def _on_delivered(self, command: CalloutCommand, future: Future) -> None:
        if future.cancelled():
            delivered = False
        elif future.exception() is not None:
            delivered = False
        else:
            delivered = bool(future.result())
        self.acknowledge(command, delivered)

    def acknowledge(self, command: CalloutCommand, delivered: bool) -> bool:
        """
        Record an asynchronous delivery result.

        Returns False if the command belongs to an earlier epoch, in which
        case the result is ignored.
        """
        if command.epoch != self.epoch:
            logger.debug("Ignoring delivery result from epoch %d (now %d)",
                         command.epoch, self.epoch)
            return False
        if not delivered:
            self._delivery_failed(command, None)
        return True

    def _delivery_failed(self, command: CalloutCommand, cause: Optional[Exception]) -> None:
        self.delivery_failures += 1
        err = AnnouncerUnavailable(f"could not deliver {command.kind.value} callout {command.text!r}")
        if cause is not None:
            logger.warning("%s: %s", err, cause)
        else:
            logger.warning("%s", err)
