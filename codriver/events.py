"""Shared event and callout types.

CurveEvent and FlowEvent are produced by different detectors but both satisfy
EventSource, which is all the scheduler looks at.
"""

import math
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Optional, Protocol, Sequence, Tuple, runtime_checkable


class Direction(Enum):
    LEFT = "left"
    RIGHT = "right"

    @classmethod
    def from_delta(cls, delta: float) -> 'Direction':
        """Positive heading change is clockwise, i.e. a right turn."""
        return cls.RIGHT if delta > 0 else cls.LEFT

    @property
    def spoken(self) -> str:
        return self.value.capitalize()


class WarningPhase(IntEnum):
    """Announcement progress for one event. Only ever moves forward."""
    UNANNOUNCED = 0
    EARLY_DONE = 1
    MAIN_DONE = 2
    FINAL_DONE = 3


class Priority(IntEnum):
    LOW = 0
    NORMAL = 1
    HIGH = 2


class CalloutKind(Enum):
    EARLY = "early"
    MAIN = "main"
    FINAL = "final"
    CLEAR = "clear"
    ZONE = "zone"
    WAKE_UP = "wake_up"  # First event after a long quiet stretch


@runtime_checkable
class EventSource(Protocol):
    """Minimal shape the scheduler needs from a detected event."""

    @property
    def event_id(self) -> str: ...

    @property
    def distance_from_start(self) -> float: ...

    @property
    def severity_level(self) -> int: ...

    @property
    def direction(self) -> Direction: ...

    @property
    def is_chicane(self) -> bool: ...

    @property
    def chicane_children(self) -> Tuple['EventSource', ...]: ...


def is_well_formed(event) -> bool:
    """True if an event carries everything the scheduler reads from it."""
    try:
        event_id = event.event_id
        distance = float(event.distance_from_start)
        severity = int(event.severity_level)
        direction = event.direction
    except (AttributeError, TypeError, ValueError):
        return False
    if not event_id or not math.isfinite(distance):
        return False
    if not isinstance(direction, Direction):
        return False
    return 1 <= severity <= 6


@dataclass(frozen=True)
class CalloutCommand:
    """
    A single callout leaving the scheduler.

    Attributes:
        text: Phrase to speak.
        priority: HIGH preempts in-flight speech; NORMAL and LOW are dropped
            while the announcer is busy.
        haptic_pattern: Vibration durations in milliseconds, or None.
        source_event_id: Event the callout is about (zone id for zone
            transitions, None for clear callouts).
        timestamp: Scheduler clock time the command was issued.
        kind: EARLY, MAIN, FINAL, CLEAR, ZONE or WAKE_UP.
        epoch: Scheduler epoch when issued. Delivery results carrying an older
            epoch are ignored.
        related_event_ids: Other events folded into this callout (compounds).
    """

    text: str
    priority: Priority
    haptic_pattern: Optional[Tuple[int, ...]]
    source_event_id: Optional[str]
    timestamp: float
    kind: CalloutKind
    epoch: int = 0
    related_event_ids: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def event_ids(self) -> Sequence[str]:
        ids = [self.source_event_id] if self.source_event_id else []
        return ids + list(self.related_event_ids)
