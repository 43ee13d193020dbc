"""Render rally-style callout text for curve, flow, clear and zone callouts.

Rendering is pure: the same event, kind, zone character and units always give
the same text. The scheduler decides *when*; this module only decides *what*.
"""

from enum import Enum
from typing import Optional

from utils.conversions import metres_to_feet, mph_to_kmh, round_to_step

from .events import CalloutKind
from .flow import FlowEvent, FlowSeverity, FlowShape
from .zones import ZoneCharacter
from . import config


class Units(Enum):
    METRIC = "metric"
    IMPERIAL = "imperial"


class Phrasebook:
    """Builds callout text for events."""

    # Distance callouts (distance_m, spoken_text)
    DISTANCE_CALLS = [
        (1000, "one thousand"),
        (500, "five hundred"),
        (400, "four hundred"),
        (300, "three hundred"),
        (200, "two hundred"),
        (150, "one fifty"),
        (100, "one hundred"),
        (80, "eighty"),
        (50, "fifty"),
        (30, "thirty"),
    ]

    # Severity names (index = severity number)
    SEVERITY_NAMES = [
        "",  # 0 - unused
        "one",
        "two",
        "three",
        "four",
        "five",
        "six",
    ]

    MODIFIER_WORDS = {
        "tightens": "tightens",
        "opens": "opens",
        "long": "long",
        "sharp": "sharp",
        "crest": "over crest",
        "caution": "caution",
    }

    FLOW_NAMES = {
        FlowSeverity.SWEEPER: "sweeper",
        FlowSeverity.SIGNIFICANT: "bend",
        FlowSeverity.DANGER: "sharp bend",
    }

    def render(
        self,
        event,
        kind: CalloutKind,
        character: ZoneCharacter = ZoneCharacter.TRANSIT,
        units: Units = Units.METRIC,
        distance: Optional[float] = None,
        next_event=None,
        gap: Optional[float] = None,
    ) -> str:
        """
        Text for an EARLY, MAIN or FINAL callout.

        Args:
            event: CurveEvent, FlowEvent, or anything shaped like EventSource.
            kind: Which warning this is.
            character: Zone character at the event, selects the style.
            units: Metric or imperial for distances and speeds.
            distance: Metres to the event, used for the EARLY distance call.
            next_event: Second event folded into a compound MAIN.
            gap: Metres between the two compounded events.
        """
        if isinstance(event, FlowEvent):
            text = self._flow_text(event, kind, character)
        elif getattr(event, 'is_chicane', False):
            text = self._chicane_text(event, kind, character)
        else:
            text = self._curve_text(event, kind, character, units)

        if kind == CalloutKind.EARLY and distance is not None and units == Units.METRIC:
            call = self.distance_call(distance)
            if call:
                text = text.replace(" ahead", "", 1)
                text = f"{call}, {text[0].lower()}{text[1:]}"

        if kind == CalloutKind.MAIN and next_event is not None:
            joiner = "into" if gap is not None and gap < config.COMPOUND_INTO_GAP_M else "then"
            text = f"{text} {joiner} {self.short_text(next_event)}"

        return text

    def short_text(self, event) -> str:
        """Direction and severity only, e.g. "right three"."""
        if isinstance(event, FlowEvent):
            return f"{event.direction.value} {self.FLOW_NAMES[event.severity]}"
        if getattr(event, 'is_chicane', False):
            return "chicane"
        return f"{event.direction.value} {self._severity_name(event)}"

    def render_clear(self, distance: float, units: Units = Units.METRIC) -> str:
        """e.g. "Clear, 400 meters" or "Clear, 1500 feet"."""
        if units == Units.IMPERIAL:
            feet = round_to_step(metres_to_feet(distance), config.CLEAR_ROUND_FEET)
            return f"Clear, {feet} feet"
        metres = round_to_step(distance, config.CLEAR_ROUND_METRES)
        return f"Clear, {metres} meters"

    def render_zone_transition(self, character: ZoneCharacter) -> str:
        return config.ZONE_TRANSITION_PHRASES[character.value]

    def render_wake_up(self) -> str:
        return config.WAKE_UP_PHRASE

    def distance_call(self, distance_m: float) -> Optional[str]:
        """Get distance callout for the given distance."""
        tolerance = config.DISTANCE_CALL_TOLERANCE_M
        for threshold, call in self.DISTANCE_CALLS:
            if threshold - tolerance <= distance_m <= threshold + tolerance:
                return call
        return None

    def speed_advice(self, severity: int, units: Units) -> str:
        mph = config.CORNER_SPEED_MPH.get(severity)
        if mph is None:
            return ""
        if units == Units.IMPERIAL:
            return f"slow to {mph}"
        return f"slow to {int(round(mph_to_kmh(mph) / 5.0)) * 5}"

    # ------------------------------------------------------------------
    # Event styles
    # ------------------------------------------------------------------

    def _severity_name(self, event) -> str:
        severity = int(event.severity_level)
        return self.SEVERITY_NAMES[min(max(severity, 1), 6)]

    def _modifier_word(self, event) -> Optional[str]:
        modifier = getattr(event, 'modifier', None)
        value = getattr(modifier, 'value', modifier)
        return self.MODIFIER_WORDS.get(value)

    def _curve_text(self, event, kind: CalloutKind, character: ZoneCharacter, units: Units) -> str:
        direction = event.direction.value
        severity = int(event.severity_level)
        hairpin = getattr(getattr(event, 'modifier', None), 'value', None) == "hairpin"

        if kind == CalloutKind.FINAL:
            if severity >= config.ALWAYS_ANNOUNCE_SEVERITY:
                return f"{direction.capitalize()} {self._severity_name(event)} now!"
            return f"{direction.capitalize()} now"

        if hairpin:
            base = f"Hairpin {direction}"
        else:
            base = f"{direction.capitalize()} {self._severity_name(event)}"

        # Transit zones get direction and severity only
        modifier = None if character == ZoneCharacter.TRANSIT else self._modifier_word(event)

        if kind == CalloutKind.EARLY:
            return f"{base} ahead, {modifier}" if modifier else f"{base} ahead"

        parts = [base]
        if modifier:
            parts.append(modifier)
        text = " ".join(parts)
        if character == ZoneCharacter.TECHNICAL and severity >= config.ALWAYS_ANNOUNCE_SEVERITY:
            advice = self.speed_advice(severity, units)
            if advice:
                text = f"{text}, {advice}"
        return text

    def _chicane_text(self, event, kind: CalloutKind, character: ZoneCharacter) -> str:
        children = list(getattr(event, 'chicane_children', ()) or ())
        severe = int(event.severity_level) >= config.HARD_SEVERITY
        name = "Chicane" if severe else "S-curve"

        if kind == CalloutKind.FINAL:
            return f"{name} now!"

        if not children:
            text = f"{name} {event.direction.value}"
        else:
            directions = "-".join(c.direction.value for c in children)
            text = f"{name} {directions}"
            if character != ZoneCharacter.TRANSIT:
                text += " " + "-".join(self._severity_name(c) for c in children)

        if kind == CalloutKind.EARLY:
            return f"{text} ahead"
        return text

    def _flow_text(self, event: FlowEvent, kind: CalloutKind, character: ZoneCharacter) -> str:
        direction = event.direction.value
        name = self.FLOW_NAMES[event.severity]

        if kind == CalloutKind.FINAL:
            return f"{direction.capitalize()} now!"

        if event.severity == FlowSeverity.DANGER:
            base = f"Sharp {direction}"
        else:
            base = f"{direction.capitalize()} {name}"

        if kind == CalloutKind.EARLY:
            return f"{base} ahead"

        if event.shape == FlowShape.TIGHT and event.severity != FlowSeverity.DANGER:
            base = f"{base}, tight"
        return f"{base}, {int(round(event.total_angle))} degrees"


_default = Phrasebook()


def render(
    event,
    kind: CalloutKind,
    character: ZoneCharacter = ZoneCharacter.TRANSIT,
    units: Units = Units.METRIC,
    distance: Optional[float] = None,
    next_event=None,
    gap: Optional[float] = None,
) -> str:
    """Render with the default phrasebook."""
    return _default.render(event, kind, character, units, distance, next_event, gap)
