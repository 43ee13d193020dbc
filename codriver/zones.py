"""Zone (route character) context.

Zones come from an external classifier. Here they are read-only ranges along
the route that select thresholds, sample intervals and phrasing style.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Sequence

from .errors import InputError
from . import config

logger = logging.getLogger('codriver.zones')


class ZoneCharacter(Enum):
    TECHNICAL = "technical"
    TRANSIT = "transit"
    URBAN = "urban"

    @classmethod
    def parse(cls, value) -> 'ZoneCharacter':
        """Accept an enum member or its name/value in any case.

        "highway" is accepted as an alias for transit.
        """
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        if text == "highway":
            text = "transit"
        try:
            return cls(text)
        except ValueError as e:
            raise InputError(f"unknown zone character: {value!r}") from e


DEFAULT_CHARACTER = ZoneCharacter.parse(config.DEFAULT_ZONE_CHARACTER)


@dataclass(frozen=True)
class Zone:
    """A stretch of route with one character, [start_distance, end_distance)."""
    character: ZoneCharacter
    start_distance: float
    end_distance: float
    zone_id: Optional[str] = None

    def __post_init__(self):
        if self.end_distance < self.start_distance:
            raise InputError(
                f"zone ends before it starts: {self.start_distance} > {self.end_distance}"
            )
        if self.zone_id is None:
            object.__setattr__(
                self, 'zone_id', f"{self.character.value}-{int(self.start_distance)}"
            )

    def contains(self, distance: float) -> bool:
        return self.start_distance <= distance < self.end_distance

    @property
    def min_severity(self) -> int:
        return min_severity_for(self.character)

    @property
    def transition_phrase(self) -> str:
        return config.ZONE_TRANSITION_PHRASES[self.character.value]

    @classmethod
    def from_dict(cls, data: dict) -> 'Zone':
        """Build a zone from a mapping with character/start/end keys."""
        try:
            return cls(
                character=ZoneCharacter.parse(data['character']),
                start_distance=float(data.get('start_distance', data.get('start', 0.0))),
                end_distance=float(data.get('end_distance', data.get('end'))),
                zone_id=data.get('id', data.get('zone_id')),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InputError(f"malformed zone: {data!r}") from e


def sort_zones(zones: Optional[Iterable[Zone]]) -> List[Zone]:
    return sorted(zones or (), key=lambda z: z.start_distance)


def zone_at(zones: Sequence[Zone], distance: float) -> Optional[Zone]:
    """Zone containing a distance, or None."""
    for zone in zones:
        if zone.contains(distance):
            return zone
    # The final zone is inclusive of its end so the route end is covered
    if zones and distance == zones[-1].end_distance:
        return zones[-1]
    return None


def character_at(zones: Sequence[Zone], distance: float) -> ZoneCharacter:
    """Zone character at a distance, transit when uncovered."""
    zone = zone_at(zones, distance)
    return zone.character if zone else DEFAULT_CHARACTER


def min_severity_for(character: ZoneCharacter, overrides: Optional[dict] = None) -> int:
    """Minimum severity announced in a zone character."""
    if overrides and character.value in overrides:
        return int(overrides[character.value])
    return config.ZONE_MIN_SEVERITY[character.value]
