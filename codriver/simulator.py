"""Route loading and drive simulation for testing without GPS hardware."""

import json
import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from .distance_index import DistanceIndex
from .errors import InputError
from .geometry import GeoPoint
from .zones import Zone
from . import config

logger = logging.getLogger('codriver.simulator')


class GPXRouteLoader:
    """Load a route polyline from a GPX file."""

    def __init__(self, gpx_path: str):
        """
        Initialise GPX route loader.

        Args:
            gpx_path: Path to GPX file
        """
        self.gpx_path = Path(gpx_path)
        self._route_points: List[GeoPoint] = []
        self._loaded = False

    def load(self) -> bool:
        """Load the GPX file. Returns True if successful."""
        self._route_points = self._parse_gpx()
        self._loaded = len(self._route_points) > 0
        if self._loaded:
            logger.info("Loaded %d points from %s", len(self._route_points), self.gpx_path.name)
        return self._loaded

    @property
    def is_loaded(self) -> bool:
        """Check if route is loaded."""
        return self._loaded

    @property
    def point_count(self) -> int:
        """Get number of route points."""
        return len(self._route_points)

    @property
    def points(self) -> List[GeoPoint]:
        return list(self._route_points)

    def get_route_bounds(self) -> Optional[Tuple[float, float, float, float]]:
        """Get bounds of the GPX route (min_lat, max_lat, min_lon, max_lon)."""
        if not self._route_points:
            return None
        lats = [p.lat for p in self._route_points]
        lons = [p.lng for p in self._route_points]
        return (min(lats), max(lats), min(lons), max(lons))

    def _parse_gpx(self) -> List[GeoPoint]:
        """Parse GPX file and extract track points (falling back to route points)."""
        try:
            root = ET.parse(self.gpx_path).getroot()
        except ET.ParseError as e:
            logger.error("Error parsing GPX file %s: %s", self.gpx_path, e)
            return []
        except OSError as e:
            logger.error("Error reading GPX file %s: %s", self.gpx_path, e)
            return []

        # Handle GPX namespace
        ns = {'gpx': 'http://www.topografix.com/GPX/1/1'}

        for query, namespaces in (
            ('.//gpx:trkpt', ns),
            ('.//gpx:rtept', ns),
            # Some GPX files have no namespace
            ('.//trkpt', None),
            ('.//rtept', None),
        ):
            elements = root.findall(query, namespaces)
            if elements:
                return [self._to_point(e) for e in elements]
        return []

    @staticmethod
    def _to_point(element) -> GeoPoint:
        try:
            return GeoPoint(float(element.get('lon')), float(element.get('lat')))
        except (TypeError, ValueError) as e:
            raise InputError(f"bad GPX point: {element.attrib}") from e


def load_geojson_route(path: str) -> List[GeoPoint]:
    """
    Load a route from GeoJSON.

    Accepts a LineString geometry, a Feature wrapping one, or a
    FeatureCollection (the first LineString is used). MultiLineString parts
    are joined in order.
    """
    with open(path) as f:
        data = json.load(f)
    return geojson_to_polyline(data)


def geojson_to_polyline(data: dict) -> List[GeoPoint]:
    kind = data.get('type')
    if kind == 'FeatureCollection':
        for feature in data.get('features', []):
            try:
                return geojson_to_polyline(feature)
            except InputError:
                continue
        raise InputError("no LineString in FeatureCollection")
    if kind == 'Feature':
        return geojson_to_polyline(data.get('geometry') or {})
    if kind == 'LineString':
        return [GeoPoint(float(c[0]), float(c[1])) for c in data.get('coordinates', [])]
    if kind == 'MultiLineString':
        points = []
        for part in data.get('coordinates', []):
            points.extend(GeoPoint(float(c[0]), float(c[1])) for c in part)
        return points
    raise InputError(f"unsupported GeoJSON type: {kind!r}")


def load_route(path: str) -> List[GeoPoint]:
    """Load a route polyline from a .gpx or .geojson/.json file."""
    suffix = Path(path).suffix.lower()
    if suffix == '.gpx':
        loader = GPXRouteLoader(path)
        if not loader.load():
            raise InputError(f"no track or route points in {path}")
        return loader.points
    if suffix in ('.geojson', '.json'):
        return load_geojson_route(path)
    raise InputError(f"unknown route format: {path}")


def load_zones(path: str) -> List[Zone]:
    """Load zones from a JSON list of {character, start, end[, id]} objects."""
    with open(path) as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get('zones', [])
    return [Zone.from_dict(item) for item in data]


class DriveSimulator:
    """
    Simulates driving along a route, slowing for curves.

    Produces a progress fraction and speed per step, which feed
    ProgressTracker.update_simulation().
    """

    def __init__(
        self,
        index: DistanceIndex,
        events: Sequence = (),
        cruise_speed: float = config.SIM_CRUISE_SPEED_MPS,
        time_scale: float = 1.0,
        acceleration: float = config.SIM_ACCELERATION_MPS2,
        braking: float = config.SIM_BRAKING_MPS2,
    ):
        if index.is_empty:
            raise InputError("cannot simulate an empty route")
        self.index = index
        self.events = sorted(events, key=lambda e: e.distance_from_start)
        self.cruise_speed = cruise_speed
        self.time_scale = time_scale
        self.acceleration = acceleration
        self.braking = braking

        self.distance = 0.0
        self.speed = 0.0
        self.elapsed = 0.0

    @property
    def fraction(self) -> float:
        return min(self.distance / self.index.total_length, 1.0)

    @property
    def finished(self) -> bool:
        return self.distance >= self.index.total_length

    def target_speed(self, distance: float) -> float:
        """Cruise speed, capped by any curve we are in or about to enter."""
        target = self.cruise_speed
        for event in self.events:
            start = event.distance_from_start
            if start - distance > config.SIM_SLOWDOWN_DISTANCE_M:
                break
            end = getattr(event, 'exit_distance', getattr(event, 'end_distance', start))
            if distance > end:
                continue
            corner = config.SIM_CORNER_SPEEDS_MPS.get(int(event.severity_level), self.cruise_speed)
            target = min(target, corner)
        return target

    def step(self, dt: float) -> Tuple[float, float]:
        """
        Advance by dt seconds of real time (scaled by time_scale).

        Returns:
            (progress fraction, speed in m/s)
        """
        # Cap dt to prevent large jumps from unexpected delays
        dt = min(max(dt, 0.0), 2.0) * self.time_scale

        target = self.target_speed(self.distance)
        if self.speed < target:
            self.speed = min(target, self.speed + self.acceleration * dt)
        else:
            self.speed = max(target, self.speed - self.braking * dt)

        self.distance = min(self.distance + self.speed * dt, self.index.total_length)
        self.elapsed += dt
        return self.fraction, self.speed
