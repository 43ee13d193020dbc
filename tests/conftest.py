"""
Shared pytest fixtures for CoDriver tests.
"""

import json
import os
import sys
import tempfile

import pytest

# Add project root to path for imports
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)
sys.path.insert(0, os.path.join(PROJECT_ROOT, "tests", "fixtures"))

from route_builders import (  # noqa: E402
    RecordingAnnouncer,
    right_angle_route,
    straight_route,
)
from codriver.geometry import GeoPoint  # noqa: E402


@pytest.fixture
def announcer():
    """An announcer that records callouts instead of speaking them."""
    return RecordingAnnouncer()


@pytest.fixture
def straight_polyline():
    """1km due north, 10m vertex spacing."""
    return straight_route(1000.0)


@pytest.fixture
def right_angle_polyline():
    """200m north, a 90 degree right (50m radius), 200m east."""
    return right_angle_route()


@pytest.fixture
def sample_gps_path():
    """Sample GPS path for geometry tests (a simple rectangular course)."""
    return [
        GeoPoint(-0.1278, 51.5074),   # London (start)
        GeoPoint(-0.1178, 51.5074),   # East
        GeoPoint(-0.1178, 51.5174),   # North
        GeoPoint(-0.1278, 51.5174),   # West
        GeoPoint(-0.1278, 51.5074),   # Back to start
    ]


@pytest.fixture
def geojson_route_file(right_angle_polyline):
    """A GeoJSON FeatureCollection file holding the right angle route."""
    data = {
        "type": "FeatureCollection",
        "features": [
            {"type": "Feature", "geometry": {"type": "Point", "coordinates": [0, 0]}},
            {
                "type": "Feature",
                "properties": {"name": "test"},
                "geometry": {
                    "type": "LineString",
                    "coordinates": [[p.lng, p.lat] for p in right_angle_polyline],
                },
            },
        ],
    }
    with tempfile.NamedTemporaryFile(mode='w', suffix='.geojson', delete=False) as f:
        json.dump(data, f)
        temp_path = f.name
    yield temp_path
    # Cleanup
    if os.path.exists(temp_path):
        os.remove(temp_path)


@pytest.fixture
def gpx_route_file(right_angle_polyline):
    """A namespaced GPX track file holding the right angle route."""
    points = "\n".join(
        f'      <trkpt lat="{p.lat:.7f}" lon="{p.lng:.7f}"></trkpt>'
        for p in right_angle_polyline
    )
    content = (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<gpx version="1.1" xmlns="http://www.topografix.com/GPX/1/1">\n'
        '  <trk><name>test</name><trkseg>\n'
        f'{points}\n'
        '  </trkseg></trk>\n'
        '</gpx>\n'
    )
    with tempfile.NamedTemporaryFile(mode='w', suffix='.gpx', delete=False) as f:
        f.write(content)
        temp_path = f.name
    yield temp_path
    if os.path.exists(temp_path):
        os.remove(temp_path)
