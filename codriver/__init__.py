"""
CoDriver - rally-style curve callouts.

This package turns a route polyline and vehicle progress into timed callouts.
"""

from codriver.corners import CurveDetector, CurveEvent
from codriver.distance_index import DistanceIndex
from codriver.flow import FlowEvent, FlowEventDetector
from codriver.progress import ProgressTracker, VehicleFix, VehicleState
from codriver.scheduler import CalloutScheduler, DrivingMode
from codriver.session import CoDriver

__all__ = [
    'CurveDetector',
    'CurveEvent',
    'DistanceIndex',
    'FlowEvent',
    'FlowEventDetector',
    'ProgressTracker',
    'VehicleFix',
    'VehicleState',
    'CalloutScheduler',
    'DrivingMode',
    'CoDriver',
]
