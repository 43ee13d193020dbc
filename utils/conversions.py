"""
Unit conversion utilities for CoDriver.

Provides speed and distance conversions used by callout phrasing.
"""


# Speed conversions
def mps_to_kmh(mps):
    """Convert metres per second to km/h."""
    return mps * 3.6


def kmh_to_mps(kmh):
    """Convert km/h to metres per second."""
    return kmh / 3.6


def mps_to_mph(mps):
    """Convert metres per second to mph."""
    return mps * 2.23694


def mph_to_mps(mph):
    """Convert mph to metres per second."""
    return mph * 0.44704


def mph_to_kmh(mph):
    """Convert mph to km/h."""
    return mph * 1.609344


# Distance conversions
def metres_to_feet(metres):
    """Convert metres to feet."""
    return metres * 3.28084


def feet_to_metres(feet):
    """Convert feet to metres."""
    return feet / 3.28084


def round_to_step(value, step):
    """Round to the nearest multiple of step (never below one step)."""
    return max(step, int(round(value / step)) * step)
