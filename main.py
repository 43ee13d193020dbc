#!/usr/bin/env python3
"""
CoDriver - rally-style curve callouts from route geometry.

Simulates a drive along a GPX or GeoJSON route (or follows a serial GPS) and
speaks or logs callouts as curves approach.
"""

import argparse
import logging
import sys

from codriver.audio import FallbackAnnouncer, LoggingAnnouncer, SpeechAnnouncer
from codriver.errors import AnnouncerUnavailable, InputError
from codriver.gps import GPSReader
from codriver.pacenotes import Units
from codriver.scheduler import Aggressiveness, DrivingMode, EventStrategy
from codriver.session import CoDriver
from codriver.simulator import DriveSimulator, load_route, load_zones
from codriver import config

logger = logging.getLogger('codriver')


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="CoDriver - rally-style curve callouts from route geometry"
    )
    parser.add_argument("route", help="Route file (.gpx, .geojson or .json)")
    parser.add_argument("--zones", help="JSON file of zones (character, start, end)")
    parser.add_argument(
        "--live",
        action="store_true",
        help="Follow a serial GPS instead of simulating",
    )
    parser.add_argument("--port", default=config.GPS_PORT, help="GPS serial port")
    parser.add_argument("--baud", type=int, default=config.GPS_BAUDRATE, help="GPS baud rate")
    parser.add_argument(
        "--speed",
        type=float,
        default=config.SIM_CRUISE_SPEED_MPS,
        help="Simulated cruise speed in m/s",
    )
    parser.add_argument(
        "--time-scale",
        type=float,
        default=1.0,
        help="Simulation time acceleration",
    )
    parser.add_argument(
        "--fast",
        action="store_true",
        help="Do not wait between simulation ticks",
    )
    parser.add_argument("--units", choices=[u.value for u in Units], default=Units.METRIC.value)
    parser.add_argument(
        "--flow",
        action="store_true",
        help="Use zone-aware flow events instead of discrete curves",
    )
    parser.add_argument("--aggressive", action="store_true", help="Shorter pauses, lower severity bar")
    parser.add_argument("--no-haptics", action="store_true", help="Disable haptic patterns")
    parser.add_argument("--no-clear", action="store_true", help="Disable 'clear' callouts")
    parser.add_argument("--no-wake-up", action="store_true", help="Disable 'curves ahead' after long straights")
    parser.add_argument("--speak", action="store_true", help="Speak callouts with TTS")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def build_announcer(speak: bool):
    """Speech with a logging fallback, or logging only."""
    log_only = LoggingAnnouncer()
    if not speak:
        return log_only, None
    speech = SpeechAnnouncer()
    try:
        speech.start()
    except AnnouncerUnavailable as e:
        logger.warning("%s, callouts will be logged only", e)
        return log_only, None
    return FallbackAnnouncer(speech, log_only), speech


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )

    mode = DrivingMode(
        aggressiveness=Aggressiveness.AGGRESSIVE if args.aggressive else Aggressiveness.NORMAL,
        units=Units(args.units),
        haptic_enabled=not args.no_haptics,
        clear_callouts=not args.no_clear,
        wake_up_callouts=not args.no_wake_up,
        strategy=EventStrategy.FLOW if args.flow else EventStrategy.CURVES,
    )

    try:
        polyline = load_route(args.route)
        zones = load_zones(args.zones) if args.zones else []
    except (InputError, OSError, ValueError) as e:
        logger.error("Cannot load route: %s", e)
        return 1

    announcer, speech = build_announcer(args.speak)
    codriver = CoDriver(
        announcer=announcer,
        mode=mode,
        live_gps=args.live,
        time_scale=1.0 if args.live else args.time_scale,
    )

    try:
        if codriver.load_route(polyline, zones) == 0:
            logger.warning("No curves found on this route")
        if not codriver.has_route:
            logger.error("Route has fewer than two distinct points")
            return 1

        if args.live:
            codriver.run_live(GPSReader(args.port, args.baud))
        else:
            simulator = DriveSimulator(
                codriver.index,
                codriver.events,
                cruise_speed=args.speed,
                time_scale=args.time_scale,
            )
            codriver.run_simulation(simulator, realtime=not args.fast)
    finally:
        if speech is not None:
            speech.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
