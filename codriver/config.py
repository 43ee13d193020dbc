"""
CoDriver configuration.

Organised into logical sections:
1. Route & Lookahead (indexing, scheduler horizon)
2. Curve Detection (run thresholds, severity bands, modifiers, chicanes)
3. Flow Detection (zone sample intervals and turn thresholds)
4. Zones (minimum severities, transition phrases)
5. Telemetry (GPS filtering, serial port)
6. Callout Timing (distance windows, pauses, clear/zone buckets)
7. Audio (TTS voice and speed)
8. Simulation (speed profile, tick rate)
9. Phrasing (speed advice, clear rounding, distance calls)
"""

# ##############################################################################
#
#                        1. ROUTE & LOOKAHEAD
#
# ##############################################################################

# How far ahead events are tracked by the scheduler (metres)
LOOKAHEAD_DISTANCE_M = 1000

# Events this far behind the vehicle are still kept in the tracked window
# so that a late MAIN catch-up can fire (metres)
PASSED_MARGIN_M = 25.0

# Heading lookahead: bearing is taken to the vertex this many steps ahead
HEADING_LOOKAHEAD_VERTICES = 3

# Within this distance of the route end, heading uses the final segment (metres)
HEADING_END_ZONE_M = 50.0

# ##############################################################################
#
#                        2. CURVE DETECTION
#
# ##############################################################################

# ==============================================================================
# RUN DETECTION
# ==============================================================================

CURVE_START_THRESHOLD_DEG = 8.0  # Heading change that opens a run
CURVE_CONTINUE_THRESHOLD_DEG = 5.0  # Same-signed change that keeps a run open
CURVE_MIN_TOTAL_ANGLE_DEG = 15.0  # Accumulated change required to emit a curve

# Segments shorter than this are treated as zero-length (metres)
MIN_SEGMENT_LENGTH_M = 0.01

# ==============================================================================
# SEVERITY (rally 1-6, 6 is tightest)
# ==============================================================================

# (minimum radius exclusive, severity) - first match wins, anything tighter is 6
RADIUS_SEVERITY = [
    (200.0, 1),
    (120.0, 2),
    (75.0, 3),
    (45.0, 4),
    (20.0, 5),
]
SEVERITY_TIGHTEST = 6

ESCALATE_ANGLE_DEG = 120.0  # One level tighter, capped at 6
ESCALATE_SOFT_ANGLE_DEG = 90.0  # One level tighter below severity 4, capped at 5

# ==============================================================================
# MODIFIERS
# ==============================================================================

HAIRPIN_ANGLE_DEG = 150.0
SHARP_ANGLE_DEG = 120.0
LONG_LENGTH_LOW_SEVERITY_M = 150.0  # severity < 4
LONG_LENGTH_HIGH_SEVERITY_M = 100.0  # severity >= 4

# ==============================================================================
# CHICANES
# ==============================================================================

CHICANE_MAX_GAP_M = 30.0  # Exit of one curve to entry of the next
CHICANE_MAX_LENGTH_M = 100.0  # Entry of first to exit of last
CHICANE_MAX_CURVES = 3

# ##############################################################################
#
#                        3. FLOW DETECTION
#
# ##############################################################################

# Resample interval per zone character (metres)
FLOW_SAMPLE_INTERVALS_M = {
    "technical": 15.0,
    "urban": 25.0,
    "transit": 50.0,
}

# Per-zone turn thresholds (degrees)
FLOW_TURN_THRESHOLDS = {
    "technical": {"min_angle": 8.0, "sweeper": 12.0, "significant": 20.0, "danger": 35.0},
    "urban": {"min_angle": 40.0, "sweeper": 50.0, "significant": 70.0, "danger": 90.0},
    "transit": {"min_angle": 12.0, "sweeper": 18.0, "significant": 30.0, "danger": 45.0},
}

FLOW_DIRECTION_THRESHOLD_DEG = 0.5  # Below this a sample counts as straight

# Shape from angle density (degrees per metre)
FLOW_TIGHT_DENSITY = 0.15
FLOW_MEDIUM_DENSITY = 0.08

# Severity level reported to the scheduler
FLOW_SEVERITY_LEVELS = {
    "sweeper": 3,
    "significant": 4,
    "danger": 5,
}

# ##############################################################################
#
#                        4. ZONES
#
# ##############################################################################

DEFAULT_ZONE_CHARACTER = "transit"

# Minimum curve severity announced per zone character
ZONE_MIN_SEVERITY = {
    "technical": 1,
    "transit": 3,
    "urban": 4,
}

# Aggressive live-GPS mode lowers the bar to at most this severity
AGGRESSIVE_MIN_SEVERITY = 3

ZONE_TRANSITION_PHRASES = {
    "technical": "Technical section ahead",
    "transit": "Highway ahead, relax",
    "urban": "Urban zone",
}

# ##############################################################################
#
#                        5. TELEMETRY
#
# ##############################################################################

# ==============================================================================
# FIX FILTERING
# ==============================================================================

GPS_MAX_ACCURACY_M = 50.0  # Fixes less accurate than this are dropped
GPS_MAX_IMPLIED_SPEED_MPS = 89.0  # ~200 mph, anything faster is a jump
GPS_JUMP_CHECK_WINDOW_S = 5.0  # Jump filter applies only to fixes closer than this
GPS_MIN_FIX_INTERVAL_S = 0.25  # At most 4 fixes per second

GPS_HISTORY_SIZE = 10
GPS_HEADING_WINDOW = 3  # Heading from the oldest of the last N accepted fixes
GPS_HEADING_MIN_MOVE_M = 5.0  # Minimum movement for a windowed heading

# ==============================================================================
# ROUTE MATCHING
# ==============================================================================

# Fixes are snapped only to route between (last - BEHIND) and (last + ahead),
# ahead = max(WINDOW_MIN, speed * WINDOW_S)
MATCH_WINDOW_BEHIND_M = 50.0
MATCH_WINDOW_MIN_M = 200.0
MATCH_WINDOW_S = 10.0
MATCH_MIN_SPEED_MPS = 4.47  # 10 mph, so a stopped car still gets a window
MATCH_MAX_OFFSET_M = 100.0  # Further from the route than this keeps the last distance
MATCH_MAX_JUMP_S = 5.0  # Forward progress capped at this much travel per fix
MATCH_REACQUIRE_FIXES = 5  # Consecutive off-route fixes before a whole-route search

# ==============================================================================
# SERIAL
# ==============================================================================

GPS_PORT = "/dev/ttyUSB0"
GPS_BAUDRATE = 9600
GPS_SERIAL_TIMEOUT_S = 1.0
GPS_HDOP_TO_METRES = 5.0  # Rough accuracy estimate from HDOP

# ##############################################################################
#
#                        6. CALLOUT TIMING
#
# ##############################################################################

# ==============================================================================
# DISTANCE WINDOWS (max(floor, speed * seconds))
# ==============================================================================

EARLY_WINDOW_MIN_M = 400.0
EARLY_WINDOW_S = 10.0
MAIN_WINDOW_MIN_M = 200.0
MAIN_WINDOW_S = 5.0
FINAL_WINDOW_MIN_M = 50.0
FINAL_WINDOW_S = 1.5

# FINAL is not called inside this distance (metres)
FINAL_MIN_DISTANCE_M = 15.0

# Only these severities get EARLY and FINAL calls
HARD_SEVERITY = 4

# Severity at or above this is always announced
ALWAYS_ANNOUNCE_SEVERITY = 5

# A following non-chicane curve starting within this distance is compounded
COMPOUND_MAX_GAP_M = 150.0

# Phrasing of compounds: "into" if closer than this, else "then"
COMPOUND_INTO_GAP_M = 30.0

# ==============================================================================
# PAUSES
# ==============================================================================

MIN_PAUSE_S = 1.5  # Base pause between NORMAL callouts
MIN_PAUSE_FLOOR_S = 1.0  # Never shorter than this
MIN_PAUSE_REFERENCE_SPEED_MPS = 15.0  # Pause shrinks above this speed
MIN_PAUSE_SPEED_FACTOR_FLOOR = 0.5
AGGRESSIVE_PAUSE_FACTOR = 0.8  # Shorter pauses when pushing

# Per-zone base pause (seconds)
ZONE_MIN_PAUSE_S = {
    "technical": 0.8,
    "transit": 1.5,
    "urban": 1.5,
}

# ==============================================================================
# CLEAR & ZONE CALLOUTS
# ==============================================================================

CLEAR_MIN_DISTANCE_M = 400.0  # Next event must be at least this far away
CLEAR_MIN_SILENCE_S = 8.0  # Time since the last curve callout
CLEAR_MIN_INTERVAL_S = 20.0  # Between clear callouts
ZONE_CALLOUT_MIN_INTERVAL_S = 10.0  # Between zone transition callouts

# "Curves ahead" before the first event after a long quiet stretch
WAKE_UP_MIN_GAP_M = 4828.0  # 3 miles without an announced event
WAKE_UP_LEAD_M = 805.0  # Said up to half a mile before the event
WAKE_UP_MIN_INTERVAL_S = 30.0  # Between wake-up callouts

# ==============================================================================
# HAPTICS (milliseconds)
# ==============================================================================

HAPTIC_SEVERE = (100, 50, 100)
HAPTIC_NORMAL = (50,)
HAPTIC_FINAL = (150,)

# ##############################################################################
#
#                        7. AUDIO
#
# ##############################################################################

TTS_VOICE = "Daniel"  # British male voice (macOS), falls back to en-gb on Linux
TTS_SPEED = 210  # Words per minute (faster for rally style)
AUDIO_STOP_TIMEOUT_S = 2.0

# ##############################################################################
#
#                        8. SIMULATION
#
# ##############################################################################

SIM_TICK_INTERVAL_S = 0.5
SIM_CRUISE_SPEED_MPS = 25.0
SIM_ACCELERATION_MPS2 = 3.5
SIM_BRAKING_MPS2 = 6.5
SIM_SLOWDOWN_DISTANCE_M = 150.0  # Start slowing this far before a curve

# Target corner speed per severity (m/s)
SIM_CORNER_SPEEDS_MPS = {
    1: 27.0,
    2: 22.0,
    3: 18.0,
    4: 14.0,
    5: 11.0,
    6: 8.0,
}

# ##############################################################################
#
#                        9. PHRASING
#
# ##############################################################################

# Advised corner speed for severity 5 and 6 in technical zones (mph)
CORNER_SPEED_MPH = {
    1: 60,
    2: 50,
    3: 40,
    4: 32,
    5: 24,
    6: 18,
}

CLEAR_ROUND_METRES = 100  # "Clear, 400 meters"
CLEAR_ROUND_FEET = 500  # "Clear, 1500 feet"
WAKE_UP_PHRASE = "Curves ahead"

# Distance within which an EARLY call gets a spoken distance prefix (metres)
DISTANCE_CALL_TOLERANCE_M = 25
