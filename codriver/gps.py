"""GPS interface: reads NMEA from a serial GPS module and yields fixes."""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

import serial

from .geometry import GeoPoint
from .progress import VehicleFix
from . import config

logger = logging.getLogger('codriver.gps')

KNOTS_TO_MPS = 0.514444


@dataclass
class RMCData:
    lat: float
    lon: float
    speed: Optional[float]  # m/s
    course: Optional[float]  # degrees, 0 = north


def nmea_checksum(body: str) -> str:
    """XOR of every character between '$' and '*', as two hex digits."""
    checksum = 0
    for char in body:
        checksum ^= ord(char)
    return f"{checksum:02X}"


def validate_checksum(sentence: str) -> bool:
    """True if the sentence has no checksum or a matching one."""
    sentence = sentence.strip()
    if not sentence.startswith("$"):
        return False
    if "*" not in sentence:
        return True
    body, _, given = sentence[1:].partition("*")
    return nmea_checksum(body) == given[:2].upper()


def parse_coord(value: str, hemisphere: str) -> float:
    """Convert NMEA ddmm.mmmm / dddmm.mmmm to decimal degrees."""
    if not value:
        raise ValueError("empty coordinate")
    dot = value.find(".")
    split = (dot if dot >= 0 else len(value)) - 2
    degrees = float(value[:split])
    minutes = float(value[split:])
    result = degrees + minutes / 60
    if hemisphere in ("S", "W"):
        result = -result
    return result


def _fields(sentence: str):
    return sentence.strip().split("*")[0].split(",")


def parse_rmc(sentence: str) -> Optional[RMCData]:
    """Parse RMC for position, speed and course. None if no valid fix."""
    if not validate_checksum(sentence):
        return None
    parts = _fields(sentence)
    if len(parts) < 9 or parts[2] != "A":  # A = valid fix
        return None
    try:
        return RMCData(
            lat=parse_coord(parts[3], parts[4]),
            lon=parse_coord(parts[5], parts[6]),
            speed=float(parts[7]) * KNOTS_TO_MPS if parts[7] else None,
            course=float(parts[8]) if parts[8] else None,
        )
    except (ValueError, IndexError):
        return None


def parse_gga_hdop(sentence: str) -> Optional[float]:
    """HDOP from a GGA sentence with a fix, else None."""
    if not validate_checksum(sentence):
        return None
    parts = _fields(sentence)
    if len(parts) < 9 or parts[6] in ("", "0"):
        return None
    try:
        return float(parts[8])
    except ValueError:
        return None


class GPSReader:
    """Reads NMEA data from a GPS module via serial."""

    def __init__(
        self,
        port: str = config.GPS_PORT,
        baudrate: int = config.GPS_BAUDRATE,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.port = port
        self.baudrate = baudrate
        self._clock = clock
        self._serial: Optional[serial.Serial] = None
        self._hdop: Optional[float] = None

    def connect(self) -> None:
        self._serial = serial.Serial(self.port, self.baudrate, timeout=config.GPS_SERIAL_TIMEOUT_S)
        logger.info("GPS: opened %s at %d baud", self.port, self.baudrate)

    def disconnect(self) -> None:
        if self._serial:
            self._serial.close()
            self._serial = None

    @property
    def is_connected(self) -> bool:
        return self._serial is not None

    def read_fix(self) -> Optional[VehicleFix]:
        """Read one sentence. Returns a fix for each valid RMC, else None."""
        if not self._serial:
            return None

        try:
            raw = self._serial.readline()
        except serial.SerialException as e:
            logger.warning("GPS: read failed: %s", e)
            return None

        line = raw.decode("ascii", errors="ignore").strip()
        return self.handle_sentence(line)

    def handle_sentence(self, line: str) -> Optional[VehicleFix]:
        """Feed one NMEA line. GGA updates accuracy, RMC produces a fix."""
        if line[3:6] == "GGA":
            hdop = parse_gga_hdop(line)
            if hdop is not None:
                self._hdop = hdop
            return None

        if line[3:6] != "RMC":
            return None

        rmc = parse_rmc(line)
        if rmc is None:
            return None

        accuracy = self._hdop * config.GPS_HDOP_TO_METRES if self._hdop is not None else None
        return VehicleFix(
            position=GeoPoint(rmc.lon, rmc.lat),
            accuracy=accuracy,
            reported_speed=rmc.speed,
            reported_heading=rmc.course,
            timestamp=self._clock(),
        )

    def fixes(self) -> Iterator[VehicleFix]:
        """Yield fixes until disconnected."""
        while self._serial is not None:
            fix = self.read_fix()
            if fix is not None:
                yield fix
