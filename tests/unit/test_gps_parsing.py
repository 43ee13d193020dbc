"""
Unit tests for GPS NMEA sentence parsing.
Tests the parsing logic without requiring actual serial hardware.
"""

import pytest
from unittest.mock import MagicMock, patch

import serial

from codriver.geometry import GeoPoint
from codriver.gps import (
    KNOTS_TO_MPS,
    GPSReader,
    nmea_checksum,
    parse_coord,
    parse_gga_hdop,
    parse_rmc,
    validate_checksum,
)

RMC = "$GPRMC,123519,A,4807.038,N,01131.000,E,022.4,084.4,230394,003.1,W*6A"


def _sentence(body):
    return f"${body}*{nmea_checksum(body)}"


class TestNMEAChecksum:
    """Tests for NMEA checksum validation."""

    @pytest.mark.unit
    def test_checksum_calculation(self):
        """Test checksum calculation for known sentences."""
        test_cases = [
            ("GPGGA,123519,4807.038,N,01131.000,E,1,08,0.9,545.4,M,47.0,M,,", "4F"),
            ("GPRMC,123519,A,4807.038,N,01131.000,E,022.4,084.4,230394,003.1,W", "6A"),
        ]
        for body, expected in test_cases:
            assert nmea_checksum(body) == expected

    @pytest.mark.unit
    def test_valid_sentence(self):
        assert validate_checksum(RMC)

    @pytest.mark.unit
    def test_lowercase_checksum(self):
        assert validate_checksum(RMC[:-2] + "6a")

    @pytest.mark.unit
    def test_invalid_checksum(self):
        assert not validate_checksum(RMC[:-2] + "FF")

    @pytest.mark.unit
    def test_no_checksum_accepted(self):
        assert validate_checksum(RMC.split("*")[0])

    @pytest.mark.unit
    def test_missing_dollar(self):
        assert not validate_checksum(RMC[1:])


class TestCoordinateParsing:
    """Tests for NMEA ddmm.mmmm coordinate conversion."""

    @pytest.mark.unit
    @pytest.mark.parametrize("value,hemisphere,expected", [
        ("4807.038", "N", 48.1173),
        ("4807.038", "S", -48.1173),
        ("01131.000", "E", 11.516667),
        ("01131.000", "W", -11.516667),
        ("00005.000", "E", 0.083333),
    ])
    def test_parse_coord(self, value, hemisphere, expected):
        assert parse_coord(value, hemisphere) == pytest.approx(expected, abs=1e-5)

    @pytest.mark.unit
    def test_empty_coord(self):
        with pytest.raises(ValueError):
            parse_coord("", "N")


class TestRMCParsing:
    """Tests for GPRMC sentence parsing."""

    @pytest.mark.unit
    def test_parse_valid_rmc(self):
        """Test parsing a valid RMC sentence."""
        rmc = parse_rmc(RMC)

        assert rmc.lat == pytest.approx(48.1173, abs=1e-4)
        assert rmc.lon == pytest.approx(11.5167, abs=1e-4)
        assert rmc.speed == pytest.approx(22.4 * KNOTS_TO_MPS)
        assert rmc.course == pytest.approx(84.4)

    @pytest.mark.unit
    def test_void_fix(self):
        """Status V means no fix."""
        assert parse_rmc(_sentence("GPRMC,123519,V,4807.038,N,01131.000,E,022.4,084.4,230394,003.1,W")) is None

    @pytest.mark.unit
    def test_invalid_checksum(self):
        assert parse_rmc(RMC[:-2] + "00") is None

    @pytest.mark.unit
    def test_missing_speed_and_course(self):
        rmc = parse_rmc(_sentence("GNRMC,123519,A,4807.038,N,01131.000,E,,,230394,,"))
        assert rmc.speed is None
        assert rmc.course is None

    @pytest.mark.unit
    def test_garbled_fields(self):
        assert parse_rmc(_sentence("GPRMC,123519,A,48x7.038,N,01131.000,E,022.4,084.4,230394,,")) is None

    @pytest.mark.unit
    def test_truncated(self):
        assert parse_rmc(_sentence("GPRMC,123519,A,4807.038")) is None


class TestGGAParsing:
    """Tests for GPGGA HDOP parsing."""

    @pytest.mark.unit
    def test_parse_valid_gga(self):
        sentence = "$GPGGA,123519,4807.038,N,01131.000,E,1,08,0.9,545.4,M,47.0,M,,*4F"
        assert parse_gga_hdop(sentence) == pytest.approx(0.9)

    @pytest.mark.unit
    def test_no_fix(self):
        assert parse_gga_hdop(_sentence("GPGGA,123519,,,,,0,00,99.9,,,,,")) is None

    @pytest.mark.unit
    def test_gngga_variant(self):
        """Test parsing GNGGA (multi-constellation) variant."""
        sentence = _sentence("GNGGA,123519,4807.038,N,01131.000,E,1,15,1.4,545.4,M,47.0,M,,")
        assert parse_gga_hdop(sentence) == pytest.approx(1.4)


class TestGPSReader:
    """Tests for turning NMEA lines into vehicle fixes."""

    @pytest.fixture
    def reader(self):
        return GPSReader(port="/dev/null", baudrate=9600, clock=lambda: 100.0)

    @pytest.mark.unit
    def test_rmc_gives_fix(self, reader):
        fix = reader.handle_sentence(RMC)

        assert fix.position == pytest.approx(GeoPoint(11.516667, 48.1173), abs=1e-4)
        assert fix.reported_speed == pytest.approx(22.4 * KNOTS_TO_MPS)
        assert fix.reported_heading == pytest.approx(84.4)
        assert fix.accuracy is None
        assert fix.timestamp == 100.0

    @pytest.mark.unit
    def test_gga_sets_accuracy(self, reader):
        assert reader.handle_sentence(
            "$GPGGA,123519,4807.038,N,01131.000,E,1,08,0.9,545.4,M,47.0,M,,*4F"
        ) is None
        fix = reader.handle_sentence(RMC)
        assert fix.accuracy == pytest.approx(4.5)

    @pytest.mark.unit
    def test_other_sentences_ignored(self, reader):
        assert reader.handle_sentence(_sentence("GPGSV,3,1,11,03,03,111,00")) is None
        assert reader.handle_sentence("") is None

    @pytest.mark.unit
    def test_read_without_connection(self, reader):
        assert reader.read_fix() is None
        assert not reader.is_connected

    @pytest.mark.unit
    def test_connect_opens_serial(self, reader):
        with patch('codriver.gps.serial.Serial') as mock_serial:
            reader.connect()
            mock_serial.assert_called_once_with("/dev/null", 9600, timeout=1.0)
            assert reader.is_connected
            reader.disconnect()
            mock_serial.return_value.close.assert_called_once()
            assert not reader.is_connected

    @pytest.mark.unit
    def test_read_fix_from_serial(self, reader):
        reader._serial = MagicMock()
        reader._serial.readline.return_value = (RMC + "\r\n").encode("ascii")
        fix = reader.read_fix()
        assert fix is not None
        assert fix.position.lat == pytest.approx(48.1173, abs=1e-4)

    @pytest.mark.unit
    def test_serial_error(self, reader):
        reader._serial = MagicMock()
        reader._serial.readline.side_effect = serial.SerialException("unplugged")
        assert reader.read_fix() is None

    @pytest.mark.unit
    def test_fixes_until_disconnected(self, reader):
        lines = [
            b"$GPGGA,123519,4807.038,N,01131.000,E,1,08,0.9,545.4,M,47.0,M,,*4F\r\n",
            (RMC + "\r\n").encode("ascii"),
            b"garbage\r\n",
            (RMC + "\r\n").encode("ascii"),
        ]

        def readline():
            if lines:
                return lines.pop(0)
            reader.disconnect()
            return b""

        reader._serial = MagicMock()
        reader._serial.readline.side_effect = readline

        fixes = list(reader.fixes())
        assert len(fixes) == 2
        assert all(f.accuracy == pytest.approx(4.5) for f in fixes)
