"""
Unit tests for callout announcers.
Speech is tested with subprocess and shutil mocked, so no TTS is needed.
"""

import logging
from unittest.mock import MagicMock, patch

import pytest

from codriver.audio import FallbackAnnouncer, LoggingAnnouncer, SpeechAnnouncer
from codriver.errors import AnnouncerUnavailable
from codriver.events import Priority

from route_builders import RecordingAnnouncer


@pytest.fixture
def linux_speech():
    """SpeechAnnouncer that believes espeak-ng is installed."""
    with patch('codriver.audio.platform.system', return_value="Linux"), \
            patch('codriver.audio.shutil.which', return_value="/usr/bin/espeak-ng"):
        speech = SpeechAnnouncer(voice="Daniel", speed=180)
    yield speech
    speech.stop()


class TestLoggingAnnouncer:
    """Tests for the log-only announcer."""

    @pytest.mark.unit
    def test_announce_logs_and_succeeds(self, caplog):
        announcer = LoggingAnnouncer()
        with caplog.at_level(logging.INFO, logger='codriver.callouts'):
            assert announcer.announce("Right four", Priority.HIGH) is True
        assert "[HIGH] Right four" in caplog.text

    @pytest.mark.unit
    def test_vibrate(self, caplog):
        announcer = LoggingAnnouncer()
        with caplog.at_level(logging.DEBUG, logger='codriver.callouts'):
            announcer.vibrate((100, 50, 100))
        assert "[100, 50, 100]" in caplog.text


class TestFallbackAnnouncer:
    """Tests for repeating a callout on the fallback announcer."""

    @pytest.mark.unit
    def test_primary_success(self):
        primary, fallback = RecordingAnnouncer(), RecordingAnnouncer()
        assert FallbackAnnouncer(primary, fallback).announce("Left two", Priority.NORMAL)
        assert primary.texts == ["Left two"]
        assert fallback.texts == []

    @pytest.mark.unit
    def test_primary_raises(self):
        primary, fallback = RecordingAnnouncer(fail=True), RecordingAnnouncer()
        result = FallbackAnnouncer(primary, fallback).announce("Left two", Priority.NORMAL)
        assert result is True
        assert fallback.texts == ["Left two"]

    @pytest.mark.unit
    def test_primary_returns_false(self):
        primary = MagicMock()
        primary.announce.return_value = False
        fallback = RecordingAnnouncer()
        FallbackAnnouncer(primary, fallback).announce("Left two", Priority.NORMAL)
        assert fallback.texts == ["Left two"]

    @pytest.mark.unit
    def test_future_resolving_false_falls_back(self):
        primary, fallback = RecordingAnnouncer(use_futures=True), RecordingAnnouncer()
        future = FallbackAnnouncer(primary, fallback).announce("Right six", Priority.HIGH)

        assert fallback.texts == []
        future.set_result(False)
        assert fallback.spoken == [("Right six", Priority.HIGH)]

    @pytest.mark.unit
    def test_cancelled_future_not_repeated(self):
        primary, fallback = RecordingAnnouncer(use_futures=True), RecordingAnnouncer()
        future = FallbackAnnouncer(primary, fallback).announce("Right six", Priority.HIGH)
        future.cancel()
        assert fallback.texts == []

    @pytest.mark.unit
    def test_busy_follows_primary(self):
        assert FallbackAnnouncer(RecordingAnnouncer(busy=True), RecordingAnnouncer()).is_busy()
        assert not FallbackAnnouncer(LoggingAnnouncer(), RecordingAnnouncer()).is_busy()

    @pytest.mark.unit
    def test_vibrate_uses_first_capable(self):
        primary, fallback = MagicMock(spec=["announce"]), RecordingAnnouncer()
        FallbackAnnouncer(primary, fallback).vibrate([200])
        assert fallback.vibrations == [(200,)]


class TestSpeechAnnouncer:
    """Tests for the TTS announcer."""

    @pytest.mark.unit
    def test_unavailable_without_tts(self):
        with patch('codriver.audio.platform.system', return_value="Linux"), \
                patch('codriver.audio.shutil.which', return_value=None):
            speech = SpeechAnnouncer()
        assert not speech.available
        with pytest.raises(AnnouncerUnavailable):
            speech.start()

    @pytest.mark.unit
    def test_announce_before_start(self, linux_speech):
        future = linux_speech.announce("Right four")
        assert future.result(timeout=1) is False

    @pytest.mark.unit
    def test_espeak_command(self, linux_speech):
        assert linux_speech._command("Left two") == [
            "/usr/bin/espeak-ng", "-v", "en-gb", "-s", "180", "Left two",
        ]

    @pytest.mark.unit
    @pytest.mark.parametrize("returncode,expected", [(0, True), (1, False)])
    def test_speak_return_code(self, linux_speech, returncode, expected):
        with patch('codriver.audio.subprocess.Popen') as mock_popen:
            mock_popen.return_value.wait.return_value = returncode
            assert linux_speech._speak("Left two") is expected

    @pytest.mark.unit
    def test_speak_missing_binary(self, linux_speech):
        with patch('codriver.audio.subprocess.Popen', side_effect=OSError("not found")):
            assert linux_speech._speak("Left two") is False

    @pytest.mark.unit
    def test_interrupted_counts_as_spoken(self, linux_speech):
        """A phrase cut off by a HIGH callout still resolves True."""
        with patch('codriver.audio.subprocess.Popen') as mock_popen:
            def wait():
                linux_speech._interrupted = True
                return -15
            mock_popen.return_value.wait.side_effect = wait
            assert linux_speech._speak("Left two") is True

    @pytest.mark.unit
    def test_worker_speaks_queued_text(self, linux_speech):
        with patch('codriver.audio.subprocess.Popen') as mock_popen:
            mock_popen.return_value.wait.return_value = 0
            linux_speech.start()
            future = linux_speech.announce("Right four")
            assert future.result(timeout=2) is True
        assert mock_popen.call_args[0][0][-1] == "Right four"

    @pytest.mark.unit
    def test_high_priority_drops_pending(self, linux_speech):
        linux_speech._running = True
        first = linux_speech.announce("Left two", Priority.NORMAL)
        linux_speech.announce("Right six", Priority.HIGH)
        assert first.cancelled()
        assert linux_speech.is_busy()
