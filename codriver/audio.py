"""Announcers: where callout commands go once the scheduler emits them.

An announcer implements announce(text, priority) returning a bool or a
concurrent.futures.Future resolving to one. vibrate(pattern) and is_busy()
are optional.
"""

import logging
import platform
import shutil
import subprocess
import threading
from concurrent.futures import Future
from queue import Empty, Queue
from typing import Optional, Protocol, Sequence, Union

from .errors import AnnouncerUnavailable
from .events import Priority
from . import config

logger = logging.getLogger('codriver.audio')


class Announcer(Protocol):
    def announce(self, text: str, priority: Priority) -> Union[bool, Future]: ...


class LoggingAnnouncer:
    """Writes callouts to the log. Never busy, never fails."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self._log = log or logging.getLogger('codriver.callouts')

    def announce(self, text: str, priority: Priority = Priority.NORMAL) -> bool:
        self._log.info("[%s] %s", Priority(priority).name, text)
        return True

    def vibrate(self, pattern: Sequence[int]) -> None:
        self._log.debug("Haptic %s", list(pattern))


class SpeechAnnouncer:
    """
    Speaks callouts through the platform TTS command on a worker thread.

    HIGH priority callouts drop anything still queued and cut off the phrase
    being spoken. Each announce() returns a Future that resolves to True once
    the phrase was spoken (or cut off by a newer HIGH callout).
    """

    def __init__(
        self,
        voice: str = config.TTS_VOICE,
        speed: int = config.TTS_SPEED,
    ):
        self.voice = voice
        self.speed = speed
        self._queue: Queue = Queue()
        self._thread: Optional[threading.Thread] = None
        self._running = False
        self._lock = threading.Lock()
        self._process: Optional[subprocess.Popen] = None
        self._interrupted = False
        self._speaking = False
        self._platform = platform.system()

        # Check available tools
        self._has_say = shutil.which("say") is not None
        self._espeak = shutil.which("espeak-ng") or shutil.which("espeak")

    @property
    def available(self) -> bool:
        if self._platform == "Darwin":
            return self._has_say
        return bool(self._espeak)

    def start(self) -> None:
        """Start the speech thread."""
        if not self.available:
            raise AnnouncerUnavailable("no TTS command found (say, espeak-ng or espeak)")
        self._running = True
        self._thread = threading.Thread(target=self._playback_loop, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop the speech thread, abandoning anything queued."""
        self._running = False
        self._drop_pending()
        self._interrupt()
        if self._thread:
            self._thread.join(timeout=config.AUDIO_STOP_TIMEOUT_S)
            self._thread = None

    def is_busy(self) -> bool:
        return self._speaking or not self._queue.empty()

    def announce(self, text: str, priority: Priority = Priority.NORMAL) -> Future:
        """Queue text to be spoken."""
        future: Future = Future()
        if not self._running:
            future.set_result(False)
            return future

        if priority >= Priority.HIGH:
            self._drop_pending()
            self._interrupt()
        self._queue.put((text, future))
        return future

    def _drop_pending(self) -> None:
        while True:
            try:
                _, future = self._queue.get_nowait()
            except Empty:
                break
            future.cancel()

    def _interrupt(self) -> None:
        with self._lock:
            if self._process is not None and self._process.poll() is None:
                self._interrupted = True
                self._process.terminate()

    def _playback_loop(self) -> None:
        """Background thread that processes the speech queue."""
        while self._running:
            try:
                text, future = self._queue.get(timeout=0.1)
            except Empty:
                continue

            if not future.set_running_or_notify_cancel():
                continue

            self._speaking = True
            try:
                future.set_result(self._speak(text))
            except Exception as e:
                future.set_exception(e)
            finally:
                self._speaking = False

    def _command(self, text: str) -> list:
        if self._platform == "Darwin" and self._has_say:
            return ["say", "-v", self.voice, "-r", str(self.speed), text]
        return [self._espeak, "-v", "en-gb", "-s", str(self.speed), text]

    def _speak(self, text: str) -> bool:
        """Speak text, blocking until done. False if the TTS command failed."""
        try:
            with self._lock:
                self._interrupted = False
                self._process = subprocess.Popen(
                    self._command(text),
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                )
            returncode = self._process.wait()
        except OSError as e:
            logger.warning("TTS failed: %s", e)
            return False
        finally:
            with self._lock:
                self._process = None

        if returncode != 0 and not self._interrupted:
            logger.warning("TTS exited with %d for %r", returncode, text)
            return False
        return True


class FallbackAnnouncer:
    """Tries a primary announcer and repeats the callout on a fallback if it fails."""

    def __init__(self, primary, fallback):
        self.primary = primary
        self.fallback = fallback

    def is_busy(self) -> bool:
        is_busy = getattr(self.primary, 'is_busy', None)
        return bool(is_busy and is_busy())

    def vibrate(self, pattern: Sequence[int]) -> None:
        for target in (self.primary, self.fallback):
            vibrate = getattr(target, 'vibrate', None)
            if vibrate:
                vibrate(pattern)
                return

    def announce(self, text: str, priority: Priority = Priority.NORMAL) -> Union[bool, Future]:
        try:
            result = self.primary.announce(text, priority)
        except Exception as e:
            logger.warning("Primary announcer failed, falling back: %s", e)
            return self.fallback.announce(text, priority)

        if isinstance(result, Future):
            result.add_done_callback(lambda f: self._check(f, text, priority))
            return result
        if not result:
            return self.fallback.announce(text, priority)
        return result

    def _check(self, future: Future, text: str, priority: Priority) -> None:
        if future.cancelled():
            return
        if future.exception() is not None or not future.result():
            logger.info("Primary announcer did not deliver, falling back")
            self.fallback.announce(text, priority)
