"""
Speech capture: start/stop/transcript lifecycle over an injected recognizer.
"""
import asyncio
import logging
import sys
from typing import Callable, Dict, Optional

from ..infrastructure.audio.arbiter import AudioHolder, AudioResourceArbiter
from .errors import CaptureError, CapabilityUnavailable, NoSpeechDetected
from .interfaces import Recognizer
from .models import CaptureResult
from .schemas import CaptureMode

logger = logging.getLogger("speech_capture")

MOBILE_PLATFORMS = ("android", "ios")


def probe_capture_mode() -> CaptureMode:
    """
    Pick the capture mode for this device. Mobile-class platforms get one
    utterance per capture; everything else listens continuously.
    """
    if sys.platform in MOBILE_PLATFORMS or hasattr(sys, "getandroidapilevel"):
        return CaptureMode.SINGLE_BURST
    return CaptureMode.CONTINUOUS


class SpeechCapture(AudioHolder):
    """
    Turns recognizer callbacks into a running transcript.

    Segments are keyed by index: a later estimate of a segment replaces the
    earlier one, so the transcript converges instead of repeating words.
    """

    resource_name = "capture"

    def __init__(self,
                 recognizer: Optional[Recognizer],
                 arbiter: AudioResourceArbiter,
                 probe: Callable[[], CaptureMode] = probe_capture_mode):
        self.recognizer = recognizer
        self.arbiter = arbiter
        self._probe = probe
        self._mode: Optional[CaptureMode] = None

        self._segments: Dict[int, str] = {}
        self._active = False
        self._engine_ended = False
        self._ended: Optional[asyncio.Event] = None
        self._error: Optional[CaptureError] = None

    @property
    def mode(self) -> CaptureMode:
        if self._mode is None:
            self._mode = self._probe()
            logger.info(f"Capture mode: {self._mode.value}")
        return self._mode

    @property
    def is_available(self) -> bool:
        return self.recognizer is not None and self.recognizer.is_available()

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def engine_ended(self) -> bool:
        """True once a single-burst engine has stopped listening by itself."""
        return self._engine_ended

    async def wait_engine_end(self) -> None:
        """Block until the engine of the current capture ends on its own."""
        if self._ended is None:
            raise RuntimeError("Capture was never started")
        await self._ended.wait()

    @property
    def transcript(self) -> str:
        """Best-effort transcript so far."""
        parts = (self._segments[i].strip() for i in sorted(self._segments))
        return " ".join(p for p in parts if p)

    async def start(self) -> None:
        """
        Begin listening, preempting any feedback playback.

        Raises:
            CapabilityUnavailable: No recognition engine on this device
            PermissionDenied: Microphone access refused
        """
        if not self.is_available:
            raise CapabilityUnavailable("No speech recognition engine available")

        if self._active:
            logger.info("Capture restarted while active")
            self.abort()

        self._segments = {}
        self._error = None
        self._engine_ended = False
        self._ended = asyncio.Event()

        self.arbiter.acquire(self)
        self._active = True
        try:
            await self.recognizer.start(
                self._on_segment, self._on_error, self._on_end,
                continuous=self.mode is CaptureMode.CONTINUOUS,
            )
        except CaptureError as e:
            logger.warning(f"Capture failed to start: {type(e).__name__}: {e}")
            self._active = False
            self.arbiter.release(self)
            raise
        logger.info("Capture started")

    async def stop(self) -> CaptureResult:
        """
        Stop listening and return the trimmed transcript.

        Raises:
            NoSpeechDetected: Nothing was heard
            PermissionDenied, CapabilityUnavailable: Reported by the engine
                while listening and nothing was heard
        """
        if self._active:
            # Segments flushed during stop() still count
            try:
                await self.recognizer.stop()
            finally:
                self._active = False
                self.arbiter.release(self)

        text = self.transcript.strip()
        error, self._error = self._error, None
        self._segments = {}

        if not text:
            if error is not None:
                raise error
            logger.info("Capture stopped with no speech")
            raise NoSpeechDetected("No speech detected")

        if error is not None:
            logger.warning(f"Keeping transcript despite engine error: {error}")
        logger.info(f"Capture stopped: {text!r}")
        return CaptureResult(transcript=text)

    def abort(self) -> None:
        """Stop immediately and drop everything heard."""
        if self._active:
            self._active = False
            self.recognizer.abort()
            logger.info("Capture aborted")
        self._segments = {}
        self._error = None
        self.arbiter.release(self)

    def preempt(self) -> None:
        self.abort()

    def _on_segment(self, index: int, text: str) -> None:
        if not self._active:
            return
        self._segments[index] = text
        logger.debug(f"Segment {index}: {text!r}")

    def _on_error(self, error: Exception) -> None:
        if not self._active:
            return
        logger.warning(f"Recognizer error: {type(error).__name__}: {error}")
        if isinstance(error, CaptureError):
            self._error = error

    def _on_end(self) -> None:
        # Single-burst engines end by themselves; the transcript waits for stop()
        if self._active:
            self._engine_ended = True
            self._ended.set()
            logger.debug("Recognizer ended on its own")
