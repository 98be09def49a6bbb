"""
Spoken feedback: remote synthesis with gain boost, device speech as fallback.
"""
import asyncio
import logging
from typing import Awaitable, Optional

from ..config import (
    FEEDBACK_GAIN, NATIVE_SPEECH_RATE, NATIVE_SPEECH_PITCH,
    CUE_NOTES, CUE_HIGH_NOTE, CUE_SAMPLE_RATE
)
from ..infrastructure.audio.arbiter import AudioHolder, AudioResourceArbiter
from ..infrastructure.audio.processing import (
    strip_emoji, decode_audio, feedback_graph, run_graph, to_pcm16, synthesize_tone
)
from .errors import ServiceUnavailable, AudioDecodeError, AudioPlaybackError, QuizError
from .interfaces import RemoteSynthesizer, Synthesizer, AudioSink

logger = logging.getLogger("audio_feedback")


class Utterance:
    """
    Handle for one speak() or play_cue() request.

    The request runs on its own; callers that need sequencing await wait().
    """

    def __init__(self, text: str, task: "asyncio.Task"):
        self.text = text
        self.task = task

    @property
    def done(self) -> bool:
        return self.task.done()

    @property
    def cancelled(self) -> bool:
        return self.task.cancelled()

    async def wait(self) -> bool:
        """
        Wait for the utterance to end.

        Returns:
            True if it played to the end, False if it was preempted
        """
        await asyncio.wait({self.task})
        if self.task.cancelled():
            return False
        error = self.task.exception()
        if error is not None:
            logger.error(f"Utterance failed unexpectedly: {error!r}")
            return False
        return True


class AudioFeedback(AudioHolder):
    """
    Speaks text to the child, one utterance at a time.

    Order of attempts for each utterance:
      1. remote synthesis -> decode -> gain graph -> audio sink
      2. device speech at a slow rate and raised pitch, no gain

    Synthesis problems never reach the caller.
    """

    resource_name = "feedback"

    def __init__(self,
                 remote: Optional[RemoteSynthesizer],
                 sink: Optional[AudioSink],
                 native: Optional[Synthesizer],
                 arbiter: AudioResourceArbiter,
                 gain: float = FEEDBACK_GAIN,
                 native_rate: float = NATIVE_SPEECH_RATE,
                 native_pitch: float = NATIVE_SPEECH_PITCH,
                 enabled: bool = True):
        self.remote = remote
        self.sink = sink
        self.native = native
        self.arbiter = arbiter
        self.graph = feedback_graph(gain)
        self.native_rate = native_rate
        self.native_pitch = native_pitch
        self.enabled = enabled

        self._current: Optional[Utterance] = None

    @property
    def is_speaking(self) -> bool:
        return self._current is not None and not self._current.done

    def speak(self, text: str) -> Utterance:
        """
        Start speaking text, cancelling whatever is playing.
        Must be called from the event loop.
        """
        clean = strip_emoji(text)
        if not self.enabled or not clean:
            return self._start(clean, self._noop())

        logger.info(f"Speaking: {clean}")
        return self._start(clean, self._speak(clean))

    def play_cue(self, extended: bool = False) -> Utterance:
        """Play the celebration arpeggio; extended adds the top note."""
        notes = list(CUE_NOTES) + ([CUE_HIGH_NOTE] if extended else [])
        if not self.enabled or self.sink is None:
            return self._start("", self._noop())
        return self._start("", self._play_cue(notes))

    async def wait_idle(self) -> None:
        """Wait for the current utterance, if any, to end."""
        current = self._current
        if current is not None:
            await current.wait()

    def cancel(self) -> None:
        """Stop the current utterance and any pending synthesis."""
        current = self._current
        self._current = None
        if current is not None and not current.done:
            logger.debug(f"Cancelling utterance: {current.text!r}")
            current.task.cancel()
            if self.sink is not None:
                self.sink.stop()
            if self.native is not None:
                self.native.cancel()
        self.arbiter.release(self)

    def preempt(self) -> None:
        self.cancel()

    def _start(self, text: str, coro: Awaitable[None]) -> Utterance:
        self.cancel()
        self.arbiter.acquire(self)
        task = asyncio.get_running_loop().create_task(coro)
        self._current = Utterance(text, task)
        return self._current

    def _finish(self) -> None:
        # An older task finishing late must not release a newer utterance
        current = self._current
        if current is not None and current.task is asyncio.current_task():
            self.arbiter.release(self)

    async def _noop(self) -> None:
        self._finish()

    async def _speak(self, text: str) -> None:
        try:
            try:
                await self._speak_remote(text)
                return
            except (ServiceUnavailable, AudioDecodeError, AudioPlaybackError) as e:
                logger.warning(f"Remote speech failed ({type(e).__name__}: {e}), using device speech")
            await self._speak_native(text)
        finally:
            self._finish()

    async def _speak_remote(self, text: str) -> None:
        if self.remote is None or self.sink is None:
            raise ServiceUnavailable("Remote synthesis not configured")

        payload = await self.remote.synthesize(text)
        # ffmpeg decoding blocks
        samples, sample_rate = await asyncio.to_thread(decode_audio, payload)
        boosted = to_pcm16(run_graph(samples, self.graph))
        logger.debug(f"Playing {len(boosted)} samples at {sample_rate} Hz")
        await self.sink.play(boosted, sample_rate)

    async def _speak_native(self, text: str) -> None:
        if self.native is None or not self.native.is_available():
            logger.warning(f"No device speech available, text stays on screen: {text}")
            return
        try:
            await self.native.speak(text, rate=self.native_rate, pitch=self.native_pitch)
        except (OSError, QuizError) as e:
            logger.error(f"Device speech failed: {e}")

    async def _play_cue(self, notes) -> None:
        try:
            tone = synthesize_tone(notes, sample_rate=CUE_SAMPLE_RATE)
            await self.sink.play(tone, CUE_SAMPLE_RATE)
        except AudioPlaybackError as e:
            logger.warning(f"Cue playback failed: {e}")
        finally:
            self._finish()
