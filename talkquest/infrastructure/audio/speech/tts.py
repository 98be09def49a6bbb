"""
Text-to-speech: Google Cloud TTS for the remote path, espeak/say on-device.
"""
import asyncio
import logging
import math
import shutil
import sys
from typing import List, Optional

from ....config import (
    TTS_VOICE, LANGUAGE_CODE, CLOUD_TTS_SPEAKING_RATE, CLOUD_TTS_PITCH,
    CLOUD_TTS_SAMPLE_RATE, NATIVE_BASE_WPM, NATIVE_BASE_PITCH
)
from ....session.errors import ServiceUnavailable, MalformedResponse
from ....session.interfaces import RemoteSynthesizer, Synthesizer

logger = logging.getLogger("speech_tts")


class GoogleCloudSynthesizer(RemoteSynthesizer):
    """Google Cloud Text-to-Speech returning LINEAR16 WAV audio."""

    def __init__(self,
                 voice: str = TTS_VOICE,
                 language_code: str = LANGUAGE_CODE,
                 speaking_rate: float = CLOUD_TTS_SPEAKING_RATE,
                 pitch: float = CLOUD_TTS_PITCH,
                 sample_rate: int = CLOUD_TTS_SAMPLE_RATE,
                 timeout: Optional[float] = None):
        self.voice = voice
        self.language_code = language_code
        self.speaking_rate = speaking_rate
        self.pitch = pitch
        self.sample_rate = sample_rate
        self.timeout = timeout
        self._client = None

    def _synthesize_sync(self, text: str) -> bytes:
        from google.cloud import texttospeech

        if self._client is None:
            self._client = texttospeech.TextToSpeechClient()

        synthesis_input = texttospeech.SynthesisInput(text=text)
        voice_params = texttospeech.VoiceSelectionParams(
            language_code=self.language_code,
            name=self.voice,
            ssml_gender=texttospeech.SsmlVoiceGender.FEMALE,
        )
        audio_config = texttospeech.AudioConfig(
            audio_encoding=texttospeech.AudioEncoding.LINEAR16,
            sample_rate_hertz=self.sample_rate,
            speaking_rate=self.speaking_rate,
            pitch=self.pitch,
        )
        response = self._client.synthesize_speech(
            input=synthesis_input, voice=voice_params, audio_config=audio_config,
            timeout=self.timeout,
        )
        return response.audio_content

    async def synthesize(self, text: str) -> bytes:
        try:
            audio = await asyncio.to_thread(self._synthesize_sync, text)
        except ImportError as e:
            raise ServiceUnavailable(f"google-cloud-texttospeech not installed: {e}")
        except Exception as e:
            # google.api_core errors, auth errors and transport errors alike
            logger.error(f"Google TTS failed: {e}")
            raise ServiceUnavailable(f"Google TTS failed: {e}")

        if not audio:
            raise MalformedResponse("Google TTS returned no audio")
        logger.debug(f"Google TTS returned {len(audio)} bytes")
        return audio


class NativeSpeechSynthesizer(Synthesizer):
    """
    Device speech synthesis through espeak-ng/espeak (Linux) or say (macOS).
    Rate and pitch are multipliers of the engine's defaults.
    """

    def __init__(self, voice: Optional[str] = None):
        self.voice = voice
        self._proc: Optional[asyncio.subprocess.Process] = None

    def _engine(self) -> Optional[str]:
        candidates = ["say"] if sys.platform == "darwin" else ["espeak-ng", "espeak"]
        for name in candidates:
            if shutil.which(name):
                return name
        return None

    def is_available(self) -> bool:
        return self._engine() is not None

    def build_command(self, engine: str, text: str, rate: float, pitch: float) -> List[str]:
        wpm = max(80, int(round(NATIVE_BASE_WPM * rate)))
        if engine == "say":
            command = ["say", "-r", str(wpm)]
            if self.voice:
                command += ["-v", self.voice]
            # say has no pitch flag; pbas shifts the baseline in semitones
            semitones = 12 * math.log2(pitch) if pitch > 0 else 0.0
            if abs(semitones) >= 0.05:
                text = f"[[pbas {semitones:+.1f}]] {text}"
            return command + [text]

        espeak_pitch = max(0, min(99, int(round(NATIVE_BASE_PITCH * pitch))))
        command = [engine, "-s", str(wpm), "-p", str(espeak_pitch)]
        if self.voice:
            command += ["-v", self.voice]
        return command + [text]

    async def speak(self, text: str, rate: float = 1.0, pitch: float = 1.0) -> None:
        engine = self._engine()
        if engine is None:
            logger.warning(f"No on-device speech engine, cannot speak: {text}")
            return

        command = self.build_command(engine, text, rate, pitch)
        logger.debug(f"Native speech: {command[:-1]}")
        self._proc = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
        try:
            await self._proc.wait()
        finally:
            self.cancel()
            self._proc = None

    def cancel(self) -> None:
        proc = self._proc
        if proc is not None and proc.returncode is None:
            try:
                proc.terminate()
            except ProcessLookupError:
                pass
