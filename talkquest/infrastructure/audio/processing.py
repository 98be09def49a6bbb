"""
Audio processing functions: payload decoding, gain staging, tones and WAV output.
"""
import io
import re
import struct
import wave
from typing import Callable, List, Sequence, Tuple

import numpy as np
from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError

from ...config import (
    FEEDBACK_GAIN, CUE_NOTE_SECONDS, CUE_NOTE_SPACING, CUE_VOLUME, CUE_SAMPLE_RATE
)
from ...session.errors import AudioDecodeError

# Pictographic blocks a speech engine would otherwise read out literally
_EMOJI_RE = re.compile(
    "["
    "\U0001F300-\U0001F5FF"
    "\U0001F600-\U0001F64F"
    "\U0001F680-\U0001F6FF"
    "\U0001F700-\U0001F77F"
    "\U0001F780-\U0001F7FF"
    "\U0001F800-\U0001F8FF"
    "\U0001F900-\U0001F9FF"
    "\U0001FA00-\U0001FA6F"
    "\U0001FA70-\U0001FAFF"
    "\U0001F1E6-\U0001F1FF"
    "\u2600-\u26FF"
    "\u2700-\u27BF"
    "\u2B50\u2B55"
    "\uFE0F\u200D"
    "]+",
    flags=re.UNICODE,
)

Stage = Callable[[np.ndarray], np.ndarray]


def strip_emoji(text: str) -> str:
    """Remove emoji and pictographs, then tidy whitespace."""
    cleaned = _EMOJI_RE.sub("", text)
    return re.sub(r"\s+", " ", cleaned).strip()


def stereo_to_mono(x: np.ndarray) -> np.ndarray:
    """Convert multi-channel audio to mono by averaging channels."""
    return np.mean(x, axis=1)


def sniff_format(payload: bytes) -> str:
    """
    Container format of a synthesized audio payload, from its magic bytes.

    The quiz service returns MP3; Google LINEAR16 arrives as WAV.
    """
    head = payload[:12]
    if head[:4] == b"RIFF" and head[8:12] == b"WAVE":
        return "wav"
    if head[:3] == b"ID3" or (len(head) >= 2 and head[0] == 0xFF and head[1] & 0xE0 == 0xE0):
        return "mp3"
    if head[:4] == b"OggS":
        return "ogg"
    raise AudioDecodeError(f"Unrecognized audio payload ({len(payload)} bytes)")


def decode_audio(payload: bytes) -> Tuple[np.ndarray, int]:
    """
    Decode a synthesized speech payload (MP3, WAV or Ogg).

    WAV is parsed in-process; compressed formats go through ffmpeg.

    Returns:
        (mono float32 samples in [-1, 1], sample rate)

    Raises:
        AudioDecodeError: If the payload cannot be turned into samples
    """
    fmt = sniff_format(payload)
    try:
        if fmt == "wav":
            segment = AudioSegment(data=payload)
        else:
            segment = AudioSegment.from_file(io.BytesIO(payload), format=fmt)
        if not segment.raw_data:
            raise AudioDecodeError(f"{fmt} payload has no frames")
        if len(segment.raw_data) % segment.frame_width:
            raise AudioDecodeError(f"Truncated {fmt} payload: {len(segment.raw_data)} bytes of PCM")
        raw = segment.set_sample_width(2).raw_data
        pcm = np.frombuffer(raw, dtype="<i2").astype(np.float32) / 32768.0
        if segment.channels > 1:
            pcm = stereo_to_mono(pcm.reshape(-1, segment.channels))
    except (CouldntDecodeError, OSError, ValueError, ZeroDivisionError, struct.error) as e:
        raise AudioDecodeError(f"Unreadable {fmt} payload: {e}")
    return pcm.astype(np.float32), segment.frame_rate


def gain_stage(gain: float) -> Stage:
    """Amplitude multiplier."""
    def apply(samples: np.ndarray) -> np.ndarray:
        return samples * gain
    return apply


def clip_stage(limit: float = 1.0) -> Stage:
    """Hard limiter so boosted peaks do not wrap around."""
    def apply(samples: np.ndarray) -> np.ndarray:
        return np.clip(samples, -limit, limit)
    return apply


def feedback_graph(gain: float = FEEDBACK_GAIN) -> List[Stage]:
    """Processing chain for synthesized feedback: source -> gain -> limiter."""
    return [gain_stage(gain), clip_stage()]


def run_graph(samples: np.ndarray, stages: Sequence[Stage]) -> np.ndarray:
    for stage in stages:
        samples = stage(samples)
    return samples


def to_pcm16(samples: np.ndarray) -> np.ndarray:
    """Convert float samples in [-1, 1] to int16."""
    return (np.clip(samples, -1.0, 1.0) * 32767.0).astype(np.int16)


def synthesize_tone(frequencies: Sequence[float],
                    note_seconds: float = CUE_NOTE_SECONDS,
                    spacing: float = CUE_NOTE_SPACING,
                    volume: float = CUE_VOLUME,
                    sample_rate: int = CUE_SAMPLE_RATE) -> np.ndarray:
    """
    Render an arpeggio of sine notes with exponential decay.
    Note i starts at i * spacing and lasts note_seconds.

    Returns:
        int16 samples
    """
    if not frequencies:
        return np.zeros(0, dtype=np.int16)

    total = spacing * (len(frequencies) - 1) + note_seconds
    out = np.zeros(int(total * sample_rate) + 1, dtype=np.float32)
    n = int(note_seconds * sample_rate)
    t = np.arange(n, dtype=np.float32) / sample_rate
    # Decay from volume to 0.01 over the note
    envelope = volume * np.power(0.01 / volume, t / note_seconds)

    for i, freq in enumerate(frequencies):
        start = int(i * spacing * sample_rate)
        out[start:start + n] += (np.sin(2 * np.pi * freq * t) * envelope)[:len(out) - start]

    return to_pcm16(out)


def write_wav(path: str, pcm16: np.ndarray, sr: int, channels: int = 1) -> None:
    """Write PCM16 audio data to WAV file."""
    with wave.open(path, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(2)
        wf.setframerate(sr)
        wf.writeframes(pcm16.astype(np.int16).tobytes())


def encode_wav(pcm16: np.ndarray, sr: int) -> bytes:
    """Encode PCM16 samples as an in-memory WAV file."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(sr)
        wf.writeframes(pcm16.astype(np.int16).tobytes())
    return buf.getvalue()
