import struct

import numpy as np
import pytest

from talkquest.infrastructure.audio.processing import encode_wav


@pytest.fixture
def wav_payload():
    """A short 16 kHz PCM16 WAV at a quarter of full scale."""
    return encode_wav(np.full(160, 8192, dtype=np.int16), 16000)


@pytest.fixture
def truncated_wav():
    """A 16-bit WAV whose data chunk claims 100 bytes but holds 3."""
    fmt = struct.pack("<4sIHHIIHH", b"fmt ", 16, 1, 1, 16000, 32000, 2, 16)
    data = struct.pack("<4sI", b"data", 100) + b"\x01\x02\x03"
    body = b"WAVE" + fmt + data
    return b"RIFF" + struct.pack("<I", len(body)) + body


@pytest.fixture
def mp3_payload():
    """An MPEG-1 Layer III frame header followed by an empty frame body."""
    return b"\xff\xfb\x90\x64" + bytes(413)
