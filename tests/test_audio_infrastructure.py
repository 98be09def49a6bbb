import asyncio
import os

import numpy as np
import pytest

from talkquest.infrastructure.audio.arbiter import AudioHolder, AudioResourceArbiter
from talkquest.infrastructure.audio.playback import SubprocessAudioSink
from talkquest.infrastructure.audio.speech.stt import native_stderr_silenced
from talkquest.infrastructure.audio.speech.tts import NativeSpeechSynthesizer
from talkquest.session.errors import AudioPlaybackError


class Holder(AudioHolder):
    def __init__(self, name):
        self.resource_name = name
        self.preempts = 0

    def preempt(self):
        self.preempts += 1


def test_arbiter_preempts_previous_owner():
    arbiter = AudioResourceArbiter()
    mic, speaker = Holder("mic"), Holder("speaker")

    arbiter.acquire(mic)
    arbiter.acquire(mic)
    assert mic.preempts == 0

    arbiter.acquire(speaker)
    assert mic.preempts == 1
    assert arbiter.is_owner(speaker)

    arbiter.release(mic)
    assert arbiter.owner is speaker
    arbiter.release(speaker)
    assert arbiter.owner is None


def test_espeak_command_uses_rate_and_pitch_multipliers():
    synth = NativeSpeechSynthesizer()
    assert synth.build_command("espeak-ng", "Good job", 0.6, 1.1) == [
        "espeak-ng", "-s", "105", "-p", "55", "Good job"
    ]


def test_say_command_and_voice():
    synth = NativeSpeechSynthesizer(voice="Samantha")
    assert synth.build_command("say", "Hi", 1.0, 1.0) == ["say", "-r", "175", "-v", "Samantha", "Hi"]


def test_say_raises_pitch_with_embedded_command():
    synth = NativeSpeechSynthesizer()
    assert synth.build_command("say", "Good job", 0.6, 1.1) == [
        "say", "-r", "105", "[[pbas +1.7]] Good job"
    ]


def test_native_speech_without_engine_is_silent(monkeypatch):
    monkeypatch.setattr("shutil.which", lambda name: None)
    synth = NativeSpeechSynthesizer()
    assert not synth.is_available()
    asyncio.run(synth.speak("hello"))


def test_sink_without_player_raises(monkeypatch):
    monkeypatch.setattr("shutil.which", lambda name: None)
    sink = SubprocessAudioSink()
    with pytest.raises(AudioPlaybackError):
        asyncio.run(sink.play(np.zeros(10, dtype=np.int16), 16000))


def test_native_stderr_is_silenced_then_restored(capfd):
    with native_stderr_silenced():
        os.write(2, b"ALSA lib pcm.c: unknown PCM\n")
    os.write(2, b"visible again\n")

    err = capfd.readouterr().err
    assert "ALSA" not in err
    assert "visible again" in err
