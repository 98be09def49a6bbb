"""
Audio for TalkQuest: processing, playback, resource arbitration and speech.

- processing: decoding, gain staging, tones, WAV output
- arbiter: single owner of microphone/speaker
- playback: command-line audio sink
- speech: text-to-speech and speech-to-text engines
"""

from .arbiter import AudioHolder, AudioResourceArbiter
from .processing import strip_emoji, decode_audio, feedback_graph, run_graph, write_wav
from .playback import SubprocessAudioSink
from .speech import GoogleCloudSynthesizer, NativeSpeechSynthesizer, GoogleStreamingRecognizer

__all__ = [
    "AudioHolder",
    "AudioResourceArbiter",
    "strip_emoji",
    "decode_audio",
    "feedback_graph",
    "run_graph",
    "write_wav",
    "SubprocessAudioSink",
    "GoogleCloudSynthesizer",
    "NativeSpeechSynthesizer",
    "GoogleStreamingRecognizer",
]
