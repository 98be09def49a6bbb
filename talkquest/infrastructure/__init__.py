"""Infrastructure components for TalkQuest.

Concrete implementations of the session's capability interfaces: the
remote quiz service, audio playback and speech engines, and profile files.
"""

# Remote quiz service
from .api import QuizServiceClient

# Audio infrastructure
from .audio import (
    AudioResourceArbiter, SubprocessAudioSink,
    GoogleCloudSynthesizer, NativeSpeechSynthesizer, GoogleStreamingRecognizer
)

# Profiles
from .data import JsonProfileStore

__all__ = [
    "QuizServiceClient",
    "AudioResourceArbiter", "SubprocessAudioSink",
    "GoogleCloudSynthesizer", "NativeSpeechSynthesizer", "GoogleStreamingRecognizer",
    "JsonProfileStore",
]
