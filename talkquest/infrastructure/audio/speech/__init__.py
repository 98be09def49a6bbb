"""Speech-to-text and text-to-speech modules."""

from .tts import GoogleCloudSynthesizer, NativeSpeechSynthesizer
from .stt import GoogleStreamingRecognizer

__all__ = ["GoogleCloudSynthesizer", "NativeSpeechSynthesizer", "GoogleStreamingRecognizer"]
