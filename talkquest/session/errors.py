"""
Error taxonomy for the quiz session.
"""


class QuizError(Exception):
    """Base class for all quiz errors."""


# Capture family: stays local to the Capturing state

class CaptureError(QuizError):
    """Base class for speech-capture failures."""


class CapabilityUnavailable(CaptureError):
    """No speech-recognition engine (or no microphone) exists on this device."""


class PermissionDenied(CaptureError):
    """Microphone access was refused. The caller may retry."""


class NoSpeechDetected(CaptureError):
    """Capture ended with an empty transcript. The caller should re-prompt."""


# Remote family: question generation, evaluation, synthesis

class RemoteServiceError(QuizError):
    """Base class for failures of the remote quiz service."""


class ServiceUnavailable(RemoteServiceError):
    """Network failure or non-success response from a remote call."""

    def __init__(self, message: str, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class MalformedResponse(ServiceUnavailable):
    """Remote call answered with a payload that does not match its contract."""


# Audio family: absorbed by the feedback fallback chain

class AudioDecodeError(QuizError):
    """Synthesized audio payload could not be decoded."""


class AudioPlaybackError(QuizError):
    """No audio player could play the decoded samples."""


# Profile persistence

class ProfileNotFound(QuizError, KeyError):
    """No profile exists with the requested identifier."""


class ProfileStoreError(QuizError):
    """Profile records could not be read or written."""
