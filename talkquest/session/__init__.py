"""Quiz session components.

This module contains the business logic for running quiz turns: the state
machine, speech capture, spoken feedback and the scoring policy.
"""

# Data models
from .models import (
    Profile, Question, CaptureResult, EvaluationResult, TurnResult, DifficultyTier
)

# States, actions and response schemas
from .schemas import (
    SessionState, SessionAction, CaptureMode, can_transition,
    normalize_reading_level, difficulty_tier
)

# Error taxonomy
from .errors import (
    QuizError, CaptureError, CapabilityUnavailable, PermissionDenied,
    NoSpeechDetected, RemoteServiceError, ServiceUnavailable, MalformedResponse,
    ProfileNotFound, ProfileStoreError
)

# Capability interfaces
from .interfaces import (
    Recognizer, Synthesizer, AudioSink, RemoteSynthesizer, QuizService, ProfileStore
)

# Event system
from .events import (
    SessionEventBus, EventLogger, SessionMetrics, EventType, SessionEvent,
    create_event_system
)

# Components
from .scoring import ScoringPolicy
from .capture import SpeechCapture, probe_capture_mode
from .feedback import AudioFeedback, Utterance
from .controller import SessionController
from .app import QuizApp

__all__ = [
    # Data models
    "Profile", "Question", "CaptureResult", "EvaluationResult", "TurnResult",
    "DifficultyTier",

    # States and schemas
    "SessionState", "SessionAction", "CaptureMode", "can_transition",
    "normalize_reading_level", "difficulty_tier",

    # Errors
    "QuizError", "CaptureError", "CapabilityUnavailable", "PermissionDenied",
    "NoSpeechDetected", "RemoteServiceError", "ServiceUnavailable",
    "MalformedResponse", "ProfileNotFound", "ProfileStoreError",

    # Interfaces
    "Recognizer", "Synthesizer", "AudioSink", "RemoteSynthesizer",
    "QuizService", "ProfileStore",

    # Events
    "SessionEventBus", "EventLogger", "SessionMetrics", "EventType",
    "SessionEvent", "create_event_system",

    # Components
    "ScoringPolicy", "SpeechCapture", "probe_capture_mode", "AudioFeedback",
    "Utterance", "SessionController", "QuizApp",
]
