"""
TalkQuest Configuration System
==============================

This file contains ALL configuration for the TalkQuest quiz loop.
- User settings at the top (things users might want to change)
- Internal constants at the bottom (technical defaults)
"""
import os
from dataclasses import dataclass
from typing import Optional


# =============================================================================
# USER SETTINGS - Edit these to customize the quiz
# =============================================================================

# Quiz backend (generate-question / evaluate / tts endpoints)
API_BASE_URL = "http://localhost:3001"
REQUEST_TIMEOUT = 30.0  # seconds, applies to every remote call

# Child settings
DEFAULT_AGE = 6
DEFAULT_READING_LEVEL = 400

# Profiles
PROFILES_FILE = "./_profiles/profiles.json"
STORAGE_KEY = "talkquest-profiles"

# Speech settings
ENABLE_TTS = True
TTS_BACKEND = "backend"  # "backend" (POST /api/tts) or "google" (Cloud TTS client)
TTS_VOICE = "en-US-Wavenet-F"
LANGUAGE_CODE = "en-US"

# Logging
LOG_FILE = "./_logs/talkquest.log"
LOG_LEVEL = "INFO"


# =============================================================================
# INTERNAL CONSTANTS - Don't change these unless you know what you're doing
# =============================================================================

# Reading levels
READING_LEVEL_MIN = 100
READING_LEVEL_MAX = 1000
READING_LEVEL_STEP = 50

# (lower bound, tier name, max words per question)
DIFFICULTY_TIERS = (
    (0, "Beginning Reader", 8),
    (300, "Early Reader", 12),
    (500, "Growing Reader", 15),
    (700, "Developing Reader", 20),
)

# Scoring
POINTS_MULTIPLIER = 2
SCORE_MIN = 1
SCORE_MAX = 10
FALLBACK_SCORE_MIN = 3
FALLBACK_SCORE_MAX = 10
HIGH_SCORE_BAND = 8
SHORT_ANSWER_WORDS = 2
SHORT_ANSWER_SCORE_CAP = 7
CELEBRATION_SCORE = 7
POINTS_PER_LEVEL = 100

# Feedback audio
FEEDBACK_GAIN = 2.0
NATIVE_SPEECH_RATE = 0.6
NATIVE_SPEECH_PITCH = 1.1
NATIVE_BASE_WPM = 175
NATIVE_BASE_PITCH = 50
FEEDBACK_DELAY = 0.8
QUESTION_SPEECH_DELAY = 0.3

# Cloud TTS voice shaping
CLOUD_TTS_SPEAKING_RATE = 0.85
CLOUD_TTS_PITCH = 2.0
CLOUD_TTS_SAMPLE_RATE = 24000

# Celebration cue
CUE_NOTES = (523.25, 659.25, 783.99)
CUE_HIGH_NOTE = 1046.50
CUE_NOTE_SECONDS = 0.3
CUE_NOTE_SPACING = 0.15
CUE_VOLUME = 0.3
CUE_SAMPLE_RATE = 22050

# Microphone / recognition
SAMPLE_RATE_CAPTURE = 16000
CHUNK_MS = 100

# Player commands tried in order by the subprocess sink
PLAYER_COMMANDS = (
    ("aplay", "-q"),
    ("afplay",),
    ("paplay",),
)

# Friendly messages
MSG_SERVICE_DOWN = "Oops! Our robot helper is taking a nap. Please try again!"
MSG_NO_SPEECH = "No speech detected. Please try again."
MSG_PERMISSION = "Microphone access denied. Please allow microphone access."
MSG_NO_RECOGNIZER = "Speech recognition is not available on this device."
MSG_DEGRADED = "Good effort! You used {words} words! (Offline Mode)"
MSG_DEFAULT_FEEDBACK = "Good job!"


# =============================================================================
# MAIN CONFIG OBJECT
# =============================================================================

@dataclass
class Config:
    """Main configuration object."""
    api_base_url: str = API_BASE_URL
    request_timeout: Optional[float] = REQUEST_TIMEOUT
    default_age: int = DEFAULT_AGE
    profiles_file: str = PROFILES_FILE
    enable_tts: bool = ENABLE_TTS
    tts_backend: str = TTS_BACKEND
    tts_voice: str = TTS_VOICE
    language_code: str = LANGUAGE_CODE
    log_file: str = LOG_FILE
    log_level: str = LOG_LEVEL


def get_config() -> Config:
    """Load configuration, applying environment overrides."""
    config = Config(
        api_base_url=os.getenv("TALKQUEST_API_URL") or API_BASE_URL,
        profiles_file=os.getenv("TALKQUEST_PROFILES") or PROFILES_FILE,
        tts_backend=(os.getenv("TALKQUEST_TTS_BACKEND") or TTS_BACKEND).lower(),
        log_level=(os.getenv("TALKQUEST_LOG_LEVEL") or LOG_LEVEL).upper(),
    )

    age = os.getenv("TALKQUEST_AGE")
    if age:
        try:
            config.default_age = int(age)
        except ValueError:
            raise ValueError(f"TALKQUEST_AGE must be an integer, got {age!r}")
        if config.default_age <= 0:
            raise ValueError("TALKQUEST_AGE must be positive")

    timeout = os.getenv("TALKQUEST_REQUEST_TIMEOUT")
    if timeout:
        try:
            config.request_timeout = float(timeout)
        except ValueError:
            raise ValueError(f"TALKQUEST_REQUEST_TIMEOUT must be a number, got {timeout!r}")
        if config.request_timeout <= 0:
            # Zero or negative disables the timeout
            config.request_timeout = None

    if config.tts_backend not in ("backend", "google"):
        raise ValueError("TALKQUEST_TTS_BACKEND must be 'backend' or 'google'")

    if not config.api_base_url.startswith(("http://", "https://")):
        raise ValueError(f"Quiz API URL must be http(s): {config.api_base_url}")

    return config
