"""
Session states, actions, difficulty tiers and remote-response schemas.
"""
import base64
import binascii
import json
import re
from enum import Enum
from typing import Optional, Dict, Any, FrozenSet, Type, TypeVar

from pydantic import BaseModel, Field, ValidationError, field_validator

from ..config import (
    READING_LEVEL_MIN, READING_LEVEL_MAX, READING_LEVEL_STEP,
    DEFAULT_READING_LEVEL, DIFFICULTY_TIERS, SCORE_MIN, SCORE_MAX
)
from .errors import MalformedResponse
from .models import DifficultyTier, Question, EvaluationResult


class SessionState(str, Enum):
    """States of one profile turn."""
    AWAITING_QUESTION = "AwaitingQuestion"
    PRESENTING_QUESTION = "PresentingQuestion"
    CAPTURING = "Capturing"
    SUBMITTING = "Submitting"
    PRESENTING_RESULT = "PresentingResult"


class SessionAction(str, Enum):
    """User messages that drive the session."""
    START_CAPTURE = "start_capture"
    STOP_CAPTURE = "stop_capture"
    NEXT_QUESTION = "next_question"
    SWITCH_PROFILE = "switch_profile"


class CaptureMode(str, Enum):
    """How the recognizer listens."""
    CONTINUOUS = "continuous"      # desktop-class: multi-phrase
    SINGLE_BURST = "single_burst"  # mobile-class: one utterance


ALLOWED_TRANSITIONS: Dict[SessionState, FrozenSet[SessionState]] = {
    SessionState.AWAITING_QUESTION: frozenset({
        SessionState.PRESENTING_QUESTION, SessionState.PRESENTING_RESULT,
    }),
    SessionState.PRESENTING_QUESTION: frozenset({SessionState.CAPTURING}),
    SessionState.CAPTURING: frozenset({SessionState.SUBMITTING}),
    SessionState.SUBMITTING: frozenset({SessionState.PRESENTING_RESULT}),
    SessionState.PRESENTING_RESULT: frozenset({SessionState.AWAITING_QUESTION}),
}


def can_transition(current: SessionState, target: SessionState) -> bool:
    """Check whether the state machine allows current -> target."""
    return target in ALLOWED_TRANSITIONS[current]


# =============================================================================
# Reading levels and difficulty tiers
# =============================================================================

def normalize_reading_level(value: Any) -> int:
    """
    Clamp a reading level into the recognised range and snap it to the step.
    Missing or unparseable values fall back to the default level.
    """
    if value is None or isinstance(value, bool):
        return DEFAULT_READING_LEVEL
    try:
        level = int(round(float(value)))
    except (TypeError, ValueError):
        return DEFAULT_READING_LEVEL

    level = max(READING_LEVEL_MIN, min(READING_LEVEL_MAX, level))
    snapped = int(round(level / READING_LEVEL_STEP)) * READING_LEVEL_STEP
    return max(READING_LEVEL_MIN, min(READING_LEVEL_MAX, snapped))


def difficulty_tier(reading_level: int) -> DifficultyTier:
    """Return the tier whose lower bound is the highest one <= reading_level."""
    chosen = DIFFICULTY_TIERS[0]
    for tier in DIFFICULTY_TIERS:
        if reading_level >= tier[0]:
            chosen = tier
    lower, name, max_words = chosen
    return DifficultyTier(name=name, min_level=lower, max_words=max_words)


# =============================================================================
# Remote response schemas
# =============================================================================

class QuestionResponse(BaseModel):
    """Body of a generate-question response."""
    question: str
    topic: Optional[str] = None

    @field_validator("question")
    @classmethod
    def question_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("question is empty")
        return v

    def to_question(self, reading_level: int) -> Question:
        return Question(
            text=self.question,
            reading_level=reading_level,
            tier=difficulty_tier(reading_level),
            topic=self.topic,
        )


class EvaluationResponse(BaseModel):
    """Body of an evaluate-answer response."""
    score: int = Field(ge=SCORE_MIN, le=SCORE_MAX)
    feedback: str

    @field_validator("score", mode="before")
    @classmethod
    def integral_score(cls, v: Any) -> Any:
        # "8" and 8.0 are accepted, 7.5 is not
        if isinstance(v, bool):
            raise ValueError("score must be an integer")
        if isinstance(v, float) and not v.is_integer():
            raise ValueError("score must be an integer")
        return v

    def to_result(self) -> EvaluationResult:
        return EvaluationResult(score=int(self.score), feedback=self.feedback.strip())


class SynthesisResponse(BaseModel):
    """Body of a synthesize-speech response."""
    audioContent: str

    def audio_bytes(self) -> bytes:
        try:
            payload = base64.b64decode(self.audioContent, validate=True)
        except (binascii.Error, ValueError) as e:
            raise MalformedResponse(f"audioContent is not valid base64: {e}")
        if not payload:
            raise MalformedResponse("audioContent is empty")
        return payload


ModelT = TypeVar("ModelT", bound=BaseModel)

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)


def parse_json_payload(raw: str) -> Dict[str, Any]:
    """
    Parse a JSON object from response text.
    Markdown code fences are removed, then the outermost {...} is tried.

    Raises:
        MalformedResponse: If no JSON object can be extracted
    """
    text = _FENCE_RE.sub("", raw or "").strip()
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        start = text.find("{")
        end = text.rfind("}")
        if start == -1 or end <= start:
            raise MalformedResponse(f"No JSON found in response: {raw!r}")
        try:
            data = json.loads(text[start:end + 1])
        except json.JSONDecodeError:
            raise MalformedResponse(f"Could not extract valid JSON from response: {raw!r}")

    if not isinstance(data, dict):
        raise MalformedResponse(f"Expected a JSON object, got {type(data).__name__}")
    return data


def validate_payload(model: Type[ModelT], data: Dict[str, Any]) -> ModelT:
    """Validate a decoded payload against a response schema."""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise MalformedResponse(f"Invalid {model.__name__}: {e.error_count()} error(s): {e}")
