"""
Capability interfaces injected into the session components.

Concrete implementations live under talkquest.infrastructure; fakes for
tests and demos live in talkquest.session.testing.
"""
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

import numpy as np

from .models import Profile, Question, EvaluationResult

SegmentCallback = Callable[[int, str], None]
ErrorCallback = Callable[[Exception], None]
EndCallback = Callable[[], None]


class Recognizer(ABC):
    """On-device speech recognition engine."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether an engine exists on this device at all."""

    @abstractmethod
    async def start(self,
                    on_segment: SegmentCallback,
                    on_error: ErrorCallback,
                    on_end: EndCallback,
                    continuous: bool = True) -> None:
        """
        Begin listening.

        on_segment(index, text) is called whenever the engine (re-)estimates
        segment `index`; later calls for the same index replace earlier ones.

        Raises:
            CapabilityUnavailable: No engine or no input device
            PermissionDenied: Microphone access refused
        """

    @abstractmethod
    async def stop(self) -> None:
        """Stop listening and flush pending results."""

    @abstractmethod
    def abort(self) -> None:
        """Stop immediately, dropping pending results."""


class Synthesizer(ABC):
    """On-device speech synthesis."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the device can speak."""

    @abstractmethod
    async def speak(self, text: str, rate: float = 1.0, pitch: float = 1.0) -> None:
        """Speak text; returns when the utterance ends."""

    @abstractmethod
    def cancel(self) -> None:
        """Silence the current utterance."""


class AudioSink(ABC):
    """Plays PCM audio."""

    @abstractmethod
    async def play(self, pcm16: np.ndarray, sample_rate: int) -> None:
        """Play int16 mono samples; returns when playback ends."""

    @abstractmethod
    def stop(self) -> None:
        """Stop the current playback."""


class RemoteSynthesizer(ABC):
    """Remote text-to-speech."""

    @abstractmethod
    async def synthesize(self, text: str) -> bytes:
        """
        Return the synthesized audio payload.

        Raises:
            ServiceUnavailable: Network failure or non-success response
            MalformedResponse: Response does not match the contract
        """


class QuizService(ABC):
    """Remote question generator and answer evaluator."""

    @abstractmethod
    async def generate_question(self, reading_level: int, age: Optional[int] = None) -> Question:
        """Request a question calibrated to reading_level."""

    @abstractmethod
    async def evaluate_answer(self, question: str, answer: str, reading_level: int) -> EvaluationResult:
        """Request a score (1-10) and feedback for an answer."""


class ProfileStore(ABC):
    """Repository of child profiles."""

    @abstractmethod
    def list_profiles(self) -> List[Profile]:
        """All profiles in display order."""

    @abstractmethod
    def get(self, profile_id: str) -> Profile:
        """
        Return a copy of one profile.

        Raises:
            ProfileNotFound: Unknown identifier
        """

    @abstractmethod
    def put(self, profile: Profile) -> None:
        """Insert or replace one profile and persist."""

    @abstractmethod
    def save_all(self, profiles: List[Profile]) -> None:
        """Replace the full list and persist."""
