"""
Fake capabilities for tests and demos: no microphone, speaker or network.
"""
import asyncio
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .errors import (
    CapabilityUnavailable, ServiceUnavailable, ProfileNotFound, ProfileStoreError
)
from .interfaces import (
    Recognizer, Synthesizer, AudioSink, RemoteSynthesizer, QuizService, ProfileStore,
    SegmentCallback, ErrorCallback, EndCallback
)
from .models import Profile, Question, EvaluationResult
from .schemas import difficulty_tier, normalize_reading_level


class FakeRecognizer(Recognizer):
    """
    Recognizer driven by the test.

    `segments` are delivered on start(); `start_error` is raised from start();
    `stop_segments` are flushed during stop().
    """

    def __init__(self,
                 segments: Sequence[Tuple[int, str]] = (),
                 available: bool = True,
                 start_error: Optional[Exception] = None,
                 stop_segments: Sequence[Tuple[int, str]] = ()):
        self.segments = list(segments)
        self.available = available
        self.start_error = start_error
        self.stop_segments = list(stop_segments)
        self.starts = 0
        self.stops = 0
        self.aborts = 0
        self.continuous: Optional[bool] = None
        self.listening = False
        self._on_segment: Optional[SegmentCallback] = None
        self._on_error: Optional[ErrorCallback] = None
        self._on_end: Optional[EndCallback] = None

    def is_available(self) -> bool:
        return self.available

    async def start(self, on_segment, on_error, on_end, continuous=True) -> None:
        self.starts += 1
        if not self.available:
            raise CapabilityUnavailable("fake recognizer unavailable")
        if self.start_error is not None:
            raise self.start_error
        self.continuous = continuous
        self.listening = True
        self._on_segment, self._on_error, self._on_end = on_segment, on_error, on_end
        for index, text in self.segments:
            on_segment(index, text)

    def emit(self, index: int, text: str) -> None:
        """Deliver a segment as if the engine heard it."""
        self._on_segment(index, text)

    def fail(self, error: Exception) -> None:
        self._on_error(error)

    def end(self) -> None:
        self._on_end()

    async def stop(self) -> None:
        self.stops += 1
        for index, text in self.stop_segments:
            self._on_segment(index, text)
        self.listening = False

    def abort(self) -> None:
        self.aborts += 1
        self.listening = False


class FakeSynthesizer(Synthesizer):
    """On-device synthesizer that records what it was asked to say."""

    def __init__(self, available: bool = True, duration: float = 0.0):
        self.available = available
        self.duration = duration
        self.spoken: List[Tuple[str, float, float]] = []
        self.cancels = 0

    def is_available(self) -> bool:
        return self.available

    async def speak(self, text: str, rate: float = 1.0, pitch: float = 1.0) -> None:
        self.spoken.append((text, rate, pitch))
        if self.duration:
            await asyncio.sleep(self.duration)

    def cancel(self) -> None:
        self.cancels += 1


class FakeAudioSink(AudioSink):
    """Sink that 'plays' for `duration` seconds and tracks overlapping streams."""

    def __init__(self, duration: float = 0.0, error: Optional[Exception] = None):
        self.duration = duration
        self.error = error
        self.played: List[Tuple[np.ndarray, int]] = []
        self.active = 0
        self.max_active = 0
        self.stops = 0

    async def play(self, pcm16: np.ndarray, sample_rate: int) -> None:
        if self.error is not None:
            raise self.error
        self.played.append((pcm16, sample_rate))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.duration)
        finally:
            self.active -= 1

    def stop(self) -> None:
        self.stops += 1


class FakeRemoteSynthesizer(RemoteSynthesizer):
    """Returns a fixed audio payload, or raises `error`."""

    def __init__(self, payload: bytes = b"", error: Optional[Exception] = None, delay: float = 0.0):
        self.payload = payload
        self.error = error
        self.delay = delay
        self.requests: List[str] = []

    async def synthesize(self, text: str) -> bytes:
        self.requests.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.payload


class FakeQuizService(QuizService):
    """
    Scripted quiz backend.

    Questions and evaluations are consumed in order; an Exception in either
    list is raised instead of returned.
    """

    def __init__(self,
                 questions: Sequence = ("What is your favorite animal?",),
                 evaluations: Sequence = (EvaluationResult(score=8, feedback="Great!"),),
                 evaluate_delay: float = 0.0):
        self.questions = list(questions)
        self.evaluations = list(evaluations)
        self.evaluate_delay = evaluate_delay
        self.question_requests: List[Tuple[int, Optional[int]]] = []
        self.evaluate_requests: List[Tuple[str, str, int]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def generate_question(self, reading_level: int, age: Optional[int] = None) -> Question:
        self.question_requests.append((reading_level, age))
        item = self.questions.pop(0) if len(self.questions) > 1 else self.questions[0]
        if isinstance(item, Exception):
            raise item
        level = normalize_reading_level(reading_level)
        return Question(text=item, reading_level=level, tier=difficulty_tier(level))

    async def evaluate_answer(self, question: str, answer: str, reading_level: int) -> EvaluationResult:
        self.evaluate_requests.append((question, answer, reading_level))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.evaluate_delay:
                await asyncio.sleep(self.evaluate_delay)
            item = self.evaluations.pop(0) if len(self.evaluations) > 1 else self.evaluations[0]
        finally:
            self.in_flight -= 1
        if isinstance(item, Exception):
            raise item
        return item


class InMemoryProfileStore(ProfileStore):
    """Profile store kept in a dict; counts writes."""

    def __init__(self, profiles: Sequence[Profile] = (), fail_writes: bool = False):
        self._profiles: Dict[str, Profile] = {p.id: p for p in profiles}
        self.fail_writes = fail_writes
        self.writes = 0

    def list_profiles(self) -> List[Profile]:
        return [Profile.from_dict(p.to_dict()) for p in self._profiles.values()]

    def get(self, profile_id: str) -> Profile:
        if profile_id not in self._profiles:
            raise ProfileNotFound(profile_id)
        return Profile.from_dict(self._profiles[profile_id].to_dict())

    def put(self, profile: Profile) -> None:
        if self.fail_writes:
            raise ProfileStoreError("fake store refuses writes")
        current = self._profiles.get(profile.id)
        if current is not None and profile.score < current.score:
            raise ValueError("score may not decrease")
        self.writes += 1
        self._profiles[profile.id] = profile

    def save_all(self, profiles: List[Profile]) -> None:
        if self.fail_writes:
            raise ProfileStoreError("fake store refuses writes")
        self.writes += 1
        self._profiles = {p.id: p for p in profiles}


def unavailable(message: str = "network down") -> ServiceUnavailable:
    """Shorthand for scripting a remote failure."""
    return ServiceUnavailable(message)
