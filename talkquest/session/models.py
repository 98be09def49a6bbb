"""
Data models for the quiz session.
"""
from dataclasses import dataclass, replace
from typing import Optional, Dict, Any

from ..config import DEFAULT_READING_LEVEL, POINTS_PER_LEVEL


def count_words(text: str) -> int:
    """Count whitespace-separated words."""
    return len(text.split())


@dataclass(frozen=True)
class DifficultyTier:
    """Reading-level bucket controlling question length."""
    name: str
    min_level: int
    max_words: int


@dataclass
class Profile:
    """A child's profile. Owned by the profile store; sessions hold copies."""
    id: str
    name: str
    avatar: str = "🙂"
    score: int = 0
    reading_level: int = DEFAULT_READING_LEVEL

    @property
    def level(self) -> int:
        """Display level derived from the cumulative score."""
        return self.score // POINTS_PER_LEVEL + 1

    def with_points(self, points: int) -> "Profile":
        """Return a copy with points added. Scores never decrease."""
        if points < 0:
            raise ValueError(f"points must be non-negative, got {points}")
        return replace(self, score=self.score + points)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "avatar": self.avatar,
            "score": self.score,
            "reading_level": self.reading_level,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Profile":
        """Build a profile from a stored record, backfilling missing fields."""
        from .schemas import normalize_reading_level

        reading_level = data.get("reading_level", data.get("lexileLevel"))
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            avatar=str(data.get("avatar", "🙂")),
            score=max(0, int(data.get("score", 0) or 0)),
            reading_level=normalize_reading_level(reading_level),
        )


@dataclass
class Question:
    """A generated question. Lives for one turn."""
    text: str
    reading_level: int
    tier: DifficultyTier
    topic: Optional[str] = None

    @property
    def word_count(self) -> int:
        return count_words(self.text)

    @property
    def exceeds_ceiling(self) -> bool:
        """True when the generator ignored the tier's word ceiling."""
        return self.word_count > self.tier.max_words


@dataclass
class CaptureResult:
    """Transcript captured at stop time."""
    transcript: str

    @property
    def word_count(self) -> int:
        return count_words(self.transcript)


@dataclass
class EvaluationResult:
    """Evaluator verdict for one answer."""
    score: int
    feedback: str
    degraded: bool = False


@dataclass
class TurnResult:
    """What the result screen shows at the end of a turn."""
    score: int = 0
    points: int = 0
    feedback: str = ""
    question: Optional[str] = None
    answer: str = ""
    degraded: bool = False
    committed: bool = False
    failed: bool = False
    new_total: Optional[int] = None
