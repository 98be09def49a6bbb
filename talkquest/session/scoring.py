"""
Scoring policy: converts evaluator verdicts into presented points.
"""
import logging

from ..config import (
    POINTS_MULTIPLIER, SCORE_MIN, SCORE_MAX, FALLBACK_SCORE_MIN,
    FALLBACK_SCORE_MAX, HIGH_SCORE_BAND, SHORT_ANSWER_WORDS,
    SHORT_ANSWER_SCORE_CAP, CELEBRATION_SCORE, MSG_DEGRADED
)
from .models import EvaluationResult, count_words

logger = logging.getLogger("scoring_policy")


class ScoringPolicy:
    """
    Last line of defense between the remote evaluator and the profile score.

    The evaluator's score is clamped to its contract range, very short
    answers are kept out of the high band, and a word-count heuristic is
    available for when the evaluator cannot be reached.
    """

    def __init__(self,
                 multiplier: int = POINTS_MULTIPLIER,
                 short_answer_words: int = SHORT_ANSWER_WORDS,
                 short_answer_cap: int = SHORT_ANSWER_SCORE_CAP):
        if short_answer_cap >= HIGH_SCORE_BAND:
            raise ValueError("short_answer_cap must be below the high score band")
        self.multiplier = multiplier
        self.short_answer_words = short_answer_words
        self.short_answer_cap = short_answer_cap

    def points_for(self, score: int) -> int:
        """Presented points for a score (score x multiplier)."""
        return self.clamp_score(score) * self.multiplier

    @property
    def max_points(self) -> int:
        return SCORE_MAX * self.multiplier

    @staticmethod
    def clamp_score(score: int) -> int:
        return max(SCORE_MIN, min(SCORE_MAX, int(score)))

    def is_evaluable(self, transcript: str) -> bool:
        """Only non-blank transcripts may be sent to the evaluator."""
        return bool(transcript and transcript.strip())

    def is_short_answer(self, transcript: str) -> bool:
        return count_words(transcript) <= self.short_answer_words

    def celebrates(self, score: int) -> bool:
        """Whether a score earns the extended celebration cue."""
        return score >= CELEBRATION_SCORE

    def apply(self, evaluation: EvaluationResult, transcript: str) -> EvaluationResult:
        """
        Enforce the policy bounds on an evaluator verdict.

        Returns:
            EvaluationResult with a score that is safe to present
        """
        score = self.clamp_score(evaluation.score)
        if score != evaluation.score:
            logger.warning(f"Evaluator score {evaluation.score} out of range, clamped to {score}")

        if self.is_short_answer(transcript) and score > self.short_answer_cap:
            logger.warning(
                f"Short answer ({count_words(transcript)} words) scored {score}, "
                f"capping at {self.short_answer_cap}"
            )
            score = self.short_answer_cap

        return EvaluationResult(score=score, feedback=evaluation.feedback, degraded=evaluation.degraded)

    def fallback(self, transcript: str) -> EvaluationResult:
        """
        Word-count heuristic used when the evaluator is unreachable.
        The result is marked degraded and its feedback says so.
        """
        words = count_words(transcript)
        score = max(FALLBACK_SCORE_MIN, min(FALLBACK_SCORE_MAX, words))
        if words <= self.short_answer_words:
            score = min(score, self.short_answer_cap)
        logger.info(f"Degraded scoring: {words} words -> score {score}")
        return EvaluationResult(
            score=score,
            feedback=MSG_DEGRADED.format(words=words),
            degraded=True,
        )
