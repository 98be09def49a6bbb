import pytest

from talkquest.session.models import EvaluationResult
from talkquest.session.scoring import ScoringPolicy


def test_points_scale_linearly():
    policy = ScoringPolicy()
    assert policy.points_for(8) == 16
    assert policy.points_for(1) == 2
    assert policy.max_points == 20


def test_points_for_out_of_range_score_are_clamped():
    policy = ScoringPolicy()
    assert policy.points_for(15) == 20
    assert policy.points_for(0) == 2


@pytest.mark.parametrize("words", [0, 1, 2])
def test_fallback_never_rewards_tiny_answers(words):
    policy = ScoringPolicy()
    result = policy.fallback(" ".join(["cat"] * words))
    assert result.score <= 4
    assert result.degraded


def test_fallback_uses_word_count_within_bounds():
    policy = ScoringPolicy()
    assert policy.fallback("the cat sat on mats").score == 5
    assert policy.fallback(" ".join(["word"] * 15)).score == 10


def test_fallback_feedback_mentions_offline_mode():
    result = ScoringPolicy().fallback("I like big red trucks")
    assert "5 words" in result.feedback
    assert "(Offline Mode)" in result.feedback


def test_short_answer_is_kept_out_of_high_band():
    policy = ScoringPolicy()
    result = policy.apply(EvaluationResult(score=10, feedback="Wow!"), "blue")
    assert result.score == 7
    assert result.feedback == "Wow!"

    result = policy.apply(EvaluationResult(score=9, feedback="Nice"), "blue whale")
    assert result.score == 7


def test_longer_answer_keeps_evaluator_score():
    policy = ScoringPolicy()
    result = policy.apply(EvaluationResult(score=9, feedback="Nice"), "I like blue elephants")
    assert result.score == 9


def test_apply_clamps_scores_outside_contract():
    policy = ScoringPolicy()
    assert policy.apply(EvaluationResult(score=12, feedback=""), "one two three four").score == 10
    assert policy.apply(EvaluationResult(score=-3, feedback=""), "one two three four").score == 1


def test_cap_must_stay_below_high_band():
    with pytest.raises(ValueError):
        ScoringPolicy(short_answer_cap=8)


def test_evaluable_and_celebration_checks():
    policy = ScoringPolicy()
    assert not policy.is_evaluable("   ")
    assert not policy.is_evaluable("")
    assert policy.is_evaluable("yes")
    assert policy.celebrates(7)
    assert not policy.celebrates(6)
