import base64

import pytest

from talkquest.session.errors import MalformedResponse, ServiceUnavailable
from talkquest.session.schemas import (
    SessionState, can_transition, normalize_reading_level, difficulty_tier,
    QuestionResponse, EvaluationResponse, SynthesisResponse,
    parse_json_payload, validate_payload
)


def test_normalize_reading_level():
    assert normalize_reading_level(None) == 400
    assert normalize_reading_level(True) == 400
    assert normalize_reading_level("abc") == 400
    assert normalize_reading_level(95) == 100
    assert normalize_reading_level(1234) == 1000
    assert normalize_reading_level(420) == 400
    assert normalize_reading_level(430) == 450
    assert normalize_reading_level("600") == 600


def test_difficulty_tiers_are_monotone():
    ceilings = [difficulty_tier(level).max_words for level in range(100, 1001, 50)]
    assert ceilings == sorted(ceilings)


@pytest.mark.parametrize("level, name, max_words", [
    (100, "Beginning Reader", 8),
    (250, "Beginning Reader", 8),
    (300, "Early Reader", 12),
    (450, "Early Reader", 12),
    (500, "Growing Reader", 15),
    (650, "Growing Reader", 15),
    (700, "Developing Reader", 20),
    (1000, "Developing Reader", 20),
])
def test_difficulty_tier_boundaries(level, name, max_words):
    tier = difficulty_tier(level)
    assert tier.name == name
    assert tier.max_words == max_words


def test_transitions():
    assert can_transition(SessionState.AWAITING_QUESTION, SessionState.PRESENTING_QUESTION)
    assert can_transition(SessionState.AWAITING_QUESTION, SessionState.PRESENTING_RESULT)
    assert can_transition(SessionState.CAPTURING, SessionState.SUBMITTING)
    assert can_transition(SessionState.PRESENTING_RESULT, SessionState.AWAITING_QUESTION)
    assert not can_transition(SessionState.CAPTURING, SessionState.PRESENTING_RESULT)
    assert not can_transition(SessionState.PRESENTING_QUESTION, SessionState.SUBMITTING)


def test_question_response_is_stripped_and_tiered():
    question = validate_payload(QuestionResponse, {"question": "  What is red?  "}).to_question(300)
    assert question.text == "What is red?"
    assert question.tier.name == "Early Reader"
    assert not question.exceeds_ceiling


def test_blank_question_is_malformed():
    with pytest.raises(MalformedResponse):
        validate_payload(QuestionResponse, {"question": "   "})
    with pytest.raises(MalformedResponse):
        validate_payload(QuestionResponse, {})


def test_evaluation_response_accepts_integral_scores():
    assert validate_payload(EvaluationResponse, {"score": 8, "feedback": "Great!"}).to_result().score == 8
    assert validate_payload(EvaluationResponse, {"score": "6", "feedback": "ok"}).to_result().score == 6
    assert validate_payload(EvaluationResponse, {"score": 9.0, "feedback": "ok"}).to_result().score == 9


@pytest.mark.parametrize("score", [0, 11, 7.5, True, "lots"])
def test_evaluation_response_rejects_bad_scores(score):
    with pytest.raises(MalformedResponse) as exc_info:
        validate_payload(EvaluationResponse, {"score": score, "feedback": "x"})
    assert isinstance(exc_info.value, ServiceUnavailable)


def test_synthesis_response_decodes_base64():
    encoded = base64.b64encode(b"RIFFdata").decode()
    assert SynthesisResponse(audioContent=encoded).audio_bytes() == b"RIFFdata"


def test_synthesis_response_rejects_bad_base64():
    with pytest.raises(MalformedResponse):
        SynthesisResponse(audioContent="not base64!!").audio_bytes()
    with pytest.raises(MalformedResponse):
        SynthesisResponse(audioContent="").audio_bytes()


def test_parse_json_payload_handles_fences_and_noise():
    assert parse_json_payload('```json\n{"score": 7}\n```') == {"score": 7}
    assert parse_json_payload('Here you go: {"question": "Why?"} thanks') == {"question": "Why?"}


def test_parse_json_payload_rejects_non_objects():
    with pytest.raises(MalformedResponse):
        parse_json_payload("[1, 2, 3]")
    with pytest.raises(MalformedResponse):
        parse_json_payload("<html>Bad gateway</html>")
    with pytest.raises(MalformedResponse):
        parse_json_payload("")
