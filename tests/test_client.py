import asyncio
import base64
import json
import logging
from unittest.mock import Mock

import pytest
import requests

from talkquest.infrastructure.api.client import QuizServiceClient
from talkquest.session.errors import ServiceUnavailable, MalformedResponse


def response(status_code, body):
    resp = Mock()
    resp.status_code = status_code
    if isinstance(body, str):
        resp.text = body
        resp.json.side_effect = ValueError("not json")
    else:
        resp.text = json.dumps(body)
        resp.json.return_value = body
    return resp


def client_with(resp=None, error=None):
    session = Mock(spec=requests.Session)
    if error is not None:
        session.post.side_effect = error
    else:
        session.post.return_value = resp
    return QuizServiceClient(base_url="http://quiz.test/", timeout=5.0, session=session), session


def test_generate_question_request_and_tier():
    client, session = client_with(response(200, {"question": "What do cats like to eat?"}))
    question = asyncio.run(client.generate_question(437))

    args, kwargs = session.post.call_args
    assert args[0] == "http://quiz.test/api/generate-question"
    assert kwargs["json"] == {"readingLevel": 450, "age": 6}
    assert kwargs["timeout"] == 5.0
    assert question.text == "What do cats like to eat?"
    assert question.reading_level == 450
    assert question.tier.name == "Early Reader"


def test_long_question_is_accepted_with_warning(caplog):
    long_question = "Can you tell me all of the different things that you like to do outside?"
    client, _ = client_with(response(200, {"question": long_question}))

    with caplog.at_level(logging.WARNING, logger="quiz_client"):
        question = asyncio.run(client.generate_question(200, age=5))
    assert question.exceeds_ceiling
    assert "ceiling" in caplog.text


def test_evaluate_answer():
    client, session = client_with(response(200, {"score": 8, "feedback": "Great!"}))
    result = asyncio.run(client.evaluate_answer("Why?", "Because", 400))

    assert session.post.call_args[1]["json"] == {"question": "Why?", "answer": "Because", "readingLevel": 400}
    assert result.score == 8
    assert result.feedback == "Great!"
    assert not result.degraded


def test_server_error_keeps_message():
    client, _ = client_with(response(500, {"error": "Failed to evaluate answer"}))
    with pytest.raises(ServiceUnavailable) as exc_info:
        asyncio.run(client.evaluate_answer("Why?", "Because", 400))
    assert exc_info.value.status_code == 500
    assert "Failed to evaluate answer" in str(exc_info.value)
    assert not isinstance(exc_info.value, MalformedResponse)


@pytest.mark.parametrize("error", [
    requests.ConnectionError("refused"),
    requests.Timeout("slow"),
])
def test_transport_errors_are_service_unavailable(error):
    client, _ = client_with(error=error)
    with pytest.raises(ServiceUnavailable):
        asyncio.run(client.generate_question(400))


def test_non_json_body_is_malformed():
    client, _ = client_with(response(200, "<html>oops</html>"))
    with pytest.raises(MalformedResponse):
        asyncio.run(client.generate_question(400))


def test_out_of_range_score_is_malformed():
    client, _ = client_with(response(200, {"score": 12, "feedback": "!"}))
    with pytest.raises(MalformedResponse):
        asyncio.run(client.evaluate_answer("Why?", "Because", 400))


def test_synthesize_decodes_audio():
    encoded = base64.b64encode(b"RIFF....WAVE").decode()
    client, session = client_with(response(200, {"audioContent": encoded}))

    assert asyncio.run(client.synthesize("Hello")) == b"RIFF....WAVE"
    assert session.post.call_args[0][0] == "http://quiz.test/api/tts"
    assert session.post.call_args[1]["json"] == {"text": "Hello"}


def test_synthesize_missing_audio_is_malformed():
    client, _ = client_with(response(200, {"error": "nothing"}))
    with pytest.raises(MalformedResponse):
        asyncio.run(client.synthesize("Hello"))
