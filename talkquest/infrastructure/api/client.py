"""
HTTP client for the remote quiz service.
"""
import asyncio
import logging
from typing import Optional, Dict, Any

import requests

from ...config import API_BASE_URL, REQUEST_TIMEOUT, DEFAULT_AGE
from ...session.errors import ServiceUnavailable
from ...session.interfaces import QuizService, RemoteSynthesizer
from ...session.models import Question, EvaluationResult
from ...session.schemas import (
    QuestionResponse, EvaluationResponse, SynthesisResponse,
    parse_json_payload, validate_payload, normalize_reading_level
)

logger = logging.getLogger("quiz_client")


class QuizServiceClient(QuizService, RemoteSynthesizer):
    """
    REST client for question generation, answer evaluation and speech
    synthesis. Blocking requests run in a worker thread so the event loop
    keeps servicing the microphone and speaker.
    """

    def __init__(self,
                 base_url: str = API_BASE_URL,
                 timeout: Optional[float] = REQUEST_TIMEOUT,
                 default_age: int = DEFAULT_AGE,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.default_age = default_age
        self.session = session or requests.Session()

    def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """POST a JSON body and return the decoded JSON object."""
        url = f"{self.base_url}{path}"
        headers = {"Content-Type": "application/json"}

        try:
            resp = self.session.post(url, headers=headers, json=body, timeout=self.timeout)
        except requests.Timeout as e:
            raise ServiceUnavailable(f"{path} timed out after {self.timeout}s: {e}")
        except requests.RequestException as e:
            raise ServiceUnavailable(f"{path} request failed: {e}")

        if resp.status_code >= 400:
            raise ServiceUnavailable(
                f"{path} error {resp.status_code}: {self._error_message(resp)}",
                status_code=resp.status_code,
            )

        return parse_json_payload(resp.text)

    @staticmethod
    def _error_message(resp: requests.Response) -> str:
        """Prefer the server's {"error": ...} message over the raw body."""
        try:
            data = resp.json()
        except ValueError:
            return resp.text[:200]
        if isinstance(data, dict) and isinstance(data.get("error"), str):
            return data["error"]
        return resp.text[:200]

    async def _call(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        logger.debug(f"POST {path} {body}")
        try:
            data = await asyncio.to_thread(self._post, path, body)
        except ServiceUnavailable as e:
            logger.error(f"{type(e).__name__}: {e}")
            raise
        logger.debug(f"{path} -> {list(data)}")
        return data

    async def generate_question(self, reading_level: int, age: Optional[int] = None) -> Question:
        level = normalize_reading_level(reading_level)
        data = await self._call("/api/generate-question", {
            "readingLevel": level,
            "age": age if age is not None else self.default_age,
        })
        question = validate_payload(QuestionResponse, data).to_question(level)

        if question.exceeds_ceiling:
            logger.warning(
                f"Question has {question.word_count} words, over the "
                f"{question.tier.name} ceiling of {question.tier.max_words}"
            )
        logger.info(f"Question ({question.tier.name}): {question.text}")
        return question

    async def evaluate_answer(self, question: str, answer: str, reading_level: int) -> EvaluationResult:
        data = await self._call("/api/evaluate", {
            "question": question,
            "answer": answer,
            "readingLevel": normalize_reading_level(reading_level),
        })
        result = validate_payload(EvaluationResponse, data).to_result()
        logger.info(f"Evaluation: score={result.score} feedback={result.feedback!r}")
        return result

    async def synthesize(self, text: str) -> bytes:
        data = await self._call("/api/tts", {"text": text})
        audio = validate_payload(SynthesisResponse, data).audio_bytes()
        logger.debug(f"Synthesized {len(audio)} bytes of audio")
        return audio

    def close(self) -> None:
        self.session.close()
