"""HTTP client for the quiz backend."""

from .client import QuizServiceClient

__all__ = ["QuizServiceClient"]
