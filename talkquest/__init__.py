"""
TalkQuest: voice-driven reading quiz for young children.

A child hears a question pitched at their reading level, answers out loud,
and hears encouragement and a score back.
"""

__version__ = "1.0.0"

# Main entry points
from .session.controller import SessionController
from .session.app import QuizApp
from .session.models import Profile, TurnResult

__all__ = ["SessionController", "QuizApp", "Profile", "TurnResult"]
