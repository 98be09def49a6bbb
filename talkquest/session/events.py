"""
Event-driven reporting for quiz sessions.
"""
import logging
from abc import ABC
from typing import Dict, Any, List, Callable, Optional
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger("events")


class EventType(str, Enum):
    """Types of session events."""
    TURN_STARTED = "turn_started"
    QUESTION_READY = "question_ready"
    STATE_CHANGED = "state_changed"
    CAPTURE_STARTED = "capture_started"
    CAPTURE_RETRY = "capture_retry"
    ANSWER_SUBMITTED = "answer_submitted"
    TURN_COMMITTED = "turn_committed"
    TURN_FAILED = "turn_failed"
    TURN_DISCARDED = "turn_discarded"
    ERROR_OCCURRED = "error_occurred"


@dataclass
class SessionEvent(ABC):
    """Base class for all session events."""
    event_type: EventType
    profile_id: str
    timestamp: float
    data: Dict[str, Any]


@dataclass
class TurnStartedEvent(SessionEvent):
    """Event fired when a turn asks for a question."""
    def __init__(self, profile_id: str, timestamp: float, turn_idx: int, reading_level: int):
        super().__init__(
            event_type=EventType.TURN_STARTED,
            profile_id=profile_id,
            timestamp=timestamp,
            data={"turn_idx": turn_idx, "reading_level": reading_level}
        )


@dataclass
class QuestionReadyEvent(SessionEvent):
    """Event fired when the generator answered with a question."""
    def __init__(self, profile_id: str, timestamp: float, question: str, tier: str):
        super().__init__(
            event_type=EventType.QUESTION_READY,
            profile_id=profile_id,
            timestamp=timestamp,
            data={"question": question, "tier": tier}
        )


@dataclass
class StateChangedEvent(SessionEvent):
    """Event fired on every state-machine transition."""
    def __init__(self, profile_id: str, timestamp: float, old_state: str, new_state: str):
        super().__init__(
            event_type=EventType.STATE_CHANGED,
            profile_id=profile_id,
            timestamp=timestamp,
            data={"old_state": old_state, "new_state": new_state}
        )


@dataclass
class CaptureStartedEvent(SessionEvent):
    """Event fired when the microphone opens."""
    def __init__(self, profile_id: str, timestamp: float, mode: str):
        super().__init__(
            event_type=EventType.CAPTURE_STARTED,
            profile_id=profile_id,
            timestamp=timestamp,
            data={"mode": mode}
        )


@dataclass
class CaptureRetryEvent(SessionEvent):
    """Event fired when a capture problem leaves the session in Capturing."""
    def __init__(self, profile_id: str, timestamp: float, reason: str, prompt: str):
        super().__init__(
            event_type=EventType.CAPTURE_RETRY,
            profile_id=profile_id,
            timestamp=timestamp,
            data={"reason": reason, "prompt": prompt}
        )


@dataclass
class AnswerSubmittedEvent(SessionEvent):
    """Event fired when a transcript goes to the evaluator."""
    def __init__(self, profile_id: str, timestamp: float, answer: str, word_count: int):
        super().__init__(
            event_type=EventType.ANSWER_SUBMITTED,
            profile_id=profile_id,
            timestamp=timestamp,
            data={"answer": answer, "word_count": word_count}
        )


@dataclass
class TurnCommittedEvent(SessionEvent):
    """Event fired when a scored turn reaches the result screen."""
    def __init__(self, profile_id: str, timestamp: float, score: int, points: int,
                 new_total: int, persisted: bool, degraded: bool = False):
        super().__init__(
            event_type=EventType.TURN_COMMITTED,
            profile_id=profile_id,
            timestamp=timestamp,
            data={
                "score": score,
                "points": points,
                "new_total": new_total,
                "persisted": persisted,
                "degraded": degraded
            }
        )


@dataclass
class TurnFailedEvent(SessionEvent):
    """Event fired when a remote failure ends the turn with score 0."""
    def __init__(self, profile_id: str, timestamp: float, stage: str, reason: str):
        super().__init__(
            event_type=EventType.TURN_FAILED,
            profile_id=profile_id,
            timestamp=timestamp,
            data={"stage": stage, "reason": reason}
        )


@dataclass
class TurnDiscardedEvent(SessionEvent):
    """Event fired when a turn is abandoned (profile switch)."""
    def __init__(self, profile_id: str, timestamp: float, state: str):
        super().__init__(
            event_type=EventType.TURN_DISCARDED,
            profile_id=profile_id,
            timestamp=timestamp,
            data={"state": state}
        )


@dataclass
class ErrorOccurredEvent(SessionEvent):
    """Event fired when an error occurs."""
    def __init__(self, profile_id: str, timestamp: float, error_type: str,
                 error_message: str, component: str):
        super().__init__(
            event_type=EventType.ERROR_OCCURRED,
            profile_id=profile_id,
            timestamp=timestamp,
            data={
                "error_type": error_type,
                "error_message": error_message,
                "component": component
            }
        )


EventHandler = Callable[[SessionEvent], None]


class SessionEventBus:
    """Event bus for session communication."""

    def __init__(self):
        self._handlers: Dict[EventType, List[EventHandler]] = {}
        self._global_handlers: List[EventHandler] = []

    def subscribe(self, event_type: EventType, handler: EventHandler) -> None:
        """
        Subscribe to specific event type.

        Args:
            event_type: Type of event to listen for
            handler: Function to call when event occurs
        """
        self._handlers.setdefault(event_type, []).append(handler)
        logger.debug(f"Subscribed handler to {event_type}")

    def subscribe_all(self, handler: EventHandler) -> None:
        """Subscribe to all events."""
        self._global_handlers.append(handler)
        logger.debug("Subscribed global handler")

    def unsubscribe(self, event_type: EventType, handler: EventHandler) -> None:
        if event_type in self._handlers:
            try:
                self._handlers[event_type].remove(handler)
                logger.debug(f"Unsubscribed handler from {event_type}")
            except ValueError:
                logger.warning(f"Handler not found for {event_type}")

    def emit(self, event: SessionEvent) -> None:
        """
        Emit an event to all subscribers. A failing handler is logged and
        does not stop the others.
        """
        logger.debug(f"Emitting event: {event.event_type} for profile {event.profile_id}")

        for handler in self._handlers.get(event.event_type, []):
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Error in event handler for {event.event_type}: {e}")

        for handler in self._global_handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Error in global event handler: {e}")

    def clear_handlers(self) -> None:
        self._handlers.clear()
        self._global_handlers.clear()
        logger.debug("Cleared all event handlers")


class EventLogger:
    """Logs all events for debugging and analysis."""

    def __init__(self, log_level: int = logging.INFO):
        self.logger = logging.getLogger("event_logger")
        self.logger.setLevel(log_level)

    def handle_event(self, event: SessionEvent) -> None:
        self.logger.info(f"Event: {event.event_type.value} | Profile: {event.profile_id} | Data: {event.data}")


class SessionMetrics:
    """Collects metrics from session events."""

    def __init__(self):
        self.reset()

    def handle_event(self, event: SessionEvent) -> None:
        """Update metrics based on event."""
        if event.event_type == EventType.TURN_STARTED:
            self.turns_started += 1
        elif event.event_type == EventType.TURN_COMMITTED:
            self.turns_committed += 1
            self.points_awarded += event.data.get("points", 0)
            if event.data.get("degraded"):
                self.degraded_turns += 1
        elif event.event_type == EventType.TURN_FAILED:
            self.turns_failed += 1
        elif event.event_type == EventType.TURN_DISCARDED:
            self.turns_discarded += 1
        elif event.event_type == EventType.CAPTURE_RETRY:
            self.capture_retries += 1
        elif event.event_type == EventType.ERROR_OCCURRED:
            self.errors_occurred += 1

    def get_metrics(self) -> Dict[str, int]:
        """Get current metrics snapshot."""
        return {
            "turns_started": self.turns_started,
            "turns_committed": self.turns_committed,
            "turns_failed": self.turns_failed,
            "turns_discarded": self.turns_discarded,
            "capture_retries": self.capture_retries,
            "degraded_turns": self.degraded_turns,
            "points_awarded": self.points_awarded,
            "errors_occurred": self.errors_occurred
        }

    def reset(self) -> None:
        """Reset all metrics to zero."""
        self.turns_started = 0
        self.turns_committed = 0
        self.turns_failed = 0
        self.turns_discarded = 0
        self.capture_retries = 0
        self.degraded_turns = 0
        self.points_awarded = 0
        self.errors_occurred = 0


def create_event_system(bus: Optional[SessionEventBus] = None):
    """Bus with the standard logger and metrics subscribed."""
    bus = bus or SessionEventBus()
    event_logger = EventLogger()
    metrics = SessionMetrics()
    bus.subscribe_all(event_logger.handle_event)
    bus.subscribe_all(metrics.handle_event)
    return bus, event_logger, metrics
