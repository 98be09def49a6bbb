"""
Session controller: the per-profile turn state machine.
"""
import asyncio
import logging
import time
from typing import Optional, Set

from ..config import (
    DEFAULT_AGE, FEEDBACK_DELAY, QUESTION_SPEECH_DELAY,
    MSG_SERVICE_DOWN, MSG_NO_SPEECH, MSG_PERMISSION, MSG_NO_RECOGNIZER,
    MSG_DEFAULT_FEEDBACK
)
from .capture import SpeechCapture
from .errors import (
    CapabilityUnavailable, PermissionDenied, NoSpeechDetected,
    ServiceUnavailable, ProfileStoreError
)
from .events import (
    SessionEventBus, TurnStartedEvent, QuestionReadyEvent, StateChangedEvent,
    CaptureStartedEvent, CaptureRetryEvent, AnswerSubmittedEvent,
    TurnCommittedEvent, TurnFailedEvent, TurnDiscardedEvent, ErrorOccurredEvent
)
from .feedback import AudioFeedback
from .interfaces import QuizService, ProfileStore
from .models import Profile, Question, TurnResult, count_words
from .schemas import SessionState, SessionAction, can_transition
from .scoring import ScoringPolicy

logger = logging.getLogger("session_controller")

# States in which each action is accepted
ACTION_STATES = {
    SessionAction.START_CAPTURE: {SessionState.PRESENTING_QUESTION, SessionState.CAPTURING},
    SessionAction.STOP_CAPTURE: {SessionState.CAPTURING},
    SessionAction.NEXT_QUESTION: {SessionState.PRESENTING_RESULT},
    SessionAction.SWITCH_PROFILE: set(SessionState),
}


class SessionController:
    """
    Runs quiz turns for one profile.

    AwaitingQuestion -> PresentingQuestion -> Capturing -> Submitting ->
    PresentingResult, with question-generation failure going straight to
    PresentingResult. Actions never raise session errors: every failure
    ends up as a state plus a prompt for the child.

    A turn writes to the profile store only on a successful
    Submitting -> PresentingResult transition. After discard() nothing
    else is written or spoken.
    """

    def __init__(self,
                 profile: Profile,
                 quiz: QuizService,
                 store: ProfileStore,
                 capture: SpeechCapture,
                 feedback: AudioFeedback,
                 policy: Optional[ScoringPolicy] = None,
                 event_bus: Optional[SessionEventBus] = None,
                 age: int = DEFAULT_AGE,
                 allow_degraded_scoring: bool = False,
                 feedback_delay: float = FEEDBACK_DELAY,
                 question_delay: float = QUESTION_SPEECH_DELAY):
        self.profile = profile
        self.quiz = quiz
        self.store = store
        self.capture = capture
        self.feedback = feedback
        self.policy = policy or ScoringPolicy()
        self.event_bus = event_bus or SessionEventBus()
        self.age = age
        self.allow_degraded_scoring = allow_degraded_scoring
        self.feedback_delay = feedback_delay
        self.question_delay = question_delay

        self.state = SessionState.AWAITING_QUESTION
        self.prompt = ""
        self.question: Optional[Question] = None
        self.result: Optional[TurnResult] = None
        self.turn_idx = 0

        self._discarded = False
        self._busy = False
        self._evaluating = False
        self._background: Set[asyncio.Task] = set()

    @property
    def discarded(self) -> bool:
        return self._discarded

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def dispatch(self, action: SessionAction) -> SessionState:
        """
        Apply a user action. Actions that do not apply to the current state
        (or arrive while another action is still running) are ignored.
        """
        if action == SessionAction.SWITCH_PROFILE:
            self.discard()
            return self.state

        if self._discarded or self.state not in ACTION_STATES[action]:
            logger.warning(f"Ignoring {action.value} in state {self.state.value}")
            return self.state
        if self._busy:
            logger.warning(f"Ignoring {action.value}: previous action still running")
            return self.state

        if action == SessionAction.START_CAPTURE:
            return await self.start_capture()
        if action == SessionAction.STOP_CAPTURE:
            return await self.finish_capture()
        return await self.next_question()

    async def begin_turn(self) -> SessionState:
        """Request a question for the profile's reading level."""
        if self.state != SessionState.AWAITING_QUESTION or self._discarded:
            logger.warning(f"begin_turn ignored in state {self.state.value}")
            return self.state

        self.turn_idx += 1
        self.question = None
        self.result = None
        self.prompt = ""
        self._emit(TurnStartedEvent(self.profile.id, time.time(), self.turn_idx, self.profile.reading_level))

        self._busy = True
        try:
            question = await self.quiz.generate_question(self.profile.reading_level, self.age)
        except ServiceUnavailable as e:
            if not self._discarded:
                self._fail("generate-question", e)
            return self.state
        finally:
            self._busy = False

        if self._discarded:
            logger.info("Question arrived after discard, dropping it")
            return self.state

        self.question = question
        self.prompt = question.text
        self._emit(QuestionReadyEvent(self.profile.id, time.time(), question.text, question.tier.name))
        self._transition(SessionState.PRESENTING_QUESTION)
        self._spawn(self._speak_after(question.text, self.question_delay))
        return self.state

    async def start_capture(self) -> SessionState:
        """Open the microphone (explicit readiness from the child)."""
        if self.state not in ACTION_STATES[SessionAction.START_CAPTURE] or self._discarded:
            logger.warning(f"start_capture ignored in state {self.state.value}")
            return self.state
        if self.capture.is_active:
            logger.debug("Capture already running")
            return self.state

        # Question speech must not start after the microphone opens
        self._cancel_background()
        if self.state == SessionState.PRESENTING_QUESTION:
            self._transition(SessionState.CAPTURING)

        self._busy = True
        try:
            await self.capture.start()
        except PermissionDenied as e:
            self._capture_retry("permission_denied", MSG_PERMISSION, e)
            return self.state
        except CapabilityUnavailable as e:
            self._capture_retry("capability_unavailable", MSG_NO_RECOGNIZER, e)
            return self.state
        finally:
            self._busy = False

        if self._discarded:
            self.capture.abort()
            return self.state

        self.prompt = ""
        self._emit(CaptureStartedEvent(self.profile.id, time.time(), self.capture.mode.value))
        return self.state

    async def finish_capture(self) -> SessionState:
        """Stop listening; a non-empty transcript is submitted for evaluation."""
        if self.state != SessionState.CAPTURING or self._discarded:
            logger.warning(f"finish_capture ignored in state {self.state.value}")
            return self.state

        self._busy = True
        try:
            try:
                captured = await self.capture.stop()
            except NoSpeechDetected as e:
                self._capture_retry("no_speech", MSG_NO_SPEECH, e)
                return self.state
            except PermissionDenied as e:
                self._capture_retry("permission_denied", MSG_PERMISSION, e)
                return self.state
            except CapabilityUnavailable as e:
                self._capture_retry("capability_unavailable", MSG_NO_RECOGNIZER, e)
                return self.state

            if self._discarded:
                return self.state
            if not self.policy.is_evaluable(captured.transcript):
                self._capture_retry("no_speech", MSG_NO_SPEECH, NoSpeechDetected("blank transcript"))
                return self.state

            self._transition(SessionState.SUBMITTING)
            await self._submit(captured.transcript)
        finally:
            self._busy = False
        return self.state

    async def next_question(self) -> SessionState:
        """Leave the result screen and start a new turn for the same profile."""
        if self.state != SessionState.PRESENTING_RESULT or self._discarded:
            logger.warning(f"next_question ignored in state {self.state.value}")
            return self.state

        self._cancel_background()
        self.feedback.cancel()
        self._transition(SessionState.AWAITING_QUESTION)
        return await self.begin_turn()

    def discard(self) -> None:
        """Abandon the session. Nothing from the current turn is recorded."""
        if self._discarded:
            return
        self._discarded = True
        self._cancel_background()
        self.capture.abort()
        self.feedback.cancel()
        logger.info(f"Session for {self.profile.id} discarded in state {self.state.value}")
        self._emit(TurnDiscardedEvent(self.profile.id, time.time(), self.state.value))

    async def settle(self) -> None:
        """Wait until background speech for the current state has finished."""
        while True:
            pending = [t for t in self._background if not t.done()]
            if not pending:
                break
            await asyncio.wait(pending)
        await self.feedback.wait_idle()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _submit(self, answer: str) -> None:
        if self._evaluating:
            # Guarded by the state machine; kept as a hard stop
            raise RuntimeError("Evaluation already in flight")

        self._evaluating = True
        self._emit(AnswerSubmittedEvent(self.profile.id, time.time(), answer, count_words(answer)))
        try:
            evaluation = await self.quiz.evaluate_answer(
                self.question.text, answer, self.profile.reading_level
            )
        except ServiceUnavailable as e:
            if self._discarded:
                return
            if not self.allow_degraded_scoring:
                self._fail("evaluate", e, answer=answer)
                return
            logger.warning(f"Evaluator unavailable ({e}), scoring offline")
            evaluation = self.policy.fallback(answer)
        finally:
            self._evaluating = False

        if self._discarded:
            logger.info("Evaluation arrived after discard, not recording it")
            return

        evaluation = self.policy.apply(evaluation, answer)
        points = self.policy.points_for(evaluation.score)
        updated = self.profile.with_points(points)

        persisted = True
        try:
            self.store.put(updated)
        except (ProfileStoreError, ValueError) as e:
            persisted = False
            logger.error(f"Could not save profile {updated.id}: {e}")
            self._emit(ErrorOccurredEvent(
                self.profile.id, time.time(), type(e).__name__, str(e), "profile_store"
            ))
        self.profile = updated

        feedback = evaluation.feedback or MSG_DEFAULT_FEEDBACK
        self.result = TurnResult(
            score=evaluation.score,
            points=points,
            feedback=feedback,
            question=self.question.text,
            answer=answer,
            degraded=evaluation.degraded,
            committed=persisted,
            new_total=updated.score,
        )
        self.prompt = feedback
        self._transition(SessionState.PRESENTING_RESULT)
        self._emit(TurnCommittedEvent(
            self.profile.id, time.time(), evaluation.score, points,
            updated.score, persisted, evaluation.degraded
        ))
        logger.info(f"Turn {self.turn_idx}: score {evaluation.score} -> +{points} (total {updated.score})")

        self._spawn(self._present_feedback(
            feedback, cue=True, extended=self.policy.celebrates(evaluation.score)
        ))

    def _fail(self, stage: str, error: Exception, answer: str = "") -> None:
        """End the turn with score 0 and the friendly message."""
        logger.error(f"{stage} failed: {type(error).__name__}: {error}")
        self.result = TurnResult(
            score=0,
            points=0,
            feedback=MSG_SERVICE_DOWN,
            question=self.question.text if self.question else None,
            answer=answer,
            failed=True,
            new_total=self.profile.score,
        )
        self.prompt = MSG_SERVICE_DOWN
        self._transition(SessionState.PRESENTING_RESULT)
        self._emit(TurnFailedEvent(self.profile.id, time.time(), stage, str(error)))
        self._spawn(self._present_feedback(MSG_SERVICE_DOWN, cue=False))

    def _capture_retry(self, reason: str, prompt: str, error: Exception) -> None:
        logger.info(f"Capture problem ({reason}): {error}")
        self.prompt = prompt
        self._emit(CaptureRetryEvent(self.profile.id, time.time(), reason, prompt))

    def _transition(self, target: SessionState) -> None:
        if not can_transition(self.state, target):
            raise RuntimeError(f"Illegal transition {self.state.value} -> {target.value}")
        old = self.state
        self.state = target
        logger.info(f"State: {old.value} -> {target.value}")
        self._emit(StateChangedEvent(self.profile.id, time.time(), old.value, target.value))

    def _emit(self, event) -> None:
        self.event_bus.emit(event)

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _cancel_background(self) -> None:
        for task in list(self._background):
            task.cancel()
        self._background.clear()

    async def _speak_after(self, text: str, delay: float) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        self.feedback.speak(text)

    async def _present_feedback(self, text: str, cue: bool, extended: bool = False) -> None:
        if cue:
            tone = self.feedback.play_cue(extended)
            await asyncio.sleep(self.feedback_delay)
            if not await tone.wait():
                logger.debug("Cue was preempted, skipping feedback speech")
                return
        elif self.feedback_delay > 0:
            await asyncio.sleep(self.feedback_delay)
        self.feedback.speak(text)
