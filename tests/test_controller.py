import asyncio

from talkquest.config import MSG_SERVICE_DOWN, MSG_NO_SPEECH, MSG_PERMISSION, MSG_NO_RECOGNIZER
from talkquest.infrastructure.audio.arbiter import AudioResourceArbiter
from talkquest.session.app import QuizApp
from talkquest.session.capture import SpeechCapture
from talkquest.session.controller import SessionController
from talkquest.session.errors import PermissionDenied
from talkquest.session.events import create_event_system, EventType
from talkquest.session.feedback import AudioFeedback
from talkquest.session.models import Profile, EvaluationResult
from talkquest.session.schemas import SessionState, SessionAction, CaptureMode
from talkquest.session.testing import (
    FakeAudioSink, FakeQuizService, FakeRecognizer, FakeRemoteSynthesizer,
    FakeSynthesizer, InMemoryProfileStore, unavailable
)

ZAHRA = Profile(id="1", name="Zahra", avatar="👧", score=10, reading_level=400)
ALYA = Profile(id="2", name="Alya", avatar="👶", score=0, reading_level=700)


class Rig:
    """A controller wired to fakes, with no artificial delays."""

    def __init__(self, quiz=None, store=None, recognizer=None, profile=ZAHRA, **kwargs):
        self.quiz = quiz or FakeQuizService()
        self.store = store or InMemoryProfileStore([ZAHRA, ALYA])
        self.recognizer = recognizer or FakeRecognizer(segments=[(0, "I like blue elephants")])
        self.arbiter = AudioResourceArbiter()
        self.sink = FakeAudioSink()
        self.native = FakeSynthesizer()
        self.feedback = AudioFeedback(
            FakeRemoteSynthesizer(error=unavailable()), self.sink, self.native, arbiter=self.arbiter
        )
        self.capture = SpeechCapture(self.recognizer, arbiter=self.arbiter,
                                     probe=lambda: CaptureMode.CONTINUOUS)
        self.bus, _, self.metrics = create_event_system()
        self.controller = self.make(profile, **kwargs)

    def make(self, profile, **kwargs):
        kwargs.setdefault("feedback_delay", 0)
        kwargs.setdefault("question_delay", 0)
        return SessionController(
            self.store.get(profile.id), self.quiz, self.store, self.capture, self.feedback,
            event_bus=self.bus, **kwargs
        )


async def answer(controller):
    await controller.begin_turn()
    await controller.dispatch(SessionAction.START_CAPTURE)
    return await controller.dispatch(SessionAction.STOP_CAPTURE)


def test_full_turn_adds_twice_the_score():
    rig = Rig()
    state = asyncio.run(answer(rig.controller))

    assert state == SessionState.PRESENTING_RESULT
    result = rig.controller.result
    assert result.score == 8
    assert result.points == 16
    assert result.committed
    assert result.new_total == 26
    assert rig.store.get("1").score == 26
    assert rig.store.writes == 1
    question = rig.quiz.question_requests
    assert question == [(400, 6)]
    assert rig.quiz.evaluate_requests == [("What is your favorite animal?", "I like blue elephants", 400)]


def test_feedback_is_spoken_after_the_cue():
    rig = Rig()

    async def scenario():
        await answer(rig.controller)
        await rig.controller.settle()

    asyncio.run(scenario())
    # Cue through the sink, then speech (remote is down, so device speech)
    assert len(rig.sink.played) == 1
    assert rig.native.spoken[-1] == ("Great!", 0.6, 1.1)


def test_question_is_spoken_when_presented():
    rig = Rig()

    async def scenario():
        await rig.controller.begin_turn()
        await rig.controller.settle()

    asyncio.run(scenario())
    assert rig.controller.state == SessionState.PRESENTING_QUESTION
    assert rig.native.spoken == [("What is your favorite animal?", 0.6, 1.1)]


def test_evaluator_failure_ends_turn_with_zero():
    rig = Rig(quiz=FakeQuizService(evaluations=[unavailable()]))
    state = asyncio.run(answer(rig.controller))

    assert state == SessionState.PRESENTING_RESULT
    assert rig.controller.result.score == 0
    assert rig.controller.result.failed
    assert rig.controller.prompt == MSG_SERVICE_DOWN
    assert rig.store.writes == 0
    assert rig.store.get("1").score == 10
    assert rig.metrics.get_metrics()["turns_failed"] == 1


def test_question_failure_ends_turn_then_recovers():
    rig = Rig(quiz=FakeQuizService(questions=[unavailable(), "What color is the sky?"]))

    async def scenario():
        first = await rig.controller.begin_turn()
        failed_prompt = rig.controller.prompt
        second = await rig.controller.dispatch(SessionAction.NEXT_QUESTION)
        return first, failed_prompt, second

    first, failed_prompt, second = asyncio.run(scenario())
    assert first == SessionState.PRESENTING_RESULT
    assert failed_prompt == MSG_SERVICE_DOWN
    assert second == SessionState.PRESENTING_QUESTION
    assert rig.controller.prompt == "What color is the sky?"
    assert rig.store.writes == 0


def test_empty_capture_stays_in_capturing():
    rig = Rig(recognizer=FakeRecognizer())

    async def scenario():
        state = await answer(rig.controller)
        assert state == SessionState.CAPTURING
        assert rig.controller.prompt == MSG_NO_SPEECH
        assert rig.quiz.evaluate_requests == []

        # The child tries again
        await rig.controller.dispatch(SessionAction.START_CAPTURE)
        rig.recognizer.emit(0, "a red ball")
        return await rig.controller.dispatch(SessionAction.STOP_CAPTURE)

    assert asyncio.run(scenario()) == SessionState.PRESENTING_RESULT
    assert rig.metrics.get_metrics()["capture_retries"] == 1


def test_permission_denied_is_retryable():
    recognizer = FakeRecognizer(start_error=PermissionDenied("blocked"), segments=[(0, "because it is fun")])
    rig = Rig(recognizer=recognizer)

    async def scenario():
        await rig.controller.begin_turn()
        state = await rig.controller.dispatch(SessionAction.START_CAPTURE)
        assert state == SessionState.CAPTURING
        assert rig.controller.prompt == MSG_PERMISSION
        assert not rig.capture.is_active

        recognizer.start_error = None
        await rig.controller.dispatch(SessionAction.START_CAPTURE)
        assert rig.capture.is_active
        return await rig.controller.dispatch(SessionAction.STOP_CAPTURE)

    assert asyncio.run(scenario()) == SessionState.PRESENTING_RESULT


def test_missing_recognizer_is_reported():
    rig = Rig(recognizer=FakeRecognizer(available=False))

    async def scenario():
        await rig.controller.begin_turn()
        return await rig.controller.dispatch(SessionAction.START_CAPTURE)

    assert asyncio.run(scenario()) == SessionState.CAPTURING
    assert rig.controller.prompt == MSG_NO_RECOGNIZER


def test_short_answer_is_capped():
    rig = Rig(quiz=FakeQuizService(evaluations=[EvaluationResult(score=10, feedback="Amazing!")]),
              recognizer=FakeRecognizer(segments=[(0, "blue")]))
    asyncio.run(answer(rig.controller))
    assert rig.controller.result.score == 7
    assert rig.controller.result.points == 14


def test_degraded_scoring_only_when_enabled():
    rig = Rig(quiz=FakeQuizService(evaluations=[unavailable()]),
              recognizer=FakeRecognizer(segments=[(0, "the cat sat on mats")]),
              allow_degraded_scoring=True)
    asyncio.run(answer(rig.controller))

    result = rig.controller.result
    assert result.degraded
    assert result.score == 5
    assert result.points == 10
    assert "(Offline Mode)" in result.feedback
    assert rig.store.get("1").score == 20


def test_store_failure_still_presents_result():
    store = InMemoryProfileStore([ZAHRA], fail_writes=True)
    rig = Rig(store=store)
    state = asyncio.run(answer(rig.controller))

    assert state == SessionState.PRESENTING_RESULT
    assert rig.controller.result.committed is False
    assert rig.controller.result.new_total == 26
    assert rig.metrics.get_metrics()["errors_occurred"] == 1


def test_illegal_actions_are_ignored():
    rig = Rig()

    async def scenario():
        assert await rig.controller.dispatch(SessionAction.STOP_CAPTURE) == SessionState.AWAITING_QUESTION
        assert await rig.controller.dispatch(SessionAction.NEXT_QUESTION) == SessionState.AWAITING_QUESTION
        await rig.controller.begin_turn()
        assert await rig.controller.dispatch(SessionAction.STOP_CAPTURE) == SessionState.PRESENTING_QUESTION

    asyncio.run(scenario())
    assert rig.quiz.evaluate_requests == []


def test_only_one_evaluation_in_flight():
    rig = Rig(quiz=FakeQuizService(evaluate_delay=0.02))

    async def scenario():
        await rig.controller.begin_turn()
        await rig.controller.dispatch(SessionAction.START_CAPTURE)
        await asyncio.gather(
            rig.controller.dispatch(SessionAction.STOP_CAPTURE),
            rig.controller.dispatch(SessionAction.STOP_CAPTURE),
        )

    asyncio.run(scenario())
    assert len(rig.quiz.evaluate_requests) == 1
    assert rig.quiz.max_in_flight == 1
    assert rig.store.writes == 1


def test_discard_during_evaluation_records_nothing():
    rig = Rig(quiz=FakeQuizService(evaluate_delay=0.05))

    async def scenario():
        await rig.controller.begin_turn()
        await rig.controller.dispatch(SessionAction.START_CAPTURE)
        pending = asyncio.ensure_future(rig.controller.dispatch(SessionAction.STOP_CAPTURE))
        await asyncio.sleep(0.01)
        await rig.controller.dispatch(SessionAction.SWITCH_PROFILE)
        await pending

    asyncio.run(scenario())
    assert rig.controller.discarded
    assert rig.controller.state == SessionState.SUBMITTING
    assert rig.controller.result is None
    assert rig.store.writes == 0
    assert rig.store.get("1").score == 10


def test_switching_profile_mid_capture_discards_turn():
    rig = Rig()
    app = QuizApp(rig.store, lambda profile: rig.make(profile))

    async def scenario():
        first = await app.select_profile("1")
        await app.dispatch(SessionAction.START_CAPTURE)
        assert first.state == SessionState.CAPTURING

        second = await app.select_profile("2", start=False)
        return first, second

    first, second = asyncio.run(scenario())
    assert first.discarded
    assert rig.recognizer.aborts == 1
    assert rig.store.writes == 0
    assert rig.store.get("1").score == 10
    assert second.profile.id == "2"
    assert second.state == SessionState.AWAITING_QUESTION
    assert rig.metrics.get_metrics()["turns_discarded"] == 1


def test_new_profile_uses_its_reading_level():
    rig = Rig()
    app = QuizApp(rig.store, lambda profile: rig.make(profile))

    async def scenario():
        await app.select_profile("2")
        app.switch_profile()
        return await app.dispatch(SessionAction.START_CAPTURE)

    assert asyncio.run(scenario()) is None
    assert rig.quiz.question_requests == [(700, 6)]


def test_events_trace_the_turn():
    rig = Rig()
    seen = []
    rig.bus.subscribe(EventType.STATE_CHANGED, lambda e: seen.append(e.data["new_state"]))

    asyncio.run(answer(rig.controller))
    assert seen == ["PresentingQuestion", "Capturing", "Submitting", "PresentingResult"]
    metrics = rig.metrics.get_metrics()
    assert metrics["turns_committed"] == 1
    assert metrics["points_awarded"] == 16
