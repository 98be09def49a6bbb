import asyncio

from talkquest.__main__ import build_app, announce_engine_end
from talkquest.config import Config
from talkquest.infrastructure.audio.arbiter import AudioResourceArbiter
from talkquest.session.capture import SpeechCapture
from talkquest.session.schemas import CaptureMode
from talkquest.session.testing import FakeRecognizer


def test_capture_and_feedback_share_one_arbiter(tmp_path):
    config = Config(profiles_file=str(tmp_path / "profiles.json"))
    app = build_app(config, use_tts=False)

    controller = app.controller_factory(app.profiles[0])
    assert controller.capture.arbiter is controller.feedback.arbiter


def test_engine_end_is_announced(capsys):
    recognizer = FakeRecognizer()
    capture = SpeechCapture(recognizer, AudioResourceArbiter(), probe=lambda: CaptureMode.SINGLE_BURST)

    async def scenario():
        await capture.start()
        announcer = asyncio.ensure_future(announce_engine_end(capture))
        await asyncio.sleep(0)
        recognizer.end()
        await asyncio.wait_for(announcer, timeout=1.0)

    asyncio.run(scenario())
    assert "I stopped listening" in capsys.readouterr().out
