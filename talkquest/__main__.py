#!/usr/bin/env python3
"""
Main entry point for the TalkQuest quiz.
Allows running the package with: python -m talkquest
"""
import asyncio
import sys
from typing import Optional

from .config import get_config, Config
from .infrastructure import (
    QuizServiceClient, JsonProfileStore, AudioResourceArbiter, SubprocessAudioSink,
    GoogleCloudSynthesizer, NativeSpeechSynthesizer, GoogleStreamingRecognizer
)
from .session import (
    QuizApp, SessionController, SessionState, SessionAction, SpeechCapture,
    AudioFeedback, ScoringPolicy, Profile, create_event_system, ProfileStoreError,
    ProfileNotFound
)
from .utils import setup_logging


def build_app(config: Config, use_tts: bool) -> QuizApp:
    """Wire the concrete collaborators into a QuizApp."""
    client = QuizServiceClient(
        base_url=config.api_base_url,
        timeout=config.request_timeout,
        default_age=config.default_age,
    )
    store = JsonProfileStore(config.profiles_file)
    arbiter = AudioResourceArbiter()
    event_bus, _, _ = create_event_system()
    policy = ScoringPolicy()

    if config.tts_backend == "google":
        remote = GoogleCloudSynthesizer(
            voice=config.tts_voice,
            language_code=config.language_code,
            timeout=config.request_timeout,
        )
    else:
        remote = client

    feedback = AudioFeedback(
        remote=remote,
        sink=SubprocessAudioSink(),
        native=NativeSpeechSynthesizer(),
        arbiter=arbiter,
        enabled=use_tts,
    )
    capture = SpeechCapture(
        GoogleStreamingRecognizer(language_code=config.language_code),
        arbiter=arbiter,
    )

    def make_controller(profile: Profile) -> SessionController:
        return SessionController(
            profile, client, store, capture, feedback,
            policy=policy, event_bus=event_bus, age=config.default_age,
        )

    return QuizApp(store, make_controller)


async def ask(prompt: str) -> str:
    """input() without blocking the event loop."""
    loop = asyncio.get_running_loop()
    try:
        return (await loop.run_in_executor(None, input, prompt)).strip().lower()
    except EOFError:
        return "q"


async def announce_engine_end(capture: SpeechCapture) -> None:
    """Tell the child when a single-burst recognizer has stopped listening."""
    await capture.wait_engine_end()
    print("\n✋ I stopped listening. Press Enter to send your answer.")


def show_profiles(app: QuizApp) -> None:
    print("\n👥 Who is playing?")
    for i, profile in enumerate(app.profiles, start=1):
        print(f"  {i}. {profile.avatar} {profile.name}  ⭐ {profile.score} points (level {profile.level})")


async def choose_profile(app: QuizApp) -> Optional[str]:
    profiles = app.profiles
    while True:
        show_profiles(app)
        choice = await ask("Pick a number (q to quit): ")
        if choice == "q":
            return None
        try:
            return profiles[int(choice) - 1].id
        except (ValueError, IndexError):
            print("❓ Please type one of the numbers above.")


async def play(app: QuizApp, profile_id: str) -> str:
    """Run turns for one profile. Returns 's' to switch profile or 'q' to quit."""
    controller = await app.select_profile(profile_id)

    while True:
        state = controller.state
        if state == SessionState.PRESENTING_QUESTION:
            print(f"\n❓ {controller.prompt}")
            answer = await ask("Press Enter to answer (s = switch, q = quit): ")
            if answer in ("s", "q"):
                app.switch_profile()
                return answer
            await controller.dispatch(SessionAction.START_CAPTURE)

        elif state == SessionState.CAPTURING:
            if controller.prompt:
                print(f"⚠️  {controller.prompt}")
            if not controller.capture.is_active:
                answer = await ask("Press Enter to try again (s = switch, q = quit): ")
                if answer in ("s", "q"):
                    app.switch_profile()
                    return answer
                await controller.dispatch(SessionAction.START_CAPTURE)
                if not controller.capture.is_active:
                    continue
            print("🎤 Listening...")
            watcher = asyncio.ensure_future(announce_engine_end(controller.capture))
            try:
                await ask("Press Enter when you are done talking: ")
            finally:
                watcher.cancel()
            print("🤔 Thinking...")
            await controller.dispatch(SessionAction.STOP_CAPTURE)

        elif state == SessionState.PRESENTING_RESULT:
            result = controller.result
            if result is None or result.failed:
                print(f"\n😴 {controller.prompt}")
            else:
                stars = "⭐" * result.score
                print(f"\n{stars} {result.score}/10  (+{result.points} points)")
                print(f"💬 {result.feedback}")
                print(f"🏆 Total: {result.new_total} points, level {controller.profile.level}")
            answer = await ask("n = next question, s = switch profile, q = quit: ")
            if answer in ("s", "q"):
                app.switch_profile()
                return answer
            await controller.dispatch(SessionAction.NEXT_QUESTION)

        else:
            # AwaitingQuestion only persists while a request is in flight
            await asyncio.sleep(0.05)


async def run(app: QuizApp) -> None:
    while True:
        profile_id = await choose_profile(app)
        if profile_id is None:
            break
        try:
            outcome = await play(app, profile_id)
        except ProfileNotFound:
            print("❓ That profile no longer exists.")
            continue
        if outcome == "q":
            break
    app.switch_profile()
    print("\n👋 Bye! Come back soon!")


def main():
    """Command-line interface for the quiz."""

    # Load configuration from environment
    try:
        config = get_config()
    except ValueError as e:
        print(f"❌ Configuration Error: {e}")
        sys.exit(1)

    # TTS configuration with explicit flags taking precedence
    explicit_tts = "--tts" in sys.argv
    explicit_text = "--text" in sys.argv or "--no-tts" in sys.argv

    if explicit_text:
        use_tts = False
    elif explicit_tts:
        use_tts = True
    else:
        use_tts = config.enable_tts

    for arg in sys.argv[1:]:
        if arg.startswith("--api="):
            config.api_base_url = arg.split("=", 1)[1]
        elif arg.startswith("--profiles="):
            config.profiles_file = arg.split("=", 1)[1]
        elif arg.startswith("--age="):
            try:
                config.default_age = int(arg.split("=", 1)[1])
            except ValueError:
                print("❌ Invalid age. Use --age=6")
                sys.exit(1)
        elif arg.startswith("--tts-backend="):
            backend = arg.split("=", 1)[1].lower()
            if backend not in ("backend", "google"):
                print("❌ Invalid TTS backend. Use --tts-backend=backend or --tts-backend=google")
                sys.exit(1)
            config.tts_backend = backend

    log_file = setup_logging(config.log_file, config.log_level)

    if use_tts:
        print("🔊 Speech Mode: questions and feedback are spoken aloud (default)")
        print("   (Use --text or --no-tts to disable speech)")
    else:
        print("📝 Text Mode: questions and feedback are shown as text only")
    print(f"🌐 Quiz service: {config.api_base_url}")
    print(f"📝 Detailed logs: {log_file}")

    try:
        app = build_app(config, use_tts)
    except ProfileStoreError as e:
        print(f"❌ Profiles could not be loaded: {e}")
        sys.exit(1)

    try:
        asyncio.run(run(app))
    except KeyboardInterrupt:
        print("\n👋 Bye!")


if __name__ == "__main__":
    main()
