"""
Speech-to-text functionality using Google Cloud Speech streaming recognition.
"""
import asyncio
import contextlib
import importlib.util
import logging
import os
import queue
import threading
from typing import Optional

from ....config import LANGUAGE_CODE, SAMPLE_RATE_CAPTURE, CHUNK_MS
from ....session.errors import CapabilityUnavailable, PermissionDenied, ServiceUnavailable
from ....session.interfaces import Recognizer, SegmentCallback, ErrorCallback, EndCallback

logger = logging.getLogger("speech_stt")

# PortAudio probing must not spawn a JACK server; gRPC stays quiet below ERROR
os.environ.setdefault("JACK_NO_START_SERVER", "1")
os.environ.setdefault("GRPC_VERBOSITY", "ERROR")


@contextlib.contextmanager
def native_stderr_silenced():
    """
    Point file descriptor 2 at /dev/null while PortAudio loads and probes
    devices. ALSA and JACK write their chatter there from C, past sys.stderr.
    """
    try:
        saved_fd = os.dup(2)
    except OSError:
        yield
        return

    devnull = os.open(os.devnull, os.O_WRONLY)
    try:
        os.dup2(devnull, 2)
        yield
    finally:
        os.dup2(saved_fd, 2)
        os.close(saved_fd)
        os.close(devnull)


class GoogleStreamingRecognizer(Recognizer):
    """
    Streams microphone audio (pyaudio) to Google Cloud Speech.

    The blocking gRPC stream runs in a worker thread; results are handed
    back to the event loop with call_soon_threadsafe.
    """

    def __init__(self,
                 language_code: str = LANGUAGE_CODE,
                 sample_rate: int = SAMPLE_RATE_CAPTURE,
                 chunk_ms: int = CHUNK_MS,
                 input_device: Optional[int] = None):
        self.language_code = language_code
        self.sample_rate = sample_rate
        self.chunk_size = int(sample_rate * chunk_ms / 1000)
        self.input_device = input_device

        self._pa = None
        self._stream = None
        self._audio_q: "queue.Queue[Optional[bytes]]" = queue.Queue()
        self._stop = threading.Event()
        self._aborted = threading.Event()
        self._worker: Optional[asyncio.Future] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def is_available(self) -> bool:
        return (importlib.util.find_spec("pyaudio") is not None
                and importlib.util.find_spec("google.cloud.speech") is not None)

    def _open_microphone(self) -> None:
        with native_stderr_silenced():
            import pyaudio
            self._pa = pyaudio.PyAudio()
            self._open_input_stream(pyaudio)

    def _open_input_stream(self, pyaudio) -> None:
        try:
            if self.input_device is None:
                self._pa.get_default_input_device_info()
        except (IOError, OSError) as e:
            self._close_microphone()
            raise CapabilityUnavailable(f"No input device: {e}")

        def _callback(in_data, frame_count, time_info, status):
            self._audio_q.put(in_data)
            return None, pyaudio.paContinue

        try:
            self._stream = self._pa.open(
                format=pyaudio.paInt16,
                channels=1,
                rate=self.sample_rate,
                input=True,
                input_device_index=self.input_device,
                frames_per_buffer=self.chunk_size,
                stream_callback=_callback,
            )
        except (IOError, OSError) as e:
            self._close_microphone()
            raise PermissionDenied(f"Could not open microphone: {e}")

    def _close_microphone(self) -> None:
        if self._stream is not None:
            try:
                self._stream.stop_stream()
                self._stream.close()
            except (IOError, OSError) as e:
                logger.warning(f"Error closing microphone stream: {e}")
            self._stream = None
        if self._pa is not None:
            self._pa.terminate()
            self._pa = None

    def _audio_chunks(self):
        """Yield captured chunks until stopped; drains the queue on stop."""
        while not self._aborted.is_set():
            try:
                chunk = self._audio_q.get(timeout=0.05)
            except queue.Empty:
                if self._stop.is_set():
                    return
                continue
            if chunk is None:
                return
            yield chunk

    def _run_stream(self, on_segment: SegmentCallback, on_error: ErrorCallback,
                    on_end: EndCallback, continuous: bool) -> None:
        from google.cloud import speech

        loop = self._loop

        def deliver(callback, *args):
            if not self._aborted.is_set():
                loop.call_soon_threadsafe(callback, *args)

        config = speech.RecognitionConfig(
            encoding=speech.RecognitionConfig.AudioEncoding.LINEAR16,
            sample_rate_hertz=self.sample_rate,
            language_code=self.language_code,
            enable_automatic_punctuation=True,
        )
        streaming_config = speech.StreamingRecognitionConfig(
            config=config,
            interim_results=True,
            single_utterance=not continuous,
        )

        finals = 0
        try:
            client = speech.SpeechClient()
            requests = (speech.StreamingRecognizeRequest(audio_content=chunk)
                        for chunk in self._audio_chunks())
            responses = client.streaming_recognize(config=streaming_config, requests=requests)
            for response in responses:
                for result in response.results:
                    if not result.alternatives:
                        continue
                    deliver(on_segment, finals, result.alternatives[0].transcript)
                    if result.is_final:
                        finals += 1
        except Exception as e:
            if not self._aborted.is_set():
                logger.error(f"Streaming recognition failed: {e}")
                deliver(on_error, ServiceUnavailable(f"Speech recognition failed: {e}"))
        finally:
            deliver(on_end)

    async def start(self, on_segment: SegmentCallback, on_error: ErrorCallback,
                    on_end: EndCallback, continuous: bool = True) -> None:
        if not self.is_available():
            raise CapabilityUnavailable("pyaudio and google-cloud-speech are required")

        self._loop = asyncio.get_running_loop()
        self._stop.clear()
        self._aborted.clear()
        self._audio_q = queue.Queue()

        await asyncio.to_thread(self._open_microphone)
        logger.info(f"Microphone open ({'continuous' if continuous else 'single utterance'})")

        self._worker = self._loop.run_in_executor(
            None, self._run_stream, on_segment, on_error, on_end, continuous
        )

    async def stop(self) -> None:
        self._stop.set()
        self._close_microphone()
        worker = self._worker
        self._worker = None
        if worker is not None:
            # Let the stream flush its final results
            await asyncio.wait({worker})

    def abort(self) -> None:
        self._aborted.set()
        self._stop.set()
        self._audio_q.put(None)
        self._close_microphone()
        self._worker = None
