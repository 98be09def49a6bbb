"""
Audio playback through a command-line player.
"""
import asyncio
import logging
import os
import shutil
import tempfile
from typing import Optional, Sequence, Tuple

import numpy as np

from ...config import PLAYER_COMMANDS
from ...session.errors import AudioPlaybackError
from ...session.interfaces import AudioSink
from .processing import write_wav

logger = logging.getLogger("audio_playback")


class SubprocessAudioSink(AudioSink):
    """Writes a temporary WAV file and plays it with aplay/afplay/paplay."""

    def __init__(self, commands: Sequence[Tuple[str, ...]] = PLAYER_COMMANDS):
        self.commands = commands
        self._proc: Optional[asyncio.subprocess.Process] = None
        self._stopped = False

    def _player(self) -> Tuple[str, ...]:
        for command in self.commands:
            if shutil.which(command[0]):
                return command
        raise AudioPlaybackError(
            f"No audio player found (tried {', '.join(c[0] for c in self.commands)})"
        )

    async def play(self, pcm16: np.ndarray, sample_rate: int) -> None:
        player = self._player()
        self._stopped = False

        with tempfile.NamedTemporaryFile(suffix='.wav', delete=False) as tmp_file:
            wav_path = tmp_file.name
        write_wav(wav_path, pcm16, sample_rate)

        try:
            self._proc = await asyncio.create_subprocess_exec(
                *player, wav_path,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
            returncode = await self._proc.wait()
            if returncode != 0 and not self._stopped:
                raise AudioPlaybackError(f"{player[0]} exited with status {returncode}")
        finally:
            # Also runs on cancellation: never leave a player behind
            self.stop()
            self._proc = None
            try:
                os.unlink(wav_path)
            except OSError:
                pass

    def stop(self) -> None:
        proc = self._proc
        if proc is not None and proc.returncode is None:
            self._stopped = True
            try:
                proc.terminate()
                logger.debug("Stopped audio player")
            except ProcessLookupError:
                pass
