"""
Single-owner arbitration of the microphone and the speaker.

Only one audio activity (a capture or a feedback playback) may be live at a
time. There is one event loop, so "cancel the current owner, then take
ownership" is all the locking needed.
"""
import logging
from abc import ABC, abstractmethod
from typing import Optional

logger = logging.getLogger("audio_arbiter")


class AudioHolder(ABC):
    """Something that can own the audio resource and be preempted."""

    resource_name: str = "audio"

    @abstractmethod
    def preempt(self) -> None:
        """Stop immediately because another activity needs the resource."""


class AudioResourceArbiter:
    """Tracks the current owner of the audio resource."""

    def __init__(self):
        self._owner: Optional[AudioHolder] = None

    @property
    def owner(self) -> Optional[AudioHolder]:
        return self._owner

    def acquire(self, holder: AudioHolder) -> None:
        """Take the resource, preempting whoever holds it."""
        current = self._owner
        if current is not None and current is not holder:
            logger.info(f"{holder.resource_name} preempts {current.resource_name}")
            # Clear first so a release() from inside preempt() is a no-op
            self._owner = None
            current.preempt()
        self._owner = holder

    def release(self, holder: AudioHolder) -> None:
        """Give the resource back if holder still owns it."""
        if self._owner is holder:
            self._owner = None

    def is_owner(self, holder: AudioHolder) -> bool:
        return self._owner is holder
