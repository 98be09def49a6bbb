"""
Front controller: profile selection and at most one live session.
"""
import logging
from typing import Callable, List, Optional

from .controller import SessionController
from .interfaces import ProfileStore
from .models import Profile
from .schemas import SessionAction, SessionState

logger = logging.getLogger("quiz_app")

ControllerFactory = Callable[[Profile], SessionController]


class QuizApp:
    """Owns the profile list and the controller of the selected profile."""

    def __init__(self, store: ProfileStore, controller_factory: ControllerFactory):
        self.store = store
        self.controller_factory = controller_factory
        self.controller: Optional[SessionController] = None

    @property
    def profiles(self) -> List[Profile]:
        return self.store.list_profiles()

    @property
    def state(self) -> Optional[SessionState]:
        return self.controller.state if self.controller else None

    async def select_profile(self, profile_id: str, start: bool = True) -> SessionController:
        """
        Start a session for a profile, discarding any live one first.

        Raises:
            ProfileNotFound: Unknown profile
        """
        profile = self.store.get(profile_id)
        self.switch_profile()

        self.controller = self.controller_factory(profile)
        logger.info(f"Selected profile {profile.id} ({profile.name}), level {profile.level}")
        if start:
            await self.controller.begin_turn()
        return self.controller

    def switch_profile(self) -> None:
        """Discard the live session, if any. Its pending turn is not recorded."""
        if self.controller is not None:
            logger.info(f"Leaving profile {self.controller.profile.id}")
            self.controller.discard()
            self.controller = None

    async def dispatch(self, action: SessionAction) -> Optional[SessionState]:
        if action == SessionAction.SWITCH_PROFILE:
            self.switch_profile()
            return None
        if self.controller is None:
            logger.warning(f"Ignoring {action.value}: no profile selected")
            return None
        return await self.controller.dispatch(action)
