"""
JSON-file profile store.
"""
import json
import logging
import os
import tempfile
from typing import Dict, List, Optional, Any

from ...config import PROFILES_FILE, STORAGE_KEY, DEFAULT_READING_LEVEL
from ...session.errors import ProfileNotFound, ProfileStoreError
from ...session.interfaces import ProfileStore
from ...session.models import Profile

logger = logging.getLogger("profile_store")

SEED_PROFILES = (
    {"id": "1", "name": "Zahra", "avatar": "👧", "score": 0, "reading_level": DEFAULT_READING_LEVEL},
    {"id": "2", "name": "Alya", "avatar": "👶", "score": 0, "reading_level": DEFAULT_READING_LEVEL},
)


class JsonProfileStore(ProfileStore):
    """
    Keeps every profile in one JSON document: {STORAGE_KEY: [profile, ...]}.

    The whole list is rewritten on every change, through a temp file and
    os.replace so a crash never leaves a half-written document.
    """

    def __init__(self, path: str = PROFILES_FILE, storage_key: str = STORAGE_KEY):
        self.path = path
        self.storage_key = storage_key
        self._profiles: List[Profile] = self._load()

    def _load(self) -> List[Profile]:
        if not os.path.exists(self.path):
            logger.info(f"No profiles at {self.path}, seeding defaults")
            profiles = [Profile.from_dict(p) for p in SEED_PROFILES]
            self._write(profiles)
            return profiles

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ProfileStoreError(f"Could not read {self.path}: {e}")

        records = data.get(self.storage_key) if isinstance(data, dict) else None
        if not records:
            logger.info(f"Profile list empty in {self.path}, seeding defaults")
            return [Profile.from_dict(p) for p in SEED_PROFILES]

        profiles = []
        for record in records:
            try:
                profiles.append(Profile.from_dict(record))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping unreadable profile record {record!r}: {e}")
        logger.info(f"Loaded {len(profiles)} profiles from {self.path}")
        return profiles

    def _write(self, profiles: List[Profile]) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        payload: Dict[str, Any] = {self.storage_key: [p.to_dict() for p in profiles]}

        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".profiles-", suffix=".json", dir=directory)
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    json.dump(payload, f, indent=2, ensure_ascii=False)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise ProfileStoreError(f"Could not write {self.path}: {e}")

    def _index(self, profile_id: str) -> Optional[int]:
        for i, profile in enumerate(self._profiles):
            if profile.id == profile_id:
                return i
        return None

    def list_profiles(self) -> List[Profile]:
        return [Profile.from_dict(p.to_dict()) for p in self._profiles]

    def get(self, profile_id: str) -> Profile:
        i = self._index(profile_id)
        if i is None:
            raise ProfileNotFound(profile_id)
        return Profile.from_dict(self._profiles[i].to_dict())

    def put(self, profile: Profile) -> None:
        """
        Insert or replace a profile and persist the whole list.

        Raises:
            ValueError: If the update would lower the stored score
            ProfileStoreError: If the file cannot be written
        """
        profiles = list(self._profiles)
        i = self._index(profile.id)
        if i is None:
            profiles.append(profile)
        else:
            if profile.score < profiles[i].score:
                raise ValueError(
                    f"Refusing to lower score of {profile.id} from {profiles[i].score} to {profile.score}"
                )
            profiles[i] = profile

        self._write(profiles)
        self._profiles = profiles
        logger.info(f"Saved profile {profile.id} ({profile.name}) score={profile.score}")

    def save_all(self, profiles: List[Profile]) -> None:
        """Replace the full list."""
        self._write(list(profiles))
        self._profiles = list(profiles)
        logger.info(f"Saved {len(profiles)} profiles")
