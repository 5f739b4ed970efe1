"""
session.py — Explicit current-user context.

Holds the profile of the user the garden belongs to. Registry, engine and
catalog receive the session in their constructors and read `user_id` from it
when writing rows.
"""

import logging
from typing import Optional

from models import UserProfile, ANONYMOUS_USER_ID, ANONYMOUS_USER_NAME

logger = logging.getLogger(__name__)


class GardenSession:

    def __init__(self, adapter, user_id=ANONYMOUS_USER_ID):
        self.adapter = adapter
        self._user_id = user_id
        self.profile: Optional[UserProfile] = None

    @property
    def user_id(self):
        return self.profile.id if self.profile else self._user_id

    @property
    def initialized(self):
        return self.profile is not None

    def initialize(self):
        """Load the profile once; later calls return the loaded profile."""
        if self.profile is None:
            self.refresh()
        return self.profile

    def refresh(self):
        """
        Reload the profile from the store.

        A missing profile or a store failure falls back to an anonymous
        profile carrying the configured user id.
        """
        try:
            profile = self.adapter.load_profile(self._user_id)
        except Exception as e:
            logger.warning("Could not load profile %s: %s", self._user_id, e)
            profile = None

        if profile is None:
            logger.info("No profile for %s, using anonymous profile", self._user_id)
            profile = UserProfile(id=self._user_id, name=ANONYMOUS_USER_NAME)

        self.profile = profile
        return profile
