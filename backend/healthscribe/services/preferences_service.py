#!/usr/bin/env python3
"""
User preferences reconciliation.

Loads and saves a provider's preferences against the remote settings API,
keeping a local mirror as the last-known-good copy. Remote failures never
propagate: reads fall back to the mirror (or the defaults) and writes report
False after mirroring locally.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..aws.preferences_api import PreferencesApiClient
from ..core.identity import UserIdentity
from ..core.local_store import LocalPreferencesStore
from ..exceptions import PreferencesApiError, PreferencesNotFoundError
from ..models.preferences import (
    DEFAULT_PREFERENCES,
    UserPreferences,
    merge_with_defaults,
)

logger = logging.getLogger(__name__)


class UserPreferencesService:
    """
    Preferences access for one identity.

    Args:
        local_store: On-device mirror.
        identity: Identity the remote record is keyed by.
        api_client: Remote settings accessor; None runs local-only.
    """

    def __init__(
        self,
        local_store: LocalPreferencesStore,
        identity: UserIdentity,
        api_client: Optional[PreferencesApiClient] = None,
    ):
        self.local_store = local_store
        self.identity = identity
        self.api_client = api_client
        self.last_error: Optional[Exception] = None

    def _local_or_defaults(self) -> UserPreferences:
        return self.local_store.load() or DEFAULT_PREFERENCES

    def load(self) -> UserPreferences:
        """
        Resolve the current preferences.

        Returns:
            The remote record merged over the defaults; the defaults when the
            user has no stored record; otherwise the local mirror or defaults.
        """
        self.last_error = None
        if self.api_client is None:
            logger.info("Preferences API not configured, using local storage")
            return self._local_or_defaults()

        try:
            data = self.api_client.get(self.identity.user_id)
        except PreferencesNotFoundError:
            logger.info(f"No stored preferences for {self.identity.user_id}")
            return DEFAULT_PREFERENCES
        except PreferencesApiError as e:
            self.last_error = e
            logger.error(f"Failed to load preferences from API: {e}")
            return self._local_or_defaults()

        preferences = merge_with_defaults(data["preferences"])
        self.local_store.save(preferences)
        return preferences

    def save(self, preferences: UserPreferences) -> bool:
        """
        Persist preferences remotely and mirror them locally.

        Returns:
            True when the remote write succeeded or no API is configured.
        """
        self.last_error = None
        if self.api_client is None:
            self.local_store.save(preferences)
            return True

        try:
            self.api_client.put(self.identity.user_id, preferences)
        except PreferencesApiError as e:
            self.last_error = e
            logger.error(f"Failed to save preferences to API: {e}")
            self.local_store.save(preferences)
            return False

        self.local_store.save(preferences)
        return True

    def set_note_template(
        self, preferences: UserPreferences, template: str, enabled: bool
    ) -> bool:
        """Enable or disable one note template and save the result.

        Raises:
            PreferencesValidationError: Disabling the last enabled template.
                Nothing is persisted in that case.
        """
        return self.save(preferences.with_template(template, enabled))

    def reset(self) -> bool:
        """Save the default preferences."""
        return self.save(DEFAULT_PREFERENCES)
