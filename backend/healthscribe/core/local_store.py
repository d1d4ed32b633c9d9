"""On-device preferences mirror and anonymous identity.

The mirror is a last-known-good copy of the provider's preferences used when
the remote settings API is unreachable. Writes are best effort: a failed write
is logged and never interrupts the caller.
"""

from __future__ import annotations

import logging
import secrets
import time
from typing import Optional

from ..models.preferences import UserPreferences, merge_with_defaults
from .storage import LocalBackend, StorageBackend

logger = logging.getLogger(__name__)

PREFERENCES_FILE = "user-preferences.json"
ANONYMOUS_ID_FILE = "anonymous-user-id"

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def new_anonymous_id(now_ms: Optional[int] = None) -> str:
    """Generate an identifier of the form ``anonymous-{epoch_ms}-{9 base36}``."""
    stamp = int(time.time() * 1000) if now_ms is None else now_ms
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"anonymous-{stamp}-{suffix}"


class LocalPreferencesStore:
    """Preferences mirror kept in a :class:`StorageBackend` (local by default)."""

    def __init__(self, backend: Optional[StorageBackend] = None):
        self.backend = backend or LocalBackend()

    def get_or_create_user_id(self) -> str:
        """Return the persisted anonymous id, generating it on first use."""
        if self.backend.exists(ANONYMOUS_ID_FILE):
            user_id = self.backend.load_text(ANONYMOUS_ID_FILE).strip()
            if user_id:
                return user_id
        user_id = new_anonymous_id()
        self.backend.save_text(ANONYMOUS_ID_FILE, user_id)
        logger.info(f"Generated anonymous user id: {user_id}")
        return user_id

    def load(self) -> Optional[UserPreferences]:
        """Read the mirror, merged over defaults with legacy values migrated.

        Returns:
            The mirrored preferences, or None when nothing readable is stored.
        """
        if not self.backend.exists(PREFERENCES_FILE):
            return None
        try:
            data = self.backend.load_json(PREFERENCES_FILE)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read local preferences: {e}")
            return None
        if not isinstance(data, dict):
            logger.error("Local preferences mirror is not an object; ignoring it")
            return None
        return merge_with_defaults(data)

    def save(self, preferences: UserPreferences) -> bool:
        """Write the mirror. Failures are logged and reported as False."""
        try:
            self.backend.save_json(PREFERENCES_FILE, preferences.to_wire())
        except (OSError, TypeError) as e:
            logger.error(f"Failed to save preferences to local storage: {e}")
            return False
        return True

    def clear(self) -> None:
        """Forget the mirrored preferences; the anonymous id is kept."""
        try:
            self.backend.delete(PREFERENCES_FILE)
        except OSError as e:
            logger.warning(f"Failed to clear local preferences: {e}")
