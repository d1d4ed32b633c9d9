"""Identity resolution for preferences storage."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..config.settings import HealthScribeSettings
from .local_store import LocalPreferencesStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserIdentity:
    user_id: str
    authenticated: bool


def resolve_identity(
    settings: HealthScribeSettings, store: LocalPreferencesStore
) -> UserIdentity:
    """Use the signed-in provider's id when known, else the local anonymous id.

    Anonymous ids are generated on the device and are not verified by the
    settings API, so anyone who learns one can read or overwrite that record.
    """
    if settings.authenticated_user_id and settings.authenticated_user_id.strip():
        return UserIdentity(settings.authenticated_user_id.strip(), True)

    user_id = store.get_or_create_user_id()
    logger.warning(
        f"No authenticated user id configured; using unverified anonymous id {user_id}"
    )
    return UserIdentity(user_id, False)
