"""Composition root.

Builds every HealthScribe component exactly once from a validated
:class:`~healthscribe.config.settings.HealthScribeSettings` and hands them out
by reference.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import boto3

from .aws.healthscribe_client import HealthScribeClient
from .aws.patients_table import PatientRepository
from .aws.preferences_api import PreferencesApiClient
from .config.settings import HealthScribeSettings
from .core.identity import UserIdentity, resolve_identity
from .core.local_store import LocalPreferencesStore
from .core.storage import LocalBackend, create_storage_backend
from .services.encounter_service import EncounterService
from .services.patient_service import PatientService
from .services.preferences_service import UserPreferencesService
from .services.side_effects import SideEffectLog

logger = logging.getLogger(__name__)


@dataclass
class HealthScribeApp:
    settings: HealthScribeSettings
    identity: UserIdentity
    preferences: UserPreferencesService
    patients: PatientService
    encounters: EncounterService
    side_effects: SideEffectLog

    @property
    def provider_id(self) -> Optional[str]:
        """Signed-in provider id; None when running with an anonymous identity."""
        return self.identity.user_id if self.identity.authenticated else None

    @classmethod
    def from_settings(
        cls,
        settings: HealthScribeSettings,
        session: Optional[boto3.Session] = None,
    ) -> "HealthScribeApp":
        """Wire all components.

        Args:
            settings: Validated settings (see ``load_settings``).
            session: boto3 session; built from the settings when omitted.
        """
        session = session or settings.get_boto3_session()

        local_store = LocalPreferencesStore(LocalBackend(settings.local_storage_dir))
        identity = resolve_identity(settings, local_store)
        api_client = (
            PreferencesApiClient(settings.api_url, timeout=settings.http_timeout)
            if settings.api_url
            else None
        )
        preferences = UserPreferencesService(local_store, identity, api_client)

        table = session.resource("dynamodb").Table(settings.patients_table_name)
        repository = PatientRepository(table)
        side_effects = SideEffectLog()
        encounters = EncounterService(
            storage=create_storage_backend(
                **settings.get_storage_config(), session=session
            ),
            healthscribe=HealthScribeClient(session.client("transcribe")),
            patients=repository,
            side_effects=side_effects,
            settings=settings,
        )

        logger.debug(
            f"HealthScribe app initialised for {identity.user_id} "
            f"(authenticated={identity.authenticated})"
        )
        return cls(
            settings=settings,
            identity=identity,
            preferences=preferences,
            patients=PatientService(repository),
            encounters=encounters,
            side_effects=side_effects,
        )
