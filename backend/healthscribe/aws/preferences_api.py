"""HTTP client for the user preferences API."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional
from urllib.parse import quote

import requests

from ..exceptions import (
    PreferencesApiError,
    PreferencesNotFoundError,
    VersionConflictError,
)
from ..models.preferences import UserPreferences

logger = logging.getLogger(__name__)


class PreferencesApiClient:
    """Thin accessor for ``{base_url}/preferences/{userId}``.

    Every failure surfaces as a :class:`PreferencesApiError` subclass; the
    caller decides how to fall back. Requests are not retried.
    """

    def __init__(
        self,
        base_url: str,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
        auth_token: Optional[str] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        if auth_token:
            self.session.headers["Authorization"] = auth_token

    def _url(self, user_id: str) -> str:
        return f"{self.base_url}/preferences/{quote(user_id, safe='')}"

    def _request(
        self, method: str, user_id: str, body: Optional[Dict[str, Any]] = None
    ) -> requests.Response:
        url = self._url(user_id)
        logger.debug(f"Preferences API {method} {url}")
        try:
            response = self.session.request(
                method, url, json=body, timeout=self.timeout
            )
        except requests.RequestException as e:
            raise PreferencesApiError(f"Preferences API {method} failed: {e}") from e

        if response.status_code == 404:
            raise PreferencesNotFoundError(
                f"No preferences stored for {user_id}", status_code=404
            )
        if response.status_code == 409:
            raise VersionConflictError(
                f"Preferences for {user_id} were modified concurrently",
                status_code=409,
            )
        if not response.ok:
            raise PreferencesApiError(
                f"Preferences API {method} returned {response.status_code}: "
                f"{response.reason}",
                status_code=response.status_code,
            )
        return response

    @staticmethod
    def _json(response: requests.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            raise PreferencesApiError(
                "Preferences API returned a malformed body",
                status_code=response.status_code,
            ) from e
        if not isinstance(data, dict):
            raise PreferencesApiError(
                "Preferences API returned a non-object body",
                status_code=response.status_code,
            )
        return data

    def get(self, user_id: str) -> Dict[str, Any]:
        """Fetch the stored record.

        Returns:
            Dict with ``preferences``, ``version`` and timestamps.

        Raises:
            PreferencesNotFoundError: Nothing stored for the user.
            PreferencesApiError: Transport failure, non-2xx or bad body.
        """
        data = self._json(self._request("GET", user_id))
        if not isinstance(data.get("preferences"), dict):
            raise PreferencesApiError(
                "Preferences API response has no preferences object"
            )
        return data

    def put(
        self,
        user_id: str,
        preferences: UserPreferences,
        expected_version: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Replace the stored preferences (upsert)."""
        body: Dict[str, Any] = {"preferences": preferences.to_wire()}
        if expected_version is not None:
            body["expectedVersion"] = expected_version
        return self._json(self._request("PUT", user_id, body))

    def patch(
        self,
        user_id: str,
        updates: Mapping[str, Any],
        expected_version: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Update only the given preference fields."""
        body: Dict[str, Any] = {"preferences": dict(updates)}
        if expected_version is not None:
            body["expectedVersion"] = expected_version
        return self._json(self._request("PATCH", user_id, body))

    def delete(self, user_id: str) -> None:
        """Remove the stored record; the user falls back to defaults."""
        self._request("DELETE", user_id)
