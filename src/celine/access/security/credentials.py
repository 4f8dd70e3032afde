from __future__ import annotations

import logging
import threading
from typing import Optional, Protocol

from celine.access.core.config import Settings, settings as default_settings
from celine.access.security.models import AuthorizationContext

logger = logging.getLogger(__name__)


class CredentialProvider(Protocol):
    """Source of the authorization context for the active query session."""

    def lookup_current_authorization(self) -> Optional[AuthorizationContext]: ...


class SessionCredentials:
    """Per-session credential holder, set and cleared explicitly."""

    def __init__(self, context: Optional[AuthorizationContext] = None):
        self._lock = threading.Lock()
        self._context = context

    def set(self, context: AuthorizationContext) -> None:
        with self._lock:
            self._context = context
        logger.debug(
            "Session authorization set for %s (credential %s)",
            context.endpoint,
            context.credential_id[:8],
        )

    def clear(self) -> None:
        with self._lock:
            self._context = None

    def lookup_current_authorization(self) -> Optional[AuthorizationContext]:
        with self._lock:
            return self._context


class SettingsCredentials:
    """Authorization from API_URL / API_KEY settings, if both are configured."""

    def __init__(self, settings: Settings | None = None):
        self._settings = settings or default_settings

    def lookup_current_authorization(self) -> Optional[AuthorizationContext]:
        api_url = self._settings.api_url
        api_key = self._settings.api_key
        if not api_url or api_key is None or not api_key.get_secret_value():
            return None
        return AuthorizationContext(endpoint=api_url, api_key=api_key)
