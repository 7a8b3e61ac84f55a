"""Identity verification for inbound requests."""

from __future__ import annotations

import hmac
from typing import TYPE_CHECKING, Protocol

from loguru import logger

from turnstile.errors import AuthenticationError, ConfigurationError
from turnstile.schema import Activity

if TYPE_CHECKING:
    from turnstile.config import Settings

BEARER_PREFIX = "Bearer "


class Authenticator(Protocol):
    """Verifies the sender of an inbound activity. Raises ``AuthenticationError`` on failure."""

    async def verify(self, request: Activity, auth_header: str) -> None: ...


class AllowAllAuthenticator:
    """Accepts every request. Used when no app credentials are configured (local and emulator runs)."""

    async def verify(self, request: Activity, auth_header: str) -> None:
        _ = request, auth_header


class SharedSecretAuthenticator:
    """Accepts requests carrying ``Authorization: Bearer <secret>`` for a configured app."""

    def __init__(self, app_id: str, secret: str) -> None:
        if not secret:
            raise ConfigurationError("shared secret authentication needs a non-empty secret")
        self.app_id = app_id
        self._secret = secret

    async def verify(self, request: Activity, auth_header: str) -> None:
        if not auth_header:
            raise AuthenticationError("missing authorization header")
        if not auth_header.startswith(BEARER_PREFIX):
            raise AuthenticationError("authorization header is not a bearer token")
        token = auth_header[len(BEARER_PREFIX) :].strip()
        if not hmac.compare_digest(token.encode("utf-8"), self._secret.encode("utf-8")):
            logger.warning("auth.rejected app_id={} channel={}", self.app_id, request.channel_id)
            raise AuthenticationError("invalid bearer token", status=403)


def authenticator_from_settings(settings: Settings) -> Authenticator:
    """Pick shared-secret auth when an app id is configured, otherwise allow all."""

    if not settings.app_id:
        return AllowAllAuthenticator()
    if not settings.app_password:
        raise ConfigurationError("TURNSTILE_APP_PASSWORD is required when TURNSTILE_APP_ID is set")
    return SharedSecretAuthenticator(settings.app_id, settings.app_password.get_secret_value())
