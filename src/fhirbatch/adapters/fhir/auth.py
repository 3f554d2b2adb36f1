"""OAuth2 client-credentials token acquisition."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from logging import getLogger
from typing import TYPE_CHECKING

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from fhirbatch.adapters.http_resilience import ResilientClient
from fhirbatch.domain.errors import AuthenticationError, TransportError
from fhirbatch.domain.ports.batch import BearerToken

if TYPE_CHECKING:
    from collections.abc import Callable

    from fhirbatch.config.fhir import FhirConfig
    from fhirbatch.config.http_resilience import ResilienceConfig

log = getLogger(__name__)


class TokenResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    access_token: str
    token_type: str = "Bearer"
    expires_in: int | None = None


class ClientCredentialsProvider:
    """Exchanges a client id and secret for a bearer token."""

    def __init__(
        self,
        *,
        config: FhirConfig,
        client_factory: Callable[[ResilienceConfig], ResilientClient] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._config = config
        self._client_factory = client_factory or ResilientClient
        self._clock = clock or (lambda: datetime.now(UTC))

    def authenticate(self, client_id: str, client_secret: str) -> BearerToken:
        return asyncio.run(self._authenticate_async(client_id, client_secret))

    def token(self) -> BearerToken:
        """Authenticate with the credentials from configuration."""

        credentials = self._config.credentials
        return self.authenticate(credentials.client_id, credentials.client_secret)

    async def _authenticate_async(self, client_id: str, client_secret: str) -> BearerToken:
        log.info("Authenticating client %s", client_id)
        form = {
            "grant_type": "client_credentials",
            "client_id": client_id,
            "client_secret": client_secret,
        }
        async with self._client_factory(self._config.resilience) as client:
            try:
                response = await client.post(self._config.token_path, data=form)
            except httpx.HTTPError as exc:
                raise TransportError(f"Token request failed: {exc}") from exc

        if response.is_error:
            log.error("Token endpoint answered %s: %s", response.status_code, response.text)
            raise AuthenticationError(
                f"Authentication failed with status {response.status_code}",
                status_code=response.status_code,
            )

        try:
            payload = TokenResponse.model_validate_json(response.content)
        except ValidationError as exc:
            raise AuthenticationError("Token endpoint returned no usable access token") from exc

        expires_at = (
            self._clock() + timedelta(seconds=payload.expires_in)
            if payload.expires_in is not None
            else None
        )
        log.info("Authenticated; token expires at %s", expires_at or "unknown")
        return BearerToken(
            access_token=payload.access_token,
            token_type=payload.token_type,
            expires_at=expires_at,
        )
