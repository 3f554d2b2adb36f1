"""HTTP client that submits batch Bundles to a FHIR server."""

from __future__ import annotations

import asyncio
from logging import getLogger
from typing import TYPE_CHECKING

import httpx

from fhirbatch.adapters.http_resilience import ResilientClient
from fhirbatch.config.fhir import FHIR_JSON
from fhirbatch.domain.errors import AuthenticationError, TransportError

from .codec import FhirBundleCodec

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from fhirbatch.config.fhir import FhirConfig
    from fhirbatch.config.http_resilience import ResilienceConfig
    from fhirbatch.domain.operations import BatchRequest
    from fhirbatch.domain.ports.batch import BatchCodec, BearerToken
    from fhirbatch.domain.references import PermanentReference
    from fhirbatch.domain.results import BatchResult

log = getLogger(__name__)

_AUTH_STATUSES = frozenset({401, 403})


class FhirBatchClient:
    """Executes batch requests with one bearer token for its whole lifetime."""

    def __init__(
        self,
        *,
        config: FhirConfig,
        token: BearerToken,
        codec: BatchCodec | None = None,
        client_factory: Callable[[ResilienceConfig], ResilientClient] | None = None,
    ) -> None:
        self._config = config
        self._token = token
        self._codec = codec or FhirBundleCodec()
        self._client_factory = client_factory or ResilientClient

    def execute(self, request: BatchRequest) -> BatchResult:
        return asyncio.run(self._execute_async(request))

    def read(self, reference: PermanentReference) -> Mapping[str, object]:
        """Read one resource directly, outside of any batch."""

        return asyncio.run(self._read_async(reference))

    def _headers(self) -> dict[str, str]:
        if self._token.is_expired():
            raise AuthenticationError("Access token expired; authenticate again")
        return {"Authorization": self._token.authorization, "Accept": FHIR_JSON}

    async def _execute_async(self, request: BatchRequest) -> BatchResult:
        body = self._codec.encode(request)
        log.info("Submitting batch with %s entries", len(request))
        headers = {**self._headers(), "Content-Type": FHIR_JSON}
        response = await self._send("POST", self._config.fhir_path, content=body, headers=headers)
        result = self._codec.decode(response.content, request)
        for item in result:
            log.info(
                "Entry %s: %s %s",
                item.index,
                item.status,
                item.permanent_id or item.error_detail,
            )
        return result

    async def _read_async(self, reference: PermanentReference) -> Mapping[str, object]:
        path = f"{self._config.fhir_path}{reference.value}"
        response = await self._send("GET", path, headers=self._headers())
        try:
            payload = response.json()
        except ValueError as exc:
            raise TransportError(f"Unparseable body reading {reference}") from exc
        if not isinstance(payload, dict):
            raise TransportError(f"Unexpected payload reading {reference}")
        return payload  # pyright: ignore[reportUnknownVariableType]

    async def _send(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str],
        content: bytes | None = None,
    ) -> httpx.Response:
        async with self._client_factory(self._config.resilience) as client:
            try:
                response = await client.request(method, path, content=content, headers=headers)
            except httpx.HTTPError as exc:
                raise TransportError(f"{method} {path} failed: {exc}") from exc

        if response.status_code in _AUTH_STATUSES:
            raise AuthenticationError(
                f"Server rejected the access token ({response.status_code})",
                status_code=response.status_code,
            )
        if response.is_error:
            code = response.status_code
            raise TransportError(
                f"{method} {path} answered {code}",
                status_code=code,
                retryable=code == 429 or code >= 500,  # noqa: PLR2004
            )
        return response
