"""Ports consumed by the batch engine: credentials, codec and executor."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping

    from fhirbatch.domain.operations import BatchRequest
    from fhirbatch.domain.references import PermanentReference
    from fhirbatch.domain.results import BatchResult


@dataclass(frozen=True, slots=True)
class BearerToken:
    """Immutable access token snapshot scoped to a single workflow run."""

    access_token: str
    token_type: str = "Bearer"
    expires_at: datetime | None = None

    def __repr__(self) -> str:
        return f"BearerToken(token_type={self.token_type!r}, expires_at={self.expires_at!r})"

    @property
    def authorization(self) -> str:
        return f"Bearer {self.access_token}"

    def is_expired(self, *, now: datetime | None = None, leeway: timedelta | None = None) -> bool:
        if self.expires_at is None:
            return False
        current = now or datetime.now(UTC)
        return current + (leeway or timedelta(seconds=60)) >= self.expires_at


@runtime_checkable
class CredentialProvider(Protocol):
    def authenticate(self, client_id: str, client_secret: str) -> BearerToken: ...


@runtime_checkable
class BatchCodec(Protocol):
    """Wire-format adapter: request encoding, response decoding, reference extraction."""

    def encode(self, request: BatchRequest) -> bytes: ...

    def decode(self, body: bytes, request: BatchRequest) -> BatchResult: ...

    def references(
        self, resource: Mapping[str, object], field: str
    ) -> tuple[PermanentReference, ...]: ...


@runtime_checkable
class BatchExecutor(Protocol):
    """Submits one batch per call and returns a result aligned with the request."""

    def execute(self, request: BatchRequest) -> BatchResult: ...


__all__ = ["BatchCodec", "BatchExecutor", "BearerToken", "CredentialProvider"]
