"""Error taxonomy for batch construction, execution and resolution."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .references import LocalId
    from .results import CorrelationKey


class BatchError(RuntimeError):
    """Base class for every failure surfaced to the workflow orchestrator."""

    retryable: bool = False


class AuthenticationError(BatchError):
    """Raised when the credential provider or the server rejects the client."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransportError(BatchError):
    """Raised when no response body could be obtained or parsed for a batch."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        retryable: bool = True,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class ResponseShapeMismatch(BatchError):
    """Raised when a response cannot be correlated entry-by-entry with its request."""


class MalformedPayload(BatchError):
    """Raised when an entity payload cannot be serialized to the wire format."""

    def __init__(self, message: str, *, index: int | None = None) -> None:
        super().__init__(message)
        self.index = index


@dataclass(frozen=True, slots=True)
class EntryFailure:
    index: int
    key: CorrelationKey
    detail: str
    http_status: int | None = None


class OperationFailed(BatchError):
    """Raised when one or more batch entries report failure."""

    def __init__(self, failures: tuple[EntryFailure, ...]) -> None:
        if not failures:
            raise ValueError("OperationFailed requires at least one failure")
        first = failures[0]
        suffix = f" (+{len(failures) - 1} more)" if len(failures) > 1 else ""
        super().__init__(f"Entry {first.index} failed: {first.detail}{suffix}")
        self.failures = failures

    @property
    def index(self) -> int:
        return self.failures[0].index

    @property
    def detail(self) -> str:
        return self.failures[0].detail


class DuplicateResolution(BatchError):
    """Raised when a local id would be resolved (or allocated) a second time."""

    def __init__(self, local_id: LocalId, message: str | None = None) -> None:
        super().__init__(message or f"Local id {local_id} is already resolved")
        self.local_id = local_id


class UnresolvedReference(BatchError):
    """Raised when an entry depends on a local id that is not available to it."""

    def __init__(self, local_id: LocalId, *, index: int, message: str) -> None:
        super().__init__(message)
        self.local_id = local_id
        self.index = index
