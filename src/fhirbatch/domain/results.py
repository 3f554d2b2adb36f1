"""Per-entry outcomes of an executed batch."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from .errors import EntryFailure, ResponseShapeMismatch
from .references import LocalId

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping, Sequence

    from .operations import BatchRequest
    from .references import PermanentReference

type CorrelationKey = LocalId | int


class OperationStatus(StrEnum):
    CREATED = "created"
    MATCHED_EXISTING = "matched_existing"
    RETRIEVED = "retrieved"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class EntryOutcome:
    """Codec-level outcome for one response entry, before correlation."""

    status: OperationStatus
    permanent_id: PermanentReference | None = None
    error_detail: str | None = None
    http_status: int | None = None
    resource: Mapping[str, object] | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class OperationResult:
    key: CorrelationKey
    index: int
    status: OperationStatus
    permanent_id: PermanentReference | None = None
    error_detail: str | None = None
    http_status: int | None = None
    resource: Mapping[str, object] | None = None

    def __post_init__(self) -> None:
        if self.status is OperationStatus.FAILED:
            if not self.error_detail:
                raise ValueError("Failed results require an error detail")
        else:
            if self.permanent_id is None:
                raise ValueError(f"{self.status} results require a permanent id")
            if self.error_detail is not None:
                raise ValueError("Only failed results carry an error detail")

    @property
    def ok(self) -> bool:
        return self.status is not OperationStatus.FAILED


@dataclass(frozen=True, slots=True)
class BatchResult:
    results: tuple[OperationResult, ...]

    def __len__(self) -> int:
        return len(self.results)

    def __iter__(self) -> Iterator[OperationResult]:
        return iter(self.results)

    def __getitem__(self, index: int) -> OperationResult:
        return self.results[index]

    def for_key(self, key: CorrelationKey) -> OperationResult:
        for result in self.results:
            if result.key == key:
                return result
        raise KeyError(key)

    @property
    def failures(self) -> tuple[EntryFailure, ...]:
        return tuple(
            EntryFailure(
                index=result.index,
                key=result.key,
                detail=result.error_detail or "",
                http_status=result.http_status,
            )
            for result in self.results
            if not result.ok
        )

    @property
    def resources(self) -> tuple[Mapping[str, object], ...]:
        """Resource bodies returned for successful entries, in request order."""

        return tuple(
            result.resource for result in self.results if result.ok and result.resource is not None
        )


def correlate_results(request: BatchRequest, outcomes: Sequence[EntryOutcome]) -> BatchResult:
    """Attach each outcome to the request entry at the same position.

    The wire protocol guarantees positional alignment only, so a count mismatch
    is a protocol violation and is never truncated or padded.
    """

    if len(outcomes) != len(request):
        raise ResponseShapeMismatch(
            f"Batch response has {len(outcomes)} entries for a request of {len(request)}"
        )
    return BatchResult(
        results=tuple(
            OperationResult(
                key=entry.key,
                index=entry.index,
                status=outcome.status,
                permanent_id=outcome.permanent_id,
                error_detail=outcome.error_detail,
                http_status=outcome.http_status,
                resource=outcome.resource,
            )
            for entry, outcome in zip(request, outcomes, strict=True)
        )
    )
