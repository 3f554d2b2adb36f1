"""Operation descriptors and the batch builder."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from .payloads import freeze_payload
from .references import LocalReference

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Sequence

    from .payloads import EntityPayload
    from .ports.batch import BatchCodec
    from .references import LocalId, Reference
    from .results import CorrelationKey

log = getLogger(__name__)


class OperationKind(StrEnum):
    CREATE = "create"
    READ = "read"


@dataclass(frozen=True, slots=True)
class ConditionalMatch:
    """Equality criteria for "create only if no entity matches"."""

    criteria: tuple[tuple[str, str], ...]

    def __post_init__(self) -> None:
        if not self.criteria:
            raise ValueError("ConditionalMatch requires at least one criterion")
        for name, value in self.criteria:
            if not name or not value:
                raise ValueError(f"Blank conditional match criterion: {name!r}={value!r}")

    @classmethod
    def on(cls, **criteria: str) -> ConditionalMatch:
        return cls(criteria=tuple(criteria.items()))

    @classmethod
    def identifier(cls, value: str, *, system: str | None = None) -> ConditionalMatch:
        token = f"{system}|{value}" if system else value
        return cls(criteria=(("identifier", token),))


@dataclass(frozen=True, slots=True, kw_only=True)
class OperationDescriptor:
    """One unit of work inside a batch: a create or a read."""

    kind: OperationKind
    collection: str | None = None
    target: Reference | None = None
    payload: EntityPayload | None = None
    conditional_match: ConditionalMatch | None = None
    local_id: LocalId | None = None

    def __post_init__(self) -> None:
        if self.kind is OperationKind.CREATE:
            if not self.collection:
                raise ValueError("Create operations require a target collection")
            if self.payload is None:
                raise ValueError("Create operations require a payload")
            if self.target is not None:
                raise ValueError("Create operations cannot carry a target reference")
        else:
            if self.target is None:
                raise ValueError("Read operations require a target reference")
            if self.payload is not None or self.collection is not None:
                raise ValueError("Read operations cannot carry a payload or collection")
            if self.conditional_match is not None or self.local_id is not None:
                raise ValueError("Read operations cannot carry a conditional match or local id")

    @classmethod
    def create(
        cls,
        collection: str,
        payload: EntityPayload,
        *,
        local_ref: LocalReference | None = None,
        conditional_match: ConditionalMatch | None = None,
    ) -> OperationDescriptor:
        return cls(
            kind=OperationKind.CREATE,
            collection=collection,
            payload=payload,
            conditional_match=conditional_match,
            local_id=local_ref.local_id if local_ref is not None else None,
        )

    @classmethod
    def read(cls, target: Reference) -> OperationDescriptor:
        return cls(kind=OperationKind.READ, target=target)

    @property
    def local_ref(self) -> LocalReference | None:
        return LocalReference(self.local_id) if self.local_id is not None else None


@dataclass(frozen=True, slots=True)
class BatchEntry:
    index: int
    operation: OperationDescriptor

    @property
    def key(self) -> CorrelationKey:
        """Local id for creates that allocate one, else the entry position."""

        local_id = self.operation.local_id
        return local_id if local_id is not None else self.index


@dataclass(frozen=True, slots=True)
class BatchRequest:
    entries: tuple[BatchEntry, ...]

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[BatchEntry]:
        return iter(self.entries)

    def __getitem__(self, index: int) -> BatchEntry:
        return self.entries[index]

    @property
    def operations(self) -> tuple[OperationDescriptor, ...]:
        return tuple(entry.operation for entry in self.entries)


def build_batch(
    operations: Iterable[OperationDescriptor],
    *,
    codec: BatchCodec | None = None,
) -> BatchRequest:
    """Assemble ``operations`` into a request, keeping their order exactly.

    Payloads are frozen so that later caller mutations cannot leak into a built
    batch. Dependency order is not checked here (see
    :func:`fhirbatch.domain.resolution.check_dependencies`). When ``codec`` is
    given the request is encoded once so serialization problems surface as
    :class:`~fhirbatch.domain.errors.MalformedPayload` before any network call.
    """

    entries = tuple(
        BatchEntry(index=index, operation=_frozen(operation))
        for index, operation in enumerate(operations)
    )
    request = BatchRequest(entries=entries)
    if codec is not None:
        codec.encode(request)
    log.debug("Built batch with %s entries", len(request))
    return request


def _frozen(operation: OperationDescriptor) -> OperationDescriptor:
    if operation.payload is None:
        return operation
    return replace(operation, payload=freeze_payload(operation.payload))


def read_operations(targets: Sequence[Reference]) -> list[OperationDescriptor]:
    """Return one read operation per target, in the given order."""

    return [OperationDescriptor.read(target) for target in targets]
