"""Mapping local ids to server-assigned references.

The resolved graph is write-once: a local id maps to exactly one permanent
reference for the whole workflow, and every mapping change produces a new
graph rather than mutating the previous one.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from logging import getLogger
from types import MappingProxyType
from typing import TYPE_CHECKING

from .errors import DuplicateResolution, OperationFailed, ResponseShapeMismatch, UnresolvedReference
from .operations import OperationKind
from .payloads import iter_references, map_references
from .references import LocalReference
from .results import OperationStatus

if TYPE_CHECKING:
    from collections.abc import Iterator

    from .operations import BatchRequest, OperationDescriptor
    from .references import LocalId, PermanentReference, Reference
    from .results import BatchResult

log = getLogger(__name__)

_RESOLVABLE = frozenset({OperationStatus.CREATED, OperationStatus.MATCHED_EXISTING})


@dataclass(frozen=True, slots=True)
class ResolvedGraph:
    mapping: Mapping[LocalId, PermanentReference] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def __len__(self) -> int:
        return len(self.mapping)

    def __contains__(self, local_id: object) -> bool:
        return local_id in self.mapping

    def __iter__(self) -> Iterator[LocalId]:
        return iter(self.mapping)

    def get(self, local_id: LocalId) -> PermanentReference | None:
        return self.mapping.get(local_id)

    def __getitem__(self, local_id: LocalId) -> PermanentReference:
        return self.mapping[local_id]

    def with_resolution(self, local_id: LocalId, permanent: PermanentReference) -> ResolvedGraph:
        if local_id in self.mapping:
            raise DuplicateResolution(
                local_id,
                f"Local id {local_id} already resolved to {self.mapping[local_id]}; "
                f"refusing to map it to {permanent}",
            )
        return ResolvedGraph(mapping=MappingProxyType({**self.mapping, local_id: permanent}))

    def dereference(self, reference: Reference) -> Reference:
        if isinstance(reference, LocalReference):
            return self.mapping.get(reference.local_id, reference)
        return reference


def resolve(
    request: BatchRequest,
    result: BatchResult,
    graph: ResolvedGraph,
    *,
    allow_partial: bool = False,
) -> ResolvedGraph:
    """Return ``graph`` extended with every local id ``result`` resolved.

    Failed entries never produce a mapping. They raise :class:`OperationFailed`
    unless ``allow_partial`` is set, in which case the caller is expected to
    inspect ``result.failures`` itself.
    """

    if len(result) != len(request):
        raise ResponseShapeMismatch(
            f"Result has {len(result)} entries for a request of {len(request)}"
        )

    failures = result.failures
    for failure in failures:
        log.warning("Batch entry %s failed: %s", failure.index, failure.detail)
    if failures and not allow_partial:
        raise OperationFailed(failures)

    resolved = graph
    for entry in request:
        outcome = result.for_key(entry.key)
        if outcome.index != entry.index:
            raise ResponseShapeMismatch(
                f"Result for {entry.key} is at position {outcome.index}, expected {entry.index}"
            )
        local_id = entry.operation.local_id
        if local_id is None or outcome.status not in _RESOLVABLE:
            continue
        permanent_id = outcome.permanent_id
        if permanent_id is None:
            raise ResponseShapeMismatch(f"Result for entry {entry.index} has no permanent id")
        resolved = resolved.with_resolution(local_id, permanent_id)
        log.debug("Resolved %s -> %s (%s)", local_id, permanent_id, outcome.status)
    return resolved


def substitute_references(
    operation: OperationDescriptor, graph: ResolvedGraph
) -> OperationDescriptor:
    """Replace every resolved local reference in ``operation`` with its permanent one."""

    changes: dict[str, object] = {}
    if operation.payload is not None:
        changes["payload"] = map_references(operation.payload, graph.dereference)
    if operation.target is not None:
        changes["target"] = graph.dereference(operation.target)
    return replace(operation, **changes) if changes else operation


def check_dependencies(request: BatchRequest, graph: ResolvedGraph) -> None:
    """Enforce that every local reference is available to the entry using it.

    A create may reference a local id allocated by an earlier entry of the same
    batch or resolved by a previous batch. A read may only target references the
    server already knows, because in-batch resolution order is not guaranteed
    before read-back.
    """

    allocated: set[LocalId] = set()
    for entry in request:
        operation = entry.operation
        if operation.kind is OperationKind.READ:
            target = operation.target
            if isinstance(target, LocalReference) and target.local_id not in graph:
                raise UnresolvedReference(
                    target.local_id,
                    index=entry.index,
                    message=f"Entry {entry.index} reads unresolved local id {target.local_id}",
                )
            continue

        for reference in iter_references(operation.payload):
            if not isinstance(reference, LocalReference):
                continue
            if reference.local_id in allocated or reference.local_id in graph:
                continue
            raise UnresolvedReference(
                reference.local_id,
                index=entry.index,
                message=(
                    f"Entry {entry.index} references local id {reference.local_id} "
                    "before it is allocated or resolved"
                ),
            )

        local_id = operation.local_id
        if local_id is None:
            continue
        if local_id in allocated or local_id in graph:
            raise DuplicateResolution(
                local_id, f"Local id {local_id} is allocated more than once (entry {entry.index})"
            )
        allocated.add(local_id)
