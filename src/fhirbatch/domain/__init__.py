"""Domain layer: batch construction, local-reference resolution and workflows."""

from __future__ import annotations

from .errors import (
    AuthenticationError,
    BatchError,
    DuplicateResolution,
    EntryFailure,
    MalformedPayload,
    OperationFailed,
    ResponseShapeMismatch,
    TransportError,
    UnresolvedReference,
)
from .operations import (
    BatchEntry,
    BatchRequest,
    ConditionalMatch,
    OperationDescriptor,
    OperationKind,
    build_batch,
    read_operations,
)
from .references import LocalId, LocalReference, PermanentReference, Reference, new_local_id
from .resolution import ResolvedGraph, check_dependencies, resolve, substitute_references
from .results import (
    BatchResult,
    CorrelationKey,
    EntryOutcome,
    OperationResult,
    OperationStatus,
    correlate_results,
)
from .workflow import (
    BatchStep,
    StageTransition,
    StepKind,
    WorkflowCompleted,
    WorkflowDefinition,
    WorkflowFailed,
    WorkflowOutcome,
    WorkflowStage,
    WorkflowState,
    run_workflow,
)

__all__ = [
    "AuthenticationError",
    "BatchEntry",
    "BatchError",
    "BatchRequest",
    "BatchResult",
    "BatchStep",
    "ConditionalMatch",
    "CorrelationKey",
    "DuplicateResolution",
    "EntryFailure",
    "EntryOutcome",
    "LocalId",
    "LocalReference",
    "MalformedPayload",
    "OperationDescriptor",
    "OperationFailed",
    "OperationKind",
    "OperationResult",
    "OperationStatus",
    "PermanentReference",
    "Reference",
    "ResolvedGraph",
    "ResponseShapeMismatch",
    "StageTransition",
    "StepKind",
    "TransportError",
    "UnresolvedReference",
    "WorkflowCompleted",
    "WorkflowDefinition",
    "WorkflowFailed",
    "WorkflowOutcome",
    "WorkflowStage",
    "WorkflowState",
    "build_batch",
    "check_dependencies",
    "correlate_results",
    "new_local_id",
    "read_operations",
    "resolve",
    "run_workflow",
    "substitute_references",
]
