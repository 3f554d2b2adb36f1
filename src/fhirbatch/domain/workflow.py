"""Multi-batch workflow orchestration.

A workflow is an ordered list of batch steps. Each step plans its operations
from the state left by earlier steps, so later batches can reference entities
created earlier and read-back steps can follow references found in resources
read before them. Steps run strictly one after another.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from logging import getLogger
from types import MappingProxyType
from typing import TYPE_CHECKING, Literal

from .errors import BatchError, MalformedPayload, OperationFailed, UnresolvedReference
from .operations import OperationKind, build_batch
from .resolution import ResolvedGraph, check_dependencies, resolve, substitute_references

if TYPE_CHECKING:
    from .operations import OperationDescriptor
    from .ports.batch import BatchCodec, BatchExecutor, BearerToken
    from .results import BatchResult

log = getLogger(__name__)


class WorkflowStage(StrEnum):
    INIT = "init"
    AUTHENTICATED = "authenticated"
    BATCH_SUBMITTED = "batch_submitted"
    BATCH_RESOLVED = "batch_resolved"
    READBACK_SUBMITTED = "readback_submitted"
    DONE = "done"
    FAILED = "failed"


class StepKind(StrEnum):
    CREATE = "create"
    READBACK = "readback"


@dataclass(frozen=True, slots=True)
class WorkflowState:
    """Read-only view handed to each step's planner."""

    graph: ResolvedGraph
    results: Mapping[str, BatchResult]

    def result(self, step: str) -> BatchResult:
        try:
            return self.results[step]
        except KeyError:
            raise KeyError(f"Step {step!r} has not run yet") from None


type StepPlanner = Callable[[WorkflowState], Sequence[OperationDescriptor]]


@dataclass(frozen=True, slots=True)
class BatchStep:
    name: str
    kind: StepKind
    plan: StepPlanner
    allow_partial: bool = False


@dataclass(frozen=True, slots=True)
class WorkflowDefinition:
    name: str
    steps: tuple[BatchStep, ...]

    def __post_init__(self) -> None:
        names = [step.name for step in self.steps]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate step names in workflow {self.name!r}: {names}")
        seen_readback = False
        for step in self.steps:
            if step.kind is StepKind.READBACK:
                seen_readback = True
            elif seen_readback:
                raise ValueError(f"Create step {step.name!r} follows a read-back step")


@dataclass(frozen=True, slots=True)
class StageTransition:
    stage: WorkflowStage
    step: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class WorkflowCompleted:
    resources: tuple[Mapping[str, object], ...]
    graph: ResolvedGraph
    results: Mapping[str, BatchResult]
    transitions: tuple[StageTransition, ...]
    status: Literal["done"] = "done"


@dataclass(frozen=True, slots=True, kw_only=True)
class WorkflowFailed:
    stage: WorkflowStage
    step: str | None
    error: BatchError
    graph: ResolvedGraph
    results: Mapping[str, BatchResult]
    transitions: tuple[StageTransition, ...]
    entry_index: int | None = None
    detail: str | None = None
    status: Literal["failed"] = "failed"

    @property
    def retryable(self) -> bool:
        return self.error.retryable


type WorkflowOutcome = WorkflowCompleted | WorkflowFailed

type CredentialSource = Callable[[], BearerToken]
type ExecutorFactory = Callable[[BearerToken], BatchExecutor]


@dataclass(slots=True)
class _Run:
    definition: WorkflowDefinition
    graph: ResolvedGraph = field(default_factory=ResolvedGraph)
    results: dict[str, BatchResult] = field(default_factory=dict)
    transitions: list[StageTransition] = field(default_factory=list)
    stage: WorkflowStage = WorkflowStage.INIT
    step: str | None = None

    def advance(self, stage: WorkflowStage, step: str | None = None) -> None:
        self.stage = stage
        self.step = step
        self.transitions.append(StageTransition(stage=stage, step=step))
        log.info(
            "Workflow %s: %s%s",
            self.definition.name,
            stage,
            f" ({step})" if step else "",
        )

    def state(self) -> WorkflowState:
        return WorkflowState(graph=self.graph, results=MappingProxyType(dict(self.results)))


def run_workflow(
    definition: WorkflowDefinition,
    *,
    credentials: CredentialSource,
    executor_factory: ExecutorFactory,
    codec: BatchCodec | None = None,
) -> WorkflowOutcome:
    """Run every step of ``definition`` and report where it stopped.

    Errors from the batch taxonomy end the run in :class:`WorkflowFailed`; no
    step is retried here. The token is acquired once and passed by value to
    ``executor_factory`` so concurrent runs never share mutable credentials.
    """

    run = _Run(definition=definition)
    run.transitions.append(StageTransition(stage=WorkflowStage.INIT))
    try:
        token = credentials()
        run.advance(WorkflowStage.AUTHENTICATED)
        executor = executor_factory(token)
        for step in definition.steps:
            _run_step(run, step, executor=executor, codec=codec)
    except BatchError as exc:
        return _failed(run, exc)

    run.advance(WorkflowStage.DONE)
    last = definition.steps[-1].name if definition.steps else None
    resources = run.results[last].resources if last is not None else ()
    return WorkflowCompleted(
        resources=resources,
        graph=run.graph,
        results=MappingProxyType(dict(run.results)),
        transitions=tuple(run.transitions),
    )


def _run_step(
    run: _Run,
    step: BatchStep,
    *,
    executor: BatchExecutor,
    codec: BatchCodec | None,
) -> None:
    run.step = step.name
    planned = [substitute_references(op, run.graph) for op in step.plan(run.state())]
    if step.kind is StepKind.READBACK and any(op.kind is not OperationKind.READ for op in planned):
        raise ValueError(f"Read-back step {step.name!r} planned a non-read operation")

    request = build_batch(planned)
    check_dependencies(request, run.graph)
    if codec is not None:
        codec.encode(request)

    submitted = (
        WorkflowStage.READBACK_SUBMITTED
        if step.kind is StepKind.READBACK
        else WorkflowStage.BATCH_SUBMITTED
    )
    run.advance(submitted, step.name)
    if not request.entries:
        log.info("Step %s planned no operations", step.name)
    result = executor.execute(request)
    run.results[step.name] = result
    run.graph = resolve(request, result, run.graph, allow_partial=step.allow_partial)
    if step.kind is StepKind.CREATE:
        run.advance(WorkflowStage.BATCH_RESOLVED, step.name)


def _failed(run: _Run, exc: BatchError) -> WorkflowFailed:
    stage, step = run.stage, run.step
    entry_index: int | None = None
    detail = str(exc)
    if isinstance(exc, OperationFailed):
        entry_index = exc.index
        detail = exc.detail
    elif isinstance(exc, UnresolvedReference | MalformedPayload):
        entry_index = exc.index
    log.error(
        "Workflow %s failed at %s%s: %s",
        run.definition.name,
        stage,
        f" ({step})" if step else "",
        detail,
    )
    run.advance(WorkflowStage.FAILED, step)
    return WorkflowFailed(
        stage=stage,
        step=step,
        error=exc,
        graph=run.graph,
        results=MappingProxyType(dict(run.results)),
        transitions=tuple(run.transitions),
        entry_index=entry_index,
        detail=detail,
    )
