"""Application orchestration entry points."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from fhirbatch.adapters.fhir import ClientCredentialsProvider, FhirBatchClient, FhirBundleCodec
from fhirbatch.config.fhir import get_fhir_config
from fhirbatch.domain.workflow import WorkflowCompleted, run_workflow
from fhirbatch.lab_order import LabOrder, lab_order_workflow

if TYPE_CHECKING:
    from collections.abc import Callable

    from fhirbatch.adapters.http_resilience import ResilientClient
    from fhirbatch.config.fhir import FhirConfig
    from fhirbatch.config.http_resilience import ResilienceConfig
    from fhirbatch.domain.ports.batch import BearerToken
    from fhirbatch.domain.workflow import WorkflowOutcome

    ClientFactory = Callable[[ResilienceConfig], ResilientClient]


log = getLogger(__name__)


def run_lab_order(
    order: LabOrder | None = None,
    *,
    config: FhirConfig | None = None,
    client_factory: ClientFactory | None = None,
) -> WorkflowOutcome:
    """Create a lab order with its report on the FHIR server and read the results back."""

    effective_config = config or get_fhir_config()
    effective_order = order or LabOrder()
    codec = FhirBundleCodec()
    provider = ClientCredentialsProvider(config=effective_config, client_factory=client_factory)

    def executor_factory(token: BearerToken) -> FhirBatchClient:
        return FhirBatchClient(
            config=effective_config,
            token=token,
            codec=codec,
            client_factory=client_factory,
        )

    log.info(
        "Starting lab order: mrn=%s, sku=%s, observations=%s",
        effective_order.mrn,
        effective_order.sku,
        len(effective_order.observations),
    )
    outcome = run_workflow(
        lab_order_workflow(effective_order, codec=codec),
        credentials=provider.token,
        executor_factory=executor_factory,
        codec=codec,
    )
    if isinstance(outcome, WorkflowCompleted):
        log.info(
            "Finished lab order: resolved=%s, read_back=%s",
            len(outcome.graph),
            len(outcome.resources),
        )
    return outcome
