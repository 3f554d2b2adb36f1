from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

import pytest

from fhirbatch.app import run_lab_order
from fhirbatch.config import ClientCredentials
from fhirbatch.domain.errors import OperationFailed
from fhirbatch.domain.results import OperationStatus
from fhirbatch.domain.workflow import (
    StageTransition,
    WorkflowCompleted,
    WorkflowFailed,
    WorkflowStage,
)
from fhirbatch.lab_order import (
    OBSERVATION_READBACK_STEP,
    ORDER_STEP,
    PATIENT_IDENTIFIER_SYSTEM,
    REPORT_READBACK_STEP,
    LabOrder,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from fhirbatch.adapters.http_resilience import ResilientClient
    from fhirbatch.config import FhirConfig, ResilienceConfig
    from fhirbatch.domain.workflow import WorkflowOutcome
    from tests.support.fake_fhir import FakeFhirServer


@pytest.fixture
def run_order(
    fhir_config: FhirConfig,
    client_factory: Callable[[ResilienceConfig], ResilientClient],
) -> Callable[[LabOrder], WorkflowOutcome]:
    def run(order: LabOrder) -> WorkflowOutcome:
        return run_lab_order(order, config=fhir_config, client_factory=client_factory)

    return run


def test_lab_order_creates_and_reads_back(
    run_order: Callable[[LabOrder], WorkflowOutcome], fake_server: FakeFhirServer
) -> None:
    outcome = run_order(LabOrder(mrn="MRN-1"))

    assert isinstance(outcome, WorkflowCompleted)
    assert [transition.stage for transition in outcome.transitions] == [
        WorkflowStage.INIT,
        WorkflowStage.AUTHENTICATED,
        WorkflowStage.BATCH_SUBMITTED,
        WorkflowStage.BATCH_RESOLVED,
        WorkflowStage.BATCH_SUBMITTED,
        WorkflowStage.BATCH_RESOLVED,
        WorkflowStage.READBACK_SUBMITTED,
        WorkflowStage.READBACK_SUBMITTED,
        WorkflowStage.DONE,
    ]
    assert len(outcome.graph) == 5

    (report,) = outcome.results[REPORT_READBACK_STEP].resources
    assert report["subject"] == {"reference": "Patient/1"}
    assert report["basedOn"] == [{"reference": "ServiceRequest/2"}]
    assert report["result"] == [
        {"reference": "Observation/3"},
        {"reference": "Observation/4"},
    ]

    observations = outcome.resources
    assert [resource["id"] for resource in observations] == ["3", "4"]
    assert observations[0]["code"]["coding"][0]["code"] == "718-7"
    assert observations[1]["valueQuantity"] == {"value": 5.4, "unit": "%"}
    assert all(resource["subject"] == {"reference": "Patient/1"} for resource in observations)
    assert len(outcome.results[OBSERVATION_READBACK_STEP]) == 2


def test_order_batch_uses_conditional_create_and_local_reference(
    run_order: Callable[[LabOrder], WorkflowOutcome], fake_server: FakeFhirServer
) -> None:
    run_order(LabOrder(mrn="MRN-2", sku="SKU-9"))

    patient_entry, order_entry = fake_server.batches[0]["entry"]
    assert patient_entry["fullUrl"].startswith("urn:uuid:")
    assert patient_entry["request"] == {
        "method": "POST",
        "url": "Patient",
        "ifNoneExist": f"identifier={PATIENT_IDENTIFIER_SYSTEM}|MRN-2",
    }
    assert patient_entry["resource"]["identifier"] == [
        {"system": PATIENT_IDENTIFIER_SYSTEM, "value": "MRN-2"}
    ]
    assert order_entry["resource"]["subject"] == {"reference": patient_entry["fullUrl"]}
    assert order_entry["resource"]["code"]["coding"][0]["code"] == "SKU-9"

    report_batch = fake_server.batches[1]["entry"]
    assert report_batch[0]["resource"]["subject"] == {"reference": "Patient/1"}
    assert report_batch[-1]["resource"]["result"] == [
        {"reference": report_batch[0]["fullUrl"]},
        {"reference": report_batch[1]["fullUrl"]},
    ]


def test_replaying_same_mrn_reuses_patient(
    run_order: Callable[[LabOrder], WorkflowOutcome], fake_server: FakeFhirServer
) -> None:
    first = run_order(LabOrder(mrn="MRN-3"))
    second = run_order(LabOrder(mrn="MRN-3"))

    assert isinstance(first, WorkflowCompleted)
    assert isinstance(second, WorkflowCompleted)
    assert first.results[ORDER_STEP][0].status is OperationStatus.CREATED
    replayed = second.results[ORDER_STEP][0]
    assert replayed.status is OperationStatus.MATCHED_EXISTING
    assert replayed.permanent_id == first.results[ORDER_STEP][0].permanent_id
    assert len(fake_server.of_type("Patient")) == 1
    assert len(fake_server.of_type("ServiceRequest")) == 2
    assert {r["subject"]["reference"] for r in fake_server.of_type("ServiceRequest")} == {
        "Patient/1"
    }


def test_failed_service_request_stops_run(
    run_order: Callable[[LabOrder], WorkflowOutcome], fake_server: FakeFhirServer
) -> None:
    fake_server.fail_types["ServiceRequest"] = "ServiceRequest.subject is invalid"

    outcome = run_order(LabOrder(mrn="MRN-4"))

    assert isinstance(outcome, WorkflowFailed)
    assert outcome.stage is WorkflowStage.BATCH_SUBMITTED
    assert outcome.step == ORDER_STEP
    assert outcome.entry_index == 1
    assert outcome.detail == "ServiceRequest.subject is invalid"
    assert isinstance(outcome.error, OperationFailed)
    assert outcome.retryable is False
    assert outcome.transitions[-1] == StageTransition(WorkflowStage.FAILED, ORDER_STEP)
    assert len(fake_server.batches) == 1


def test_bad_credentials_fail_before_any_batch(
    fhir_config: FhirConfig,
    client_factory: Callable[[ResilienceConfig], ResilientClient],
    fake_server: FakeFhirServer,
) -> None:
    config = replace(fhir_config, credentials=ClientCredentials("client", "wrong"))

    outcome = run_lab_order(LabOrder(), config=config, client_factory=client_factory)

    assert isinstance(outcome, WorkflowFailed)
    assert outcome.stage is WorkflowStage.INIT
    assert outcome.step is None
    assert fake_server.batches == []
