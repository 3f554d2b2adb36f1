"""Lab order workflow: order a test, report results, read them back.

1. ``order``: create the Patient (only if no patient has the MRN) and a
   ServiceRequest that points at it through a local reference.
2. ``report``: create Observations and a DiagnosticReport that reference the
   patient and service request resolved by the first batch.
3. ``report-readback``: read the DiagnosticReport.
4. ``observation-readback``: read every Observation listed in the report's
   ``result`` field.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING
from uuid import uuid4

from fhirbatch.domain.operations import ConditionalMatch, OperationDescriptor, read_operations
from fhirbatch.domain.references import LocalReference
from fhirbatch.domain.workflow import BatchStep, StepKind, WorkflowDefinition

if TYPE_CHECKING:
    from fhirbatch.domain.ports.batch import BatchCodec
    from fhirbatch.domain.workflow import WorkflowState

PATIENT_IDENTIFIER_SYSTEM = "https://example.com/deidentified"
SKU_SYSTEM = "https://example.com/availableskus"
LOGISTICS_SYSTEM = "https://example.com/logisticssummary"
LOINC_SYSTEM = "http://loinc.org"
DEFAULT_SKU = "DEVICE_SKU"

ORDER_STEP = "order"
REPORT_STEP = "report"
REPORT_READBACK_STEP = "report-readback"
OBSERVATION_READBACK_STEP = "observation-readback"


@dataclass(frozen=True, slots=True)
class ObservationSpec:
    code: str
    display: str
    value: float
    unit: str


DEFAULT_OBSERVATIONS = (
    ObservationSpec(
        code="718-7",
        display="Hemoglobin [Mass/volume] in Blood",
        value=13.5,
        unit="g/dL",
    ),
    ObservationSpec(
        code="4548-4",
        display="Hemoglobin A1c/Hemoglobin.total in Blood",
        value=5.4,
        unit="%",
    ),
)


def _generated_mrn() -> str:
    return str(uuid4())


@dataclass(frozen=True, slots=True)
class LabOrder:
    mrn: str = field(default_factory=_generated_mrn)
    given_name: str = "Batch"
    family_name: str = "Test"
    birth_date: str = "2020-01-01"
    gender: str = "male"
    sku: str = DEFAULT_SKU
    observations: tuple[ObservationSpec, ...] = DEFAULT_OBSERVATIONS


def patient_payload(order: LabOrder) -> dict[str, object]:
    return {
        "resourceType": "Patient",
        "name": [{"given": [order.given_name], "family": order.family_name}],
        "birthDate": order.birth_date,
        "gender": order.gender,
        "identifier": [{"system": PATIENT_IDENTIFIER_SYSTEM, "value": order.mrn}],
    }


def service_request_payload(order: LabOrder, *, patient: LocalReference) -> dict[str, object]:
    return {
        "resourceType": "ServiceRequest",
        "status": "active",
        "intent": "order",
        "subject": {"reference": patient},
        "code": {"coding": [{"system": SKU_SYSTEM, "code": order.sku}]},
        "orderDetail": [
            {
                "text": "CUSTOMER_ORDERED",
                "coding": [{"system": LOGISTICS_SYSTEM, "code": "PRE_DISPATCH"}],
            }
        ],
    }


def observation_payload(
    spec: ObservationSpec, *, patient: LocalReference, service_request: LocalReference
) -> dict[str, object]:
    return {
        "resourceType": "Observation",
        "status": "final",
        "code": {"coding": [{"system": LOINC_SYSTEM, "code": spec.code, "display": spec.display}]},
        "subject": {"reference": patient},
        "basedOn": [{"reference": service_request}],
        "valueQuantity": {"value": spec.value, "unit": spec.unit},
    }


def diagnostic_report_payload(
    *,
    patient: LocalReference,
    service_request: LocalReference,
    observations: list[LocalReference],
) -> dict[str, object]:
    return {
        "resourceType": "DiagnosticReport",
        "status": "final",
        "code": {"text": "Lab report"},
        "subject": {"reference": patient},
        "basedOn": [{"reference": service_request}],
        "result": [{"reference": observation} for observation in observations],
    }


def lab_order_workflow(order: LabOrder, *, codec: BatchCodec) -> WorkflowDefinition:
    """Build a fresh definition; local ids are allocated here, so build one per run."""

    patient = LocalReference.new()
    service_request = LocalReference.new()
    report = LocalReference.new()

    def plan_order(_state: WorkflowState) -> list[OperationDescriptor]:
        return [
            OperationDescriptor.create(
                "Patient",
                patient_payload(order),
                local_ref=patient,
                conditional_match=ConditionalMatch.identifier(
                    order.mrn, system=PATIENT_IDENTIFIER_SYSTEM
                ),
            ),
            OperationDescriptor.create(
                "ServiceRequest",
                service_request_payload(order, patient=patient),
                local_ref=service_request,
            ),
        ]

    def plan_report(_state: WorkflowState) -> list[OperationDescriptor]:
        observations = [LocalReference.new() for _ in order.observations]
        operations = [
            OperationDescriptor.create(
                "Observation",
                observation_payload(spec, patient=patient, service_request=service_request),
                local_ref=local_ref,
            )
            for spec, local_ref in zip(order.observations, observations, strict=True)
        ]
        operations.append(
            OperationDescriptor.create(
                "DiagnosticReport",
                diagnostic_report_payload(
                    patient=patient,
                    service_request=service_request,
                    observations=observations,
                ),
                local_ref=report,
            )
        )
        return operations

    def plan_report_readback(_state: WorkflowState) -> list[OperationDescriptor]:
        return [OperationDescriptor.read(report)]

    def plan_observation_readback(state: WorkflowState) -> list[OperationDescriptor]:
        (report_resource,) = state.result(REPORT_READBACK_STEP).resources
        return read_operations(codec.references(report_resource, "result"))

    return WorkflowDefinition(
        name="lab-order",
        steps=(
            BatchStep(ORDER_STEP, StepKind.CREATE, plan_order),
            BatchStep(REPORT_STEP, StepKind.CREATE, plan_report),
            BatchStep(REPORT_READBACK_STEP, StepKind.READBACK, plan_report_readback),
            BatchStep(OBSERVATION_READBACK_STEP, StepKind.READBACK, plan_observation_readback),
        ),
    )
