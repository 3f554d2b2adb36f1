from __future__ import annotations

import pytest

from fhirbatch.domain.errors import DuplicateResolution, OperationFailed, UnresolvedReference
from fhirbatch.domain.operations import BatchRequest, OperationDescriptor, build_batch
from fhirbatch.domain.references import LocalReference, PermanentReference
from fhirbatch.domain.resolution import (
    ResolvedGraph,
    check_dependencies,
    resolve,
    substitute_references,
)
from fhirbatch.domain.results import EntryOutcome, OperationStatus, correlate_results

PATIENT_X = PermanentReference("Patient", "X")
SERVICE_REQUEST_Y = PermanentReference("ServiceRequest", "Y")


def _order_batch(patient: LocalReference) -> BatchRequest:
    return build_batch(
        [
            OperationDescriptor.create("Patient", {"gender": "male"}, local_ref=patient),
            OperationDescriptor.create("ServiceRequest", {"subject": {"reference": patient}}),
        ]
    )


def test_resolve_maps_created_local_ids() -> None:
    patient = LocalReference.new()
    request = _order_batch(patient)
    result = correlate_results(
        request,
        [
            EntryOutcome(OperationStatus.CREATED, PATIENT_X),
            EntryOutcome(OperationStatus.CREATED, SERVICE_REQUEST_Y),
        ],
    )

    graph = resolve(request, result, ResolvedGraph())

    assert dict(graph.mapping) == {patient.local_id: PATIENT_X}


def test_resolve_maps_matched_existing() -> None:
    patient = LocalReference.new()
    request = _order_batch(patient)
    result = correlate_results(
        request,
        [
            EntryOutcome(OperationStatus.MATCHED_EXISTING, PATIENT_X),
            EntryOutcome(OperationStatus.CREATED, SERVICE_REQUEST_Y),
        ],
    )

    assert resolve(request, result, ResolvedGraph())[patient.local_id] == PATIENT_X


def test_resolve_does_not_mutate_input_graph() -> None:
    patient = LocalReference.new()
    request = _order_batch(patient)
    result = correlate_results(
        request,
        [
            EntryOutcome(OperationStatus.CREATED, PATIENT_X),
            EntryOutcome(OperationStatus.CREATED, SERVICE_REQUEST_Y),
        ],
    )
    empty = ResolvedGraph()

    resolve(request, result, empty)

    assert len(empty) == 0


def test_second_resolution_of_same_local_id_fails() -> None:
    patient = LocalReference.new()
    request = _order_batch(patient)
    result = correlate_results(
        request,
        [
            EntryOutcome(OperationStatus.CREATED, PATIENT_X),
            EntryOutcome(OperationStatus.CREATED, SERVICE_REQUEST_Y),
        ],
    )
    graph = resolve(request, result, ResolvedGraph())

    with pytest.raises(DuplicateResolution) as exc:
        resolve(request, result, graph)

    assert exc.value.local_id == patient.local_id


def test_failed_entry_propagates() -> None:
    patient = LocalReference.new()
    request = _order_batch(patient)
    result = correlate_results(
        request,
        [
            EntryOutcome(OperationStatus.FAILED, error_detail="Missing name", http_status=400),
            EntryOutcome(OperationStatus.CREATED, SERVICE_REQUEST_Y),
        ],
    )

    with pytest.raises(OperationFailed) as exc:
        resolve(request, result, ResolvedGraph())

    assert exc.value.index == 0
    assert exc.value.detail == "Missing name"


def test_allow_partial_skips_failed_entries() -> None:
    patient = LocalReference.new()
    request = _order_batch(patient)
    result = correlate_results(
        request,
        [
            EntryOutcome(OperationStatus.FAILED, error_detail="Missing name"),
            EntryOutcome(OperationStatus.CREATED, SERVICE_REQUEST_Y),
        ],
    )

    graph = resolve(request, result, ResolvedGraph(), allow_partial=True)

    assert patient.local_id not in graph
    assert len(result.failures) == 1


def test_substitute_references_replaces_resolved_locals_only() -> None:
    patient = LocalReference.new()
    pending = LocalReference.new()
    graph = ResolvedGraph().with_resolution(patient.local_id, PATIENT_X)
    operation = OperationDescriptor.create(
        "Observation",
        {"subject": {"reference": patient}, "hasMember": [{"reference": pending}]},
    )

    substituted = substitute_references(operation, graph)

    assert substituted.payload is not None
    assert substituted.payload["subject"]["reference"] == PATIENT_X  # type: ignore[index]
    assert substituted.payload["hasMember"][0]["reference"] == pending  # type: ignore[index]
    assert operation.payload["subject"]["reference"] == patient  # type: ignore[index]


def test_substitute_references_resolves_read_targets() -> None:
    report = LocalReference.new()
    report_z = PermanentReference("DiagnosticReport", "Z")
    graph = ResolvedGraph().with_resolution(report.local_id, report_z)

    substituted = substitute_references(OperationDescriptor.read(report), graph)

    assert substituted.target == report_z


def test_check_dependencies_accepts_earlier_allocation() -> None:
    patient = LocalReference.new()

    check_dependencies(_order_batch(patient), ResolvedGraph())


def test_check_dependencies_rejects_forward_reference() -> None:
    patient = LocalReference.new()
    request = build_batch(
        [
            OperationDescriptor.create("ServiceRequest", {"subject": {"reference": patient}}),
            OperationDescriptor.create("Patient", {}, local_ref=patient),
        ]
    )

    with pytest.raises(UnresolvedReference) as exc:
        check_dependencies(request, ResolvedGraph())

    assert exc.value.index == 0


def test_check_dependencies_rejects_read_of_same_batch_create() -> None:
    patient = LocalReference.new()
    request = build_batch(
        [
            OperationDescriptor.create("Patient", {}, local_ref=patient),
            OperationDescriptor.read(patient),
        ]
    )

    with pytest.raises(UnresolvedReference, match="reads unresolved local id"):
        check_dependencies(request, ResolvedGraph())


def test_check_dependencies_rejects_reallocating_resolved_id() -> None:
    patient = LocalReference.new()
    graph = ResolvedGraph().with_resolution(patient.local_id, PATIENT_X)

    with pytest.raises(DuplicateResolution):
        check_dependencies(_order_batch(patient), graph)
