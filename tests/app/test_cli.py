from __future__ import annotations

import json
from types import MappingProxyType
from typing import TYPE_CHECKING

import pytest

from fhirbatch.domain.errors import TransportError
from fhirbatch.domain.references import PermanentReference, new_local_id
from fhirbatch.domain.resolution import ResolvedGraph
from fhirbatch.domain.workflow import WorkflowCompleted, WorkflowFailed, WorkflowStage
from fhirbatch.lab_order import DEFAULT_SKU, LabOrder
from fhirbatch.ui import cli

if TYPE_CHECKING:
    from fhirbatch.domain.workflow import WorkflowOutcome


def _completed() -> WorkflowCompleted:
    graph = ResolvedGraph().with_resolution(new_local_id(), PermanentReference("Patient", "1"))
    return WorkflowCompleted(
        resources=(MappingProxyType({"resourceType": "Observation", "id": "3"}),),
        graph=graph,
        results=MappingProxyType({}),
        transitions=(),
    )


def _failed() -> WorkflowFailed:
    return WorkflowFailed(
        stage=WorkflowStage.BATCH_SUBMITTED,
        step="order",
        error=TransportError("POST fhir/R4/ answered 503", status_code=503),
        graph=ResolvedGraph(),
        results=MappingProxyType({}),
        transitions=(),
        detail="POST fhir/R4/ answered 503",
    )


def _patch_run(
    monkeypatch: pytest.MonkeyPatch, outcome: WorkflowOutcome
) -> list[LabOrder]:
    captured: list[LabOrder] = []

    def fake_run(order: LabOrder) -> WorkflowOutcome:
        captured.append(order)
        return outcome

    monkeypatch.setattr(cli, "run_lab_order", fake_run)
    return captured


def test_lab_order_defaults(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    captured = _patch_run(monkeypatch, _completed())

    cli.main(["lab-order"])

    (order,) = captured
    assert order.sku == DEFAULT_SKU
    assert order.mrn
    summary = json.loads(capsys.readouterr().out)
    assert summary["status"] == "done"
    assert list(summary["resolved"].values()) == ["Patient/1"]
    assert summary["resources"] == [{"resourceType": "Observation", "id": "3"}]


def test_lab_order_with_flags(monkeypatch: pytest.MonkeyPatch) -> None:
    captured = _patch_run(monkeypatch, _completed())

    cli.main(["-v", "lab-order", "--mrn", " MRN-1 ", "--sku", "SKU-2"])

    assert captured[0].mrn == "MRN-1"
    assert captured[0].sku == "SKU-2"


def test_failed_run_exits_nonzero(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    _patch_run(monkeypatch, _failed())

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["lab-order", "--mrn", "MRN-1"])

    assert excinfo.value.code == 1
    summary = json.loads(capsys.readouterr().out)
    assert summary["stage"] == "batch_submitted"
    assert summary["step"] == "order"
    assert summary["error"] == "TransportError"
    assert summary["retryable"] is True


def test_blank_mrn_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    captured = _patch_run(monkeypatch, _completed())

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["lab-order", "--mrn", "   "])

    assert excinfo.value.code == 2
    assert captured == []


def test_unexpected_error_exits_one(monkeypatch: pytest.MonkeyPatch) -> None:
    def broken(order: LabOrder) -> WorkflowOutcome:
        raise RuntimeError("boom")

    monkeypatch.setattr(cli, "run_lab_order", broken)

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["lab-order"])

    assert excinfo.value.code == 1
