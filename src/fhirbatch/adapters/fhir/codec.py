"""Translate batch requests to FHIR ``batch`` Bundles and responses back.

All knowledge of the Bundle layout lives here: ``fullUrl`` local ids,
``request``/``ifNoneExist`` for conditional creates, ``response.status`` and
``response.location`` for outcomes, and ``{"reference": "Type/id"}`` objects
inside resources.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from datetime import date, datetime
from logging import getLogger
from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode

from pydantic import ValidationError

from fhirbatch.domain.errors import MalformedPayload, ResponseShapeMismatch, TransportError
from fhirbatch.domain.operations import OperationKind
from fhirbatch.domain.references import LocalReference, PermanentReference
from fhirbatch.domain.results import EntryOutcome, OperationStatus, correlate_results

from .schema import (
    Bundle,
    BundleEntry,
    BundleEntryRequest,
    BundleEntryResponse,
    OperationOutcome,
)

if TYPE_CHECKING:
    from fhirbatch.domain.operations import BatchEntry, BatchRequest, ConditionalMatch
    from fhirbatch.domain.results import BatchResult

log = getLogger(__name__)

LOCAL_REFERENCE_PREFIX = "urn:uuid:"
_RESPONSE_BUNDLE_TYPES = frozenset({"batch-response", "transaction-response"})


def render_reference(reference: LocalReference | PermanentReference) -> str:
    if isinstance(reference, LocalReference):
        return f"{LOCAL_REFERENCE_PREFIX}{reference.local_id}"
    return reference.value


def render_conditional_match(match: ConditionalMatch) -> str:
    return urlencode(match.criteria, safe="|:/")


class FhirBundleCodec:
    """FHIR R4 implementation of the batch codec port."""

    def encode(self, request: BatchRequest) -> bytes:
        bundle = Bundle(type="batch", entry=[self._encode_entry(entry) for entry in request])
        return bundle.model_dump_json(by_alias=True, exclude_none=True).encode("utf-8")

    def decode(self, body: bytes, request: BatchRequest) -> BatchResult:
        try:
            bundle = Bundle.model_validate_json(body)
        except ValidationError as exc:
            raise TransportError(f"Unparseable batch response body: {exc}") from exc

        if bundle.type not in _RESPONSE_BUNDLE_TYPES:
            raise ResponseShapeMismatch(f"Expected a batch-response Bundle, got {bundle.type!r}")
        if len(bundle.entry) != len(request):
            raise ResponseShapeMismatch(
                f"Batch response has {len(bundle.entry)} entries for a request of {len(request)}"
            )

        outcomes = [
            self._decode_entry(entry, response_entry)
            for entry, response_entry in zip(request, bundle.entry, strict=True)
        ]
        return correlate_results(request, outcomes)

    def references(
        self, resource: Mapping[str, object], field: str
    ) -> tuple[PermanentReference, ...]:
        """Return the permanent references stored under ``field`` in ``resource``."""

        value = resource.get(field)
        if value is None:
            return ()
        items: Sequence[object] = (
            value
            if isinstance(value, Sequence) and not isinstance(value, str)
            else (value,)
        )
        found: list[PermanentReference] = []
        for item in items:
            if not isinstance(item, Mapping):
                raise ResponseShapeMismatch(f"{field!r} does not hold Reference objects")
            raw = item.get("reference")  # pyright: ignore[reportUnknownMemberType]
            if not isinstance(raw, str):
                log.debug("Skipping %s entry without a literal reference", field)
                continue
            if raw.startswith(LOCAL_REFERENCE_PREFIX):
                raise ResponseShapeMismatch(f"Server returned unresolved local reference {raw}")
            try:
                found.append(PermanentReference.parse(raw))
            except ValueError as exc:
                raise ResponseShapeMismatch(str(exc)) from exc
        return tuple(found)

    def _encode_entry(self, entry: BatchEntry) -> BundleEntry:
        operation = entry.operation
        if operation.kind is OperationKind.READ:
            target = operation.target
            if not isinstance(target, PermanentReference):
                raise MalformedPayload(
                    f"Entry {entry.index} reads a local reference; resolve it first",
                    index=entry.index,
                )
            return BundleEntry(request=BundleEntryRequest(method="GET", url=target.value))

        collection, payload = operation.collection, operation.payload
        if collection is None or payload is None:
            raise MalformedPayload(
                f"Entry {entry.index} creates without a collection or payload", index=entry.index
            )
        resource = _render_resource(payload, index=entry.index)
        resource_type = resource.setdefault("resourceType", collection)
        if resource_type != collection:
            raise MalformedPayload(
                f"Entry {entry.index} posts a {resource_type} to {collection}",
                index=entry.index,
            )
        local_ref = operation.local_ref
        match = operation.conditional_match
        return BundleEntry(
            full_url=render_reference(local_ref) if local_ref is not None else None,
            resource=resource,
            request=BundleEntryRequest(
                method="POST",
                url=collection,
                if_none_exist=render_conditional_match(match) if match is not None else None,
            ),
        )

    def _decode_entry(self, entry: BatchEntry, response_entry: BundleEntry) -> EntryOutcome:
        response = response_entry.response
        if response is None:
            raise ResponseShapeMismatch(f"Response entry {entry.index} has no response element")

        code = response.status_code
        if code == 0:
            raise ResponseShapeMismatch(
                f"Response entry {entry.index} has no usable status: {response.status!r}"
            )
        resource = response_entry.resource
        if not 200 <= code < 300:  # noqa: PLR2004
            return EntryOutcome(
                status=OperationStatus.FAILED,
                error_detail=_error_detail(response, resource),
                http_status=code,
                resource=resource,
            )

        permanent_id = _permanent_id(entry.index, response, resource)
        if entry.operation.kind is OperationKind.READ:
            if resource is None:
                raise ResponseShapeMismatch(f"Read entry {entry.index} returned no resource")
            status = OperationStatus.RETRIEVED
        elif code == 201:  # noqa: PLR2004
            status = OperationStatus.CREATED
        else:
            status = OperationStatus.MATCHED_EXISTING
        return EntryOutcome(
            status=status,
            permanent_id=permanent_id,
            http_status=code,
            resource=resource,
        )


def _permanent_id(
    index: int,
    response: BundleEntryResponse,
    resource: Mapping[str, Any] | None,
) -> PermanentReference:
    try:
        if response.location:
            return PermanentReference.parse(response.location)
        if resource is not None and resource.get("resourceType") and resource.get("id"):
            return PermanentReference(str(resource["resourceType"]), str(resource["id"]))
    except ValueError as exc:
        raise ResponseShapeMismatch(f"Response entry {index}: {exc}") from exc
    raise ResponseShapeMismatch(f"Response entry {index} succeeded without a location or id")


def _error_detail(response: BundleEntryResponse, resource: Mapping[str, Any] | None) -> str:
    if response.outcome is not None and response.outcome.message:
        return response.outcome.message
    if resource is not None and resource.get("resourceType") == "OperationOutcome":
        try:
            message = OperationOutcome.model_validate(resource).message
        except ValidationError:
            message = None
        if message:
            return message
    return response.status


def _render_resource(payload: Mapping[str, object], *, index: int) -> dict[str, Any]:
    rendered = _render(payload, index=index, path="$")
    if not isinstance(rendered, dict):
        raise MalformedPayload(f"Entry {index}: payload is not a mapping", index=index)
    return rendered  # pyright: ignore[reportUnknownVariableType]


def _render(value: object, *, index: int, path: str) -> object:  # noqa: PLR0911
    if isinstance(value, LocalReference | PermanentReference):
        return render_reference(value)
    if value is None or isinstance(value, str | bool | int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise MalformedPayload(f"Entry {index}: non-finite number at {path}", index=index)
        return value
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, Mapping):
        rendered: dict[str, object] = {}
        for key, item in value.items():  # pyright: ignore[reportUnknownVariableType]
            if not isinstance(key, str):
                raise MalformedPayload(
                    f"Entry {index}: non-string key {key!r} at {path}", index=index
                )
            if item is None:
                continue
            rendered[key] = _render(item, index=index, path=f"{path}.{key}")
        return rendered
    if isinstance(value, Sequence) and not isinstance(value, bytes | bytearray):
        return [
            _render(item, index=index, path=f"{path}[{position}]")
            for position, item in enumerate(value)  # pyright: ignore[reportUnknownArgumentType]
        ]
    raise MalformedPayload(
        f"Entry {index}: cannot serialize {type(value).__name__} at {path}", index=index
    )
