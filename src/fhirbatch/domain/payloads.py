"""Helpers for walking entity payloads.

Payloads are plain nested mappings and sequences. Leaves are JSON primitives,
dates, or :data:`Reference` objects that the codec renders on the wire.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from types import MappingProxyType
from typing import TYPE_CHECKING

from .references import LocalReference, PermanentReference

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from .references import Reference

type EntityPayload = Mapping[str, object]


def _is_sequence(value: object) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, str | bytes | bytearray)


def freeze_payload(payload: EntityPayload) -> EntityPayload:
    """Return a read-only deep copy of ``payload``."""

    return _freeze(payload)  # type: ignore[return-value]


def _freeze(value: object) -> object:
    if isinstance(value, Mapping):
        return MappingProxyType({str(key): _freeze(item) for key, item in value.items()})  # pyright: ignore[reportUnknownVariableType]
    if _is_sequence(value):
        return tuple(_freeze(item) for item in value)  # type: ignore[union-attr]
    return value


def iter_references(value: object) -> Iterator[Reference]:
    """Yield every reference in ``value`` in document order."""

    if isinstance(value, LocalReference | PermanentReference):
        yield value
    elif isinstance(value, Mapping):
        for item in value.values():  # pyright: ignore[reportUnknownVariableType]
            yield from iter_references(item)
    elif _is_sequence(value):
        for item in value:  # type: ignore[union-attr]
            yield from iter_references(item)


def map_references(value: object, transform: Callable[[Reference], object]) -> object:
    """Return a frozen copy of ``value`` with each reference replaced by ``transform(ref)``."""

    if isinstance(value, LocalReference | PermanentReference):
        return transform(value)
    if isinstance(value, Mapping):
        return MappingProxyType(
            {str(key): map_references(item, transform) for key, item in value.items()}  # pyright: ignore[reportUnknownVariableType]
        )
    if _is_sequence(value):
        return tuple(map_references(item, transform) for item in value)  # type: ignore[union-attr]
    return value
