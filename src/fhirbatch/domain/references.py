"""Local and permanent entity references.

A :class:`LocalReference` names an entity that has not been persisted yet; it
only means something inside the batch that creates it and until the resolver
maps it to the :class:`PermanentReference` assigned by the server.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import NewType
from uuid import UUID, uuid4

LocalId = NewType("LocalId", UUID)

_HISTORY_SEGMENT = "_history"


def new_local_id() -> LocalId:
    """Return a process-unique local id."""

    return LocalId(uuid4())


@dataclass(frozen=True, slots=True)
class LocalReference:
    local_id: LocalId

    @classmethod
    def new(cls) -> LocalReference:
        return cls(new_local_id())

    def __str__(self) -> str:
        return f"local:{self.local_id}"


@dataclass(frozen=True, slots=True)
class PermanentReference:
    resource_type: str
    id: str

    def __post_init__(self) -> None:
        if not self.resource_type or "/" in self.resource_type:
            raise ValueError(f"Invalid resource type: {self.resource_type!r}")
        if not self.id or "/" in self.id:
            raise ValueError(f"Invalid resource id: {self.id!r}")

    @property
    def value(self) -> str:
        return f"{self.resource_type}/{self.id}"

    @classmethod
    def parse(cls, value: str) -> PermanentReference:
        """Parse ``Type/id``, tolerating a base URL prefix and a ``_history`` suffix."""

        segments = [segment for segment in value.strip().split("/") if segment]
        if _HISTORY_SEGMENT in segments:
            segments = segments[: segments.index(_HISTORY_SEGMENT)]
        if len(segments) < 2:
            raise ValueError(f"Not a resource reference: {value!r}")
        return cls(resource_type=segments[-2], id=segments[-1])

    def __str__(self) -> str:
        return self.value


type Reference = LocalReference | PermanentReference
