"""Base classes for the checkout domain.

Aggregates record events while they mutate; the application layer drains
them with ``collect_events`` once the mutation has committed.
"""

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, ClassVar, Generic, TypeVar
from uuid import UUID, uuid4


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ValueObject:
    """Immutable value compared by its attributes."""


# ============================================================================
# Aggregate Root Base
# ============================================================================


IdT = TypeVar("IdT")


@dataclass(kw_only=True, eq=False)
class AggregateRoot(Generic[IdT]):
    """Consistency boundary with an identity and pending domain events.

    Two aggregates are equal when their ids are equal.
    """

    id: IdT
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    _events: list["DomainEvent"] = field(default_factory=list, init=False, repr=False)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, type(self)) and self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def _record_event(self, event: "DomainEvent") -> None:
        self._events.append(event)

    def collect_events(self) -> list["DomainEvent"]:
        """Return pending events and forget them."""
        events, self._events = self._events, []
        return events

    def _touch(self) -> None:
        self.updated_at = utcnow()


# ============================================================================
# Domain Event Base
# ============================================================================


@dataclass(frozen=True)
class DomainEvent:
    """Something that happened to an aggregate.

    Subclasses set ``event_type`` and declare their payload as fields.
    """

    event_type: ClassVar[str]

    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(default_factory=utcnow)
    aggregate_id: str = ""
    aggregate_type: str = ""

    @property
    def payload(self) -> dict[str, Any]:
        """Fields declared by the concrete event."""
        base = {f.name for f in fields(DomainEvent)}
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name not in base}

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": str(self.event_id),
            "event_type": self.event_type,
            "occurred_at": self.occurred_at.isoformat(),
            "aggregate_id": self.aggregate_id,
            "aggregate_type": self.aggregate_type,
            "payload": self.payload,
        }
