"""Event publisher - appends domain events to the outbox."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional, Protocol

from ..models.event_outbox import EventOutbox
from ..repositories.event_outbox_repository import EventOutboxRepository


class Event(Protocol):
    """Protocol for event types."""

    event_type: str

    @property
    def aggregate_id(self) -> str:
        ...

    def to_dict(self) -> Dict[str, Any]:
        ...


def _json_safe(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {key: _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    return value


class EventPublisher:
    """
    Publishes domain events to the transactional outbox.

    Rows are written in the caller's transaction; nothing is delivered
    until it commits.
    """

    def __init__(self, outbox_repository: EventOutboxRepository):
        self.outbox_repo = outbox_repository

    def publish(self, event: Event, idempotency_key: Optional[str] = None) -> EventOutbox:
        """Append ``event``; a repeated ``idempotency_key`` returns the existing row."""
        payload = _json_safe(event.to_dict())
        return self.outbox_repo.enqueue(
            event_type=event.event_type,
            aggregate_id=event.aggregate_id,
            payload=payload,
            idempotency_key=idempotency_key,
        )

    def publish_all(self, events: Iterable[Event]) -> int:
        count = 0
        for event in events:
            self.publish(event)
            count += 1
        return count
