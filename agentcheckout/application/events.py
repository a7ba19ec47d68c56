"""Domain event logging.

Aggregates record events as they change; the application layer drains
them after each mutation and writes them to the structured log.
"""

import structlog

from agentcheckout.domain.base import AggregateRoot

logger = structlog.get_logger("agentcheckout.events")


def log_domain_events(aggregate: AggregateRoot) -> int:
    """Collect and log all pending events of an aggregate.

    Returns:
        Number of events logged.
    """
    events = aggregate.collect_events()
    for event in events:
        logger.info(
            "Domain event",
            event_type=event.event_type,
            event_id=str(event.event_id),
            aggregate_type=event.aggregate_type,
            aggregate_id=event.aggregate_id,
            occurred_at=event.occurred_at.isoformat(),
            payload=event.payload,
        )
    return len(events)
