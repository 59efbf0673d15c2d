"""Fire-and-forget event publisher.

Publishing never fails the caller. Events are logged locally, then handed
to the event worker for persistence; any dispatch failure is logged and
dropped.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from observability.request_id import get_operation_id

logger = logging.getLogger(__name__)

Dispatch = Callable[[str, Dict[str, Any]], None]


def celery_dispatch(event_name: str, payload: Dict[str, Any]) -> None:
    """Queue the event on the record_event Celery task."""
    from workers.event_worker import record_event
    record_event.delay(event_name, payload)


class EventPublisher:
    """Publishes named events with a JSON-serializable payload.

    Args:
        dispatch: Callable that ships the event; defaults to the Celery task
    """

    def __init__(self, dispatch: Optional[Dispatch] = None):
        self.dispatch = dispatch or celery_dispatch

    def publish(self, event_name: str, payload: Dict[str, Any]) -> None:
        event = dict(payload)
        event.setdefault("operation_id", get_operation_id())
        event.setdefault("occurred_at", datetime.now(timezone.utc).isoformat())

        logger.info(
            f"Event {event_name}",
            extra={"event_name": event_name, "session_id": event.get("session_id", "")}
        )
        try:
            self.dispatch(event_name, event)
        except Exception as e:
            logger.warning(
                f"Failed to dispatch event {event_name}: {e}",
                extra={"event_name": event_name},
                exc_info=True
            )
