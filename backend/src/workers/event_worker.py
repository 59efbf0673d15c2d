"""Event Worker - persists published draft and commit events to the audit log.

Events are best-effort: a failure here is logged and never retried into the
request path that published the event.
"""

import logging
from typing import Any, Dict

from celery import shared_task

from database import get_db_session
from events.audit import record_audit_event
from observability.request_id import operation_scope

logger = logging.getLogger(__name__)


@shared_task(name="events.record_event", bind=True)
def record_event(self, event_name: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Write one event to the audit_log table.

    Args:
        event_name: Dotted event name (e.g. "commit.succeeded")
        payload: Event payload; session_id, actor_id and operation_id are
            lifted into their own columns

    Returns:
        Dict with status and the audit entry id
    """
    with operation_scope(payload.get("operation_id")) as operation_id:
        try:
            with get_db_session() as db:
                entry = record_audit_event(
                    db=db,
                    event_name=event_name,
                    session_id=payload.get("session_id"),
                    actor_id=payload.get("actor_id"),
                    operation_id=operation_id,
                    metadata=payload,
                )
                entry_id = entry.id

            return {"status": "recorded", "audit_id": entry_id}

        except Exception as e:
            logger.error(
                f"Failed to record event {event_name}: {e}",
                extra={"event_name": event_name},
                exc_info=True
            )
            return {"status": "failed", "error": str(e)}
