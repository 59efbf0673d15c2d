"""Audit log persistence for published events.

Audit Events:
- draft.created, draft.expired
- draft.item_staged, draft.item_unstaged
- draft.section_staged, draft.section_unstaged
- commit.started, commit.succeeded, commit.failed, commit.conflict
- orphan.quarantined, orphan.reconciled, orphan.needs_manual
"""

from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from models.audit_log import AuditLog


def record_audit_event(
    db: Session,
    event_name: str,
    session_id: Optional[str] = None,
    actor_id: Optional[str] = None,
    operation_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """Create an audit log entry.

    Entries are append-only. This function does not validate event names.

    Example:
        record_audit_event(
            db=db,
            event_name="commit.succeeded",
            session_id=draft.id,
            actor_id=draft.owner_id,
            metadata={"committed_ids": ["..."], "total": "25.00"},
        )
    """
    audit_entry = AuditLog(
        event_name=event_name,
        session_id=session_id,
        actor_id=actor_id,
        operation_id=operation_id,
        metadata_json=metadata,
    )

    db.add(audit_entry)
    db.flush()  # Get ID without committing transaction

    return audit_entry
