"""AuditLog SQLAlchemy model"""

from datetime import datetime, timezone
import uuid

from sqlalchemy import Column, String, Text, DateTime, Index

from .base import Base, PortableJSONB


class AuditLog(Base):
    """AuditLog model for append-only event logging.

    Rows are written by the event worker from published draft and commit
    events. Entries are never updated or deleted.
    """
    __tablename__ = "audit_log"
    __table_args__ = (
        Index("ix_audit_log_session_id", "session_id"),
        Index("ix_audit_log_event_created_at", "event_name", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_name = Column(Text, nullable=False)
    session_id = Column(Text, nullable=True)
    actor_id = Column(Text, nullable=True)
    operation_id = Column(Text, nullable=True)
    metadata_json = Column(PortableJSONB, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        """Convert audit log entry to dictionary representation"""
        return {
            "id": self.id,
            "event_name": self.event_name,
            "session_id": self.session_id,
            "actor_id": self.actor_id,
            "operation_id": self.operation_id,
            "metadata": self.metadata_json,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
