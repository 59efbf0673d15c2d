"""DurableRecord model - SQL system of record for committed drafts"""

from datetime import datetime, timezone
import uuid

from sqlalchemy import Column, String, Text, DateTime, Index, CheckConstraint
from sqlalchemy.orm import validates

from .base import Base, PortableJSONB


RECORD_TYPES = (
    "order_product",
    "membership_category",
    "membership_employment",
    "membership_practices",
    "membership_preferences",
)


class DurableRecord(Base):
    """
    Durable record written by the commit orchestrator.

    One row per committed line item or registration section. The
    idempotency_key ("{session_id}:{item_id}") is unique so that a retried
    commit can never produce a second row for the same staged item.
    """
    __tablename__ = "durable_record"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    record_type = Column(Text, nullable=False)
    idempotency_key = Column(
        Text,
        nullable=False,
        unique=True,
        comment="Unique key for idempotent commit writes"
    )
    session_id = Column(Text, nullable=False)
    owner_id = Column(Text, nullable=False)
    payload_json = Column(PortableJSONB, nullable=False, default=dict)
    privilege = Column(Text, nullable=False)
    access_modifier = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        CheckConstraint(
            "record_type IN ('order_product', 'membership_category', 'membership_employment', "
            "'membership_practices', 'membership_preferences')",
            name='record_type'
        ),
        Index('idx_durable_record_owner_type', 'owner_id', 'record_type'),
        Index('idx_durable_record_session', 'session_id'),
    )

    @validates('record_type')
    def validate_record_type(self, key, value):
        """Ensure record_type is known."""
        if value not in RECORD_TYPES:
            raise ValueError(
                f"Invalid record_type: {value}. "
                f"Must be one of: {', '.join(RECORD_TYPES)}"
            )
        return value

    def __repr__(self):
        return (
            f"<DurableRecord(id={self.id}, record_type='{self.record_type}', "
            f"idempotency_key='{self.idempotency_key}')>"
        )
