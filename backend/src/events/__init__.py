"""Draft and commit event publishing"""

from .publisher import EventPublisher
from .audit import record_audit_event

__all__ = ["EventPublisher", "record_audit_event"]
