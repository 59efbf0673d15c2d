"""SQLAlchemy models for the membership staging backend"""

from .base import Base
from .audit_log import AuditLog
from .durable_record import DurableRecord, RECORD_TYPES
from .product import Product

__all__ = [
    "Base",
    "AuditLog",
    "DurableRecord",
    "RECORD_TYPES",
    "Product",
]
