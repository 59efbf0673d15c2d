"""Durable repository adapters for committed drafts"""

from .ports import DurableRecord, DurableRepositoryPort, StoredRecord
from .registry import RepositoryRegistry
from .sql_repository import SqlRecordRepository
from .dataverse_repository import DataverseRepository
from .retry import call_with_retry

RepositoryRegistry.register("SQL", SqlRecordRepository)
RepositoryRegistry.register("DATAVERSE", DataverseRepository)

__all__ = [
    "DurableRecord",
    "DurableRepositoryPort",
    "StoredRecord",
    "RepositoryRegistry",
    "SqlRecordRepository",
    "DataverseRepository",
    "call_with_retry",
]
