"""
DurableRepositoryPort - Port interface for the durable system of record

The commit orchestrator writes committed drafts through this narrow port and
nothing else. Backends are not transactional: every create is an independent
write, and undoing one means issuing a delete.

Error contract for implementations:
- TransientBackendError: timeout, connection failure, throttling, 5xx
- ConflictError(reason="duplicate"): backend refused a conflicting write
- FatalBackendError: any other rejection
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class DurableRecord:
    """
    One record to be written by a commit.

    Attributes:
        record_type: order_product or membership_{category,employment,practices,preferences}
        idempotency_key: "{session_id}:{item_id}", unique per staged entry
        session_id: Draft the record was committed from
        owner_id: Actor who owns the record
        payload: Record fields
        privilege: Privilege stamped on the record (OWNER, ADMIN, MAIN)
        access_modifier: Visibility of the record (PUBLIC, PROTECTED, PRIVATE)
    """
    record_type: str
    idempotency_key: str
    session_id: str
    owner_id: str
    payload: Dict[str, Any] = field(default_factory=dict)
    privilege: str = "OWNER"
    access_modifier: str = "PRIVATE"


@dataclass
class StoredRecord:
    """A record as read back from the backend."""
    id: str
    record_type: str
    idempotency_key: Optional[str]
    session_id: Optional[str]
    owner_id: Optional[str]
    payload: Dict[str, Any] = field(default_factory=dict)


class DurableRepositoryPort(ABC):
    """
    Abstract interface for durable backends.

    Implementations:
    - SqlRecordRepository: SQLAlchemy table with a unique idempotency key
    - DataverseRepository: remote OData Web API over HTTP
    """

    @classmethod
    def from_settings(cls, settings) -> "DurableRepositoryPort":
        """Build an instance from application settings (used by the registry)."""
        raise NotImplementedError(f"{cls.__name__} cannot be built from settings")

    @abstractmethod
    def create(self, record: DurableRecord) -> str:
        """
        Persist a record and return its backend id.

        Creating a record whose idempotency key already exists MUST NOT
        produce a second record.
        """
        pass

    @abstractmethod
    def update(self, record_id: str, patch: Dict[str, Any]) -> None:
        """Merge ``patch`` into the payload of an existing record."""
        pass

    @abstractmethod
    def delete(self, record_id: str) -> None:
        """
        Delete a record. Deleting a record that is already gone succeeds,
        so compensations can be retried safely.
        """
        pass

    @abstractmethod
    def find_by_idempotency_key(self, record_type: str, idempotency_key: str) -> Optional[StoredRecord]:
        """Return the record written for ``idempotency_key``, if any."""
        pass

    @abstractmethod
    def find(self, record_type: str, owner_id: str) -> List[StoredRecord]:
        """Return every record of ``record_type`` owned by ``owner_id``."""
        pass

    def close(self) -> None:
        """Release connections held by the backend. Called on application shutdown."""
        pass
