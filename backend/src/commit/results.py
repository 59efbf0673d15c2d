"""Commit result returned to callers and cached for replay"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from staging.status import DraftState


@dataclass
class CommitResult:
    """
    Outcome of one commit attempt that reached COMMITTING.

    Attributes:
        status: COMMITTED, FAILED or CONFLICT
        session_id: Draft that was committed
        owner_id: Owner of the draft, used to authorize replays
        committed_ids: Durable record ids, in write order (empty unless COMMITTED)
        total: Draft total at commit time
        error: Serialized error for FAILED/CONFLICT
        orphans: Record ids whose compensating delete failed
        operation_id: Operation that produced the result
    """
    status: DraftState
    session_id: str
    owner_id: str
    committed_ids: List[str] = field(default_factory=list)
    total: Decimal = Decimal("0.00")
    error: Optional[Dict[str, Any]] = None
    orphans: List[str] = field(default_factory=list)
    operation_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "session_id": self.session_id,
            "owner_id": self.owner_id,
            "committed_ids": list(self.committed_ids),
            "total": str(self.total),
            "error": self.error,
            "orphans": list(self.orphans),
            "operation_id": self.operation_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CommitResult":
        return cls(
            status=DraftState(data["status"]),
            session_id=data["session_id"],
            owner_id=data["owner_id"],
            committed_ids=list(data.get("committed_ids", [])),
            total=Decimal(data.get("total", "0.00")),
            error=data.get("error"),
            orphans=list(data.get("orphans", [])),
            operation_id=data.get("operation_id"),
        )
