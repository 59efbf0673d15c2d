"""SQL system of record.

Each call runs in its own short session and commits immediately: the
orchestrator treats the table like any other non-transactional backend and
relies on compensating deletes, not on a surrounding transaction.
"""

import logging
import uuid
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from config import Settings
from models.durable_record import DurableRecord as DurableRecordRow, RECORD_TYPES
from staging.errors import FatalBackendError, TransientBackendError
from .ports import DurableRecord, DurableRepositoryPort, StoredRecord

logger = logging.getLogger(__name__)


def _to_stored(row: DurableRecordRow) -> StoredRecord:
    return StoredRecord(
        id=row.id,
        record_type=row.record_type,
        idempotency_key=row.idempotency_key,
        session_id=row.session_id,
        owner_id=row.owner_id,
        payload=dict(row.payload_json or {}),
    )


class SqlRecordRepository(DurableRepositoryPort):
    """Durable records in the durable_record table."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    @classmethod
    def from_settings(cls, settings: Settings) -> "SqlRecordRepository":
        from database import get_session_factory
        return cls(get_session_factory())

    def create(self, record: DurableRecord) -> str:
        if record.record_type not in RECORD_TYPES:
            raise FatalBackendError(
                f"Unknown record type: {record.record_type}", session_id=record.session_id
            )

        existing = self.find_by_idempotency_key(record.record_type, record.idempotency_key)
        if existing:
            logger.info(
                "Record already exists for idempotency key, reusing",
                extra={"idempotency_key": record.idempotency_key, "record_id": existing.id}
            )
            return existing.id

        record_id = str(uuid.uuid4())
        row = DurableRecordRow(
            id=record_id,
            record_type=record.record_type,
            idempotency_key=record.idempotency_key,
            session_id=record.session_id,
            owner_id=record.owner_id,
            payload_json=dict(record.payload),
            privilege=record.privilege,
            access_modifier=record.access_modifier,
        )
        try:
            self._run(lambda session: session.add(row), record.session_id)
        except FatalBackendError as e:
            if not isinstance(e.__cause__, IntegrityError):
                raise
            # Lost a race with a concurrent writer of the same key
            existing = self.find_by_idempotency_key(record.record_type, record.idempotency_key)
            if existing is None:
                raise
            return existing.id

        logger.info(
            f"Created {record.record_type} record",
            extra={"record_id": record_id, "idempotency_key": record.idempotency_key}
        )
        return record_id

    def update(self, record_id: str, patch: Dict[str, Any]) -> None:
        def apply(session: Session):
            row = session.get(DurableRecordRow, record_id)
            if row is None:
                raise FatalBackendError(f"Record {record_id} not found")
            payload = dict(row.payload_json or {})
            payload.update(patch)
            row.payload_json = payload

        self._run(apply)

    def delete(self, record_id: str) -> None:
        def apply(session: Session):
            row = session.get(DurableRecordRow, record_id)
            if row is not None:
                session.delete(row)

        self._run(apply)
        logger.info("Deleted record", extra={"record_id": record_id})

    def find_by_idempotency_key(self, record_type: str, idempotency_key: str) -> Optional[StoredRecord]:
        def query(session: Session):
            row = session.query(DurableRecordRow).filter(
                DurableRecordRow.record_type == record_type,
                DurableRecordRow.idempotency_key == idempotency_key,
            ).first()
            return _to_stored(row) if row else None

        return self._run(query)

    def find(self, record_type: str, owner_id: str) -> List[StoredRecord]:
        def query(session: Session):
            rows = session.query(DurableRecordRow).filter(
                DurableRecordRow.record_type == record_type,
                DurableRecordRow.owner_id == owner_id,
            ).order_by(DurableRecordRow.created_at).all()
            return [_to_stored(row) for row in rows]

        return self._run(query)

    def _run(self, work: Callable[[Session], Any], session_id: Optional[str] = None):
        """Run ``work`` in a fresh session, commit, and classify failures."""
        session = self.session_factory()
        try:
            result = work(session)
            session.commit()
            return result
        except OperationalError as e:
            session.rollback()
            raise TransientBackendError(f"Database unavailable: {e}", session_id=session_id) from e
        except SQLAlchemyError as e:
            session.rollback()
            raise FatalBackendError(f"Database rejected write: {e}", session_id=session_id) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
