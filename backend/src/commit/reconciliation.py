"""Orphan reconciliation.

Records whose compensating delete failed are parked in the session store's
orphan quarantine. This job retries their deletion a bounded number of
times; after that the entry is flagged for manual cleanup and an alert is
logged. Each entry is handled under its draft's commit lock, so a retried
commit reusing the record and the reconciler never overlap.
"""

import logging
from typing import Any, Dict, Optional

from events.publisher import EventPublisher
from repositories.ports import DurableRepositoryPort
from staging.errors import StagingError
from staging.session_store import RedisSessionStore

logger = logging.getLogger(__name__)


class OrphanReconciler:
    """Retries deletion of quarantined orphan records."""

    def __init__(
        self,
        store: RedisSessionStore,
        repository: DurableRepositoryPort,
        max_attempts: int,
        publisher: Optional[EventPublisher] = None,
    ):
        self.store = store
        self.repository = repository
        self.max_attempts = max_attempts
        self.publisher = publisher or EventPublisher()

    def run_once(self) -> Dict[str, Any]:
        """Make one pass over the quarantine.

        Returns:
            Dict with counts of reconciled, still pending and manual entries
        """
        stats = {"checked": 0, "reconciled": 0, "pending": 0, "needs_manual": 0}

        for entry in self.store.list_orphans():
            if entry.get("needs_manual"):
                stats["needs_manual"] += 1
                continue

            # A retried commit of the same draft may be reusing the record
            token = self.store.try_acquire_commit_lock(entry["session_id"])
            if token is None:
                stats["pending"] += 1
                continue
            try:
                self._reconcile(entry, stats)
            finally:
                self.store.release_commit_lock(entry["session_id"], token)

        logger.info(f"Orphan reconciliation completed: {stats}")
        return stats

    def _reconcile(self, entry: Dict[str, Any], stats: Dict[str, int]) -> None:
        record_id = entry["record_id"]
        if self.store.get_orphan(record_id) is None:
            # Adopted by a commit since the quarantine was listed
            return

        stats["checked"] += 1
        try:
            self.repository.delete(record_id)
        except StagingError as e:
            attempts = entry.get("attempts", 0) + 1
            needs_manual = attempts >= self.max_attempts
            self.store.update_orphan(
                record_id, attempts=attempts, needs_manual=needs_manual, reason=e.message
            )
            if needs_manual:
                stats["needs_manual"] += 1
                logger.error(
                    f"ALERT: orphan {entry['record_type']} record {record_id} still present "
                    f"after {attempts} reconcile attempts, manual cleanup required",
                    extra={"session_id": entry["session_id"], "record_id": record_id}
                )
                self.publisher.publish("orphan.needs_manual", {
                    "session_id": entry["session_id"],
                    "record_id": record_id,
                    "record_type": entry["record_type"],
                    "attempts": attempts,
                })
            else:
                stats["pending"] += 1
                logger.warning(
                    f"Orphan delete failed (attempt {attempts}/{self.max_attempts}): {e.message}",
                    extra={"session_id": entry["session_id"], "record_id": record_id}
                )
            return

        self.store.remove_orphan(record_id)
        stats["reconciled"] += 1
        logger.info(
            "Orphan record removed",
            extra={"session_id": entry["session_id"], "record_id": record_id}
        )
        self.publisher.publish("orphan.reconciled", {
            "session_id": entry["session_id"],
            "record_id": record_id,
            "record_type": entry["record_type"],
        })
