"""Reconcile Worker - periodic cleanup after failed and interrupted commits.

Rolls back drafts abandoned in COMMITTING, then retries deletion of
quarantined orphans. Scheduled by Celery Beat (see workers.celery_app
beat_schedule).
"""

import logging
from typing import Any, Dict

from celery import shared_task

from commit.orchestrator import CommitOrchestrator
from commit.reconciliation import OrphanReconciler
from config import get_settings
from observability.request_id import operation_scope

logger = logging.getLogger(__name__)


@shared_task(name="orphans.reconcile", bind=True)
def reconcile_orphans(self) -> Dict[str, Any]:
    """Recover interrupted commits and run one pass over the orphan quarantine.

    Interrupted commits go first so that records they fail to delete are
    quarantined and picked up in the same run.

    Returns:
        Dict with reconciliation statistics, or failed status on error
    """
    from staging.dependencies import get_catalog, get_publisher, get_repository, get_session_store

    settings = get_settings()
    with operation_scope():
        logger.info("Orphan reconciliation task started")
        try:
            store = get_session_store()
            repository = get_repository()
            orchestrator = CommitOrchestrator(
                store=store,
                repository=repository,
                catalog=get_catalog(),
                publisher=get_publisher(),
                settings=settings,
            )
            interrupted = orchestrator.recover_interrupted()

            reconciler = OrphanReconciler(
                store=store,
                repository=repository,
                max_attempts=settings.ORPHAN_MAX_RECONCILE_ATTEMPTS,
                publisher=get_publisher(),
            )
            stats = reconciler.run_once()
            return {"status": "completed", **interrupted, **stats}

        except Exception as e:
            logger.error(
                "Orphan reconciliation task failed",
                exc_info=True,
                extra={"error_type": type(e).__name__}
            )
            return {"status": "failed", "error": str(e)}
