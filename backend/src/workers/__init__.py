"""Background workers for event persistence and orphan reconciliation.

Tasks:
- events.record_event: persist a published event to the audit log
- orphans.reconcile: retry deletion of quarantined orphan records
"""

from .celery_app import celery_app

__all__ = ["celery_app"]
