"""Prometheus metrics for draft staging and commit.

Defines and exposes operational metrics for monitoring and alerting.
"""

from prometheus_client import Counter, Histogram, Gauge

# Staging metrics
drafts_created_total = Counter(
    "staging_drafts_created_total",
    "Total number of drafts created",
    ["kind"]  # kind: CART|MEMBERSHIP
)

items_staged_total = Counter(
    "staging_items_staged_total",
    "Total stage/unstage operations applied to drafts",
    ["operation"]  # operation: add|remove|section_set|section_remove
)

drafts_expired_total = Counter(
    "staging_drafts_expired_total",
    "Drafts abandoned through TTL expiry"
)

# Commit metrics
commits_total = Counter(
    "staging_commits_total",
    "Commit attempts by final status",
    ["kind", "status"]  # status: COMMITTED|FAILED|CONFLICT|REPLAYED|REJECTED|INTERRUPTED
)

commit_duration_seconds = Histogram(
    "staging_commit_duration_seconds",
    "Wall time of commit attempts that reached COMMITTING",
    ["kind"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0]
)

backend_retries_total = Counter(
    "staging_backend_retries_total",
    "Retries of durable backend calls after transient failures",
    ["operation"]  # operation: create|delete|update
)

compensations_total = Counter(
    "staging_compensations_total",
    "Compensating deletes issued during rollback",
    ["outcome"]  # outcome: deleted|failed
)

# Orphan metrics
orphan_records_total = Counter(
    "staging_orphan_records_total",
    "Records left behind by a failed compensating delete"
)

orphan_records_pending = Gauge(
    "staging_orphan_records_pending",
    "Quarantined orphan records awaiting reconciliation"
)
