"""Observability module for the membership staging backend.

Provides structured logging, operation id correlation, metrics, and health checks.
"""

from .logging_config import configure_logging, get_logger
from .metrics import (
    drafts_created_total,
    items_staged_total,
    drafts_expired_total,
    commits_total,
    commit_duration_seconds,
    backend_retries_total,
    compensations_total,
    orphan_records_total,
    orphan_records_pending,
)
from .request_id import (
    operation_id_var,
    get_operation_id,
    set_operation_id,
    generate_operation_id,
    operation_scope,
)
from .health import HealthStatus, ComponentHealth
from .middleware import OperationIDMiddleware

__all__ = [
    # Logging
    "configure_logging",
    "get_logger",
    # Metrics
    "drafts_created_total",
    "items_staged_total",
    "drafts_expired_total",
    "commits_total",
    "commit_duration_seconds",
    "backend_retries_total",
    "compensations_total",
    "orphan_records_total",
    "orphan_records_pending",
    # Operation ID
    "operation_id_var",
    "get_operation_id",
    "set_operation_id",
    "generate_operation_id",
    "operation_scope",
    # Health
    "HealthStatus",
    "ComponentHealth",
    # Middleware
    "OperationIDMiddleware",
]
