"""Health checks for the draft store, the SQL database and the orphan backlog.

Each probe returns a ComponentHealth. The draft store (Redis) and the
database are hard dependencies; orphans flagged for manual cleanup only
degrade the service.
"""

import time
from enum import Enum
from typing import Callable, Dict, List, Optional
from dataclasses import dataclass

from sqlalchemy import text
from sqlalchemy.orm import Session
import redis

from .logging_config import get_logger

logger = get_logger(__name__)


class HealthStatus(str, Enum):
    """Health check status enum."""
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DEGRADED = "degraded"


@dataclass
class ComponentHealth:
    """Health status for a single component."""
    status: HealthStatus
    message: Optional[str] = None
    latency_ms: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "message": self.message,
            "latency_ms": self.latency_ms,
        }


def _probe(component: str, ping: Callable[[], None], ok_message: str) -> ComponentHealth:
    start = time.time()
    try:
        ping()
    except Exception as e:
        logger.error(f"{component} health check failed: {e}", exc_info=True)
        return ComponentHealth(status=HealthStatus.UNHEALTHY, message=f"{component} error: {e}")

    return ComponentHealth(
        status=HealthStatus.HEALTHY,
        message=ok_message,
        latency_ms=round((time.time() - start) * 1000, 2),
    )


def check_database_health(db: Session) -> ComponentHealth:
    """System of record and catalog: ``SELECT 1``."""
    return _probe("Database", lambda: db.execute(text("SELECT 1")), "Database connection OK")


def check_redis_health(client: redis.Redis) -> ComponentHealth:
    """Draft store: PING. Without it nothing can be staged or committed."""
    return _probe("Redis", client.ping, "Redis connection OK")


def check_orphan_backlog(orphans: List[dict]) -> ComponentHealth:
    """Degraded while any quarantined record needs manual cleanup."""
    manual = [o["record_id"] for o in orphans if o.get("needs_manual")]
    if manual:
        return ComponentHealth(
            status=HealthStatus.DEGRADED,
            message=f"{len(manual)} orphan record(s) need manual cleanup",
        )
    return ComponentHealth(
        status=HealthStatus.HEALTHY,
        message=f"{len(orphans)} orphan record(s) pending reconciliation",
    )


def get_overall_health(components: Dict[str, ComponentHealth]) -> HealthStatus:
    """Unhealthy if any component is down, degraded if any is degraded."""
    statuses = {c.status for c in components.values()}
    if HealthStatus.UNHEALTHY in statuses:
        return HealthStatus.UNHEALTHY
    if HealthStatus.DEGRADED in statuses:
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY
