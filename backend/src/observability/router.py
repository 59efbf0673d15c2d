"""Observability API endpoints.

/metrics for Prometheus, /health for dashboards and /ready for the
orchestrator's readiness probe.
"""

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from database import get_db
from staging.dependencies import get_session_store
from staging.session_store import RedisSessionStore
from .health import (
    check_database_health,
    check_orphan_backlog,
    check_redis_health,
    get_overall_health,
    HealthStatus,
)

router = APIRouter(tags=["Observability"])


@router.get("/metrics", include_in_schema=False)
def metrics():
    """Prometheus text exposition."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@router.get("/health", summary="Component health")
def health_check(
    db: Session = Depends(get_db),
    store: RedisSessionStore = Depends(get_session_store),
):
    """Report database, draft store and orphan backlog health.

    Returns 503 when a hard dependency is down. A degraded orphan backlog
    still returns 200.
    """
    components = {
        "database": check_database_health(db),
        "redis": check_redis_health(store.client),
    }
    if components["redis"].status == HealthStatus.HEALTHY:
        components["orphans"] = check_orphan_backlog(store.list_orphans())

    overall = get_overall_health(components)
    return JSONResponse(
        content={
            "status": overall.value,
            "components": {name: c.to_dict() for name, c in components.items()},
        },
        status_code=503 if overall == HealthStatus.UNHEALTHY else 200,
    )


@router.get("/ready", summary="Readiness probe")
def readiness_check(
    db: Session = Depends(get_db),
    store: RedisSessionStore = Depends(get_session_store),
):
    """Ready once both the system of record and the draft store answer."""
    checks = {
        "database": check_database_health(db),
        "redis": check_redis_health(store.client),
    }
    failing = {name: c.message for name, c in checks.items() if c.status != HealthStatus.HEALTHY}

    if not failing:
        return {"status": "ready"}
    return JSONResponse(
        content={
            "status": "not_ready",
            "message": "; ".join(f"{name}: {msg}" for name, msg in failing.items()),
        },
        status_code=503,
    )
