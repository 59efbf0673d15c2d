"""FastAPI dependencies for the staging API.

Provides:
- get_current_actor: Actor from the bearer JWT (claims ``sub`` and ``privilege``)
- get_session_store / get_catalog / get_repository: wired collaborators
- get_stage_manager / get_commit_orchestrator: services built on them

Token issuance happens elsewhere; this service only verifies tokens signed
with SECRET_KEY.
"""

from functools import lru_cache
from typing import Any, Dict

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from config import get_settings
from catalog.ports import ProductLookupPort
from catalog.sql_lookup import SqlProductLookup
from commit.orchestrator import CommitOrchestrator
from database import get_session_factory
from events.publisher import EventPublisher
from redis_client import get_redis_client
from repositories import RepositoryRegistry
from repositories.ports import DurableRepositoryPort
from validation.engine import BusinessRuleValidator
from .actor import Actor, Privilege
from .session_store import RedisSessionStore
from .stage_manager import StageManager

# HTTP Bearer token security scheme
security = HTTPBearer()


def decode_token(token: str) -> Dict[str, Any]:
    """Decode and validate a JWT token.

    Raises:
        jwt.ExpiredSignatureError: If token has expired
        jwt.InvalidTokenError: If token is invalid or tampered
    """
    settings = get_settings()
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])


def get_current_actor(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Actor:
    """Extract and validate the bearer token, returning the calling actor.

    Raises:
        HTTPException 401: If token is missing, invalid, expired, or lacks claims
    """
    try:
        payload = decode_token(credentials.credentials)
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )

    actor_id = payload.get("sub")
    if not actor_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: missing subject claim",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        privilege = Privilege(payload.get("privilege", Privilege.OWNER.value))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: unknown privilege",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return Actor(id=str(actor_id), privilege=privilege)


@lru_cache()
def get_publisher() -> EventPublisher:
    return EventPublisher()


def get_session_store() -> RedisSessionStore:
    settings = get_settings()
    return RedisSessionStore(
        client=get_redis_client(),
        ttl_seconds=settings.DRAFT_SESSION_TTL_SECONDS,
        lock_ttl_seconds=settings.COMMIT_LOCK_TTL_SECONDS,
        result_ttl_seconds=settings.COMMIT_RESULT_TTL_SECONDS,
        publisher=get_publisher(),
    )


@lru_cache()
def get_catalog() -> ProductLookupPort:
    return SqlProductLookup(get_session_factory())


@lru_cache()
def get_repository() -> DurableRepositoryPort:
    settings = get_settings()
    return RepositoryRegistry.get(settings.DURABLE_BACKEND, settings)


def get_stage_manager(
    store: RedisSessionStore = Depends(get_session_store),
    catalog: ProductLookupPort = Depends(get_catalog),
    repository: DurableRepositoryPort = Depends(get_repository),
) -> StageManager:
    return StageManager(
        store=store,
        catalog=catalog,
        validator=BusinessRuleValidator(repository=repository),
        publisher=get_publisher(),
    )


def get_commit_orchestrator(
    store: RedisSessionStore = Depends(get_session_store),
    catalog: ProductLookupPort = Depends(get_catalog),
    repository: DurableRepositoryPort = Depends(get_repository),
) -> CommitOrchestrator:
    return CommitOrchestrator(
        store=store,
        repository=repository,
        catalog=catalog,
        publisher=get_publisher(),
        settings=get_settings(),
    )
