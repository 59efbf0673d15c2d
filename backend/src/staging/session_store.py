"""Redis-backed session store for drafts.

Storage layout:
    staging:draft:{id}   hash; field "meta" holds the draft header, one
                         "item:{item_id}" / "section:{name}" field per staged
                         entry and a "seq" counter for staging order
    staging:lock:{id}    commit lock (SET NX EX, value = holder token)
    staging:result:{id}  cached CommitResult of a committed draft
    staging:orphans      hash of quarantined orphan records by record id
    staging:committing   set of draft ids currently in COMMITTING

Items live in separate hash fields so concurrent stage calls for different
items never overwrite each other. Header changes go through WATCH/MULTI.
"""

import json
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import redis

from .draft import Draft, DraftKind, LineSnapshot, SectionSnapshot
from .errors import ConflictError, NotFoundError
from .status import DraftState, MUTABLE_STATES, can_transition, validate_transition
from observability.metrics import drafts_expired_total, orphan_records_pending

logger = logging.getLogger(__name__)

DRAFT_KEY = "staging:draft:{}"
LOCK_KEY = "staging:lock:{}"
RESULT_KEY = "staging:result:{}"
ORPHANS_KEY = "staging:orphans"
COMMITTING_KEY = "staging:committing"

META_FIELD = "meta"
SEQ_FIELD = "seq"
ITEM_PREFIX = "item:"
SECTION_PREFIX = "section:"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RedisSessionStore:
    """Draft persistence with sliding TTL, commit lock and result cache.

    Args:
        client: redis-py client created with decode_responses=True
        ttl_seconds: Sliding lifetime of a draft, refreshed on every mutation
        lock_ttl_seconds: Lifetime of the commit lock
        result_ttl_seconds: How long a committed result is replayable
        publisher: Optional event publisher, notified when a draft expires
        clock: Returns the current aware datetime (injectable for tests)
    """

    def __init__(
        self,
        client: redis.Redis,
        ttl_seconds: int,
        lock_ttl_seconds: int = 30,
        result_ttl_seconds: int = 24 * 3600,
        publisher=None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.lock_ttl_seconds = lock_ttl_seconds
        self.result_ttl_seconds = result_ttl_seconds
        self.publisher = publisher
        self.clock = clock or _utcnow

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(self, owner_id: str, kind: DraftKind = DraftKind.CART) -> str:
        """Create an empty INITIATED draft and return its id."""
        now = self.clock()
        draft = Draft(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            kind=kind,
            state=DraftState.INITIATED,
            created_at=now,
            expires_at=now + timedelta(seconds=self.ttl_seconds),
        )
        key = DRAFT_KEY.format(draft.id)
        pipe = self.client.pipeline()
        pipe.hset(key, mapping={META_FIELD: json.dumps(draft.meta()), SEQ_FIELD: 0})
        pipe.expire(key, self.ttl_seconds)
        pipe.execute()

        logger.info(
            f"Created {kind.value} draft",
            extra={"session_id": draft.id, "actor_id": owner_id}
        )
        return draft.id

    def get_session(self, session_id: str) -> Draft:
        """Load a draft.

        Raises:
            NotFoundError: If the draft does not exist or has expired
        """
        raw = self.client.hgetall(DRAFT_KEY.format(session_id))
        draft = self._parse(session_id, raw)
        if self._is_lapsed(draft):
            self._expire(draft)
        return draft

    def clear_session(self, session_id: str) -> None:
        """Remove a draft and everything staged in it."""
        self.client.delete(DRAFT_KEY.format(session_id))

    def set_state(self, session_id: str, new_state: DraftState) -> Draft:
        """Move a draft to a new state, validated against the transition table.

        Raises:
            NotFoundError: If the draft is gone
            StateTransitionError: If the transition is not allowed
        """
        key = DRAFT_KEY.format(session_id)

        def apply(pipe) -> Draft:
            draft = self._parse(session_id, pipe.hgetall(key))
            validate_transition(draft.state, new_state)
            draft.state = new_state
            draft.expires_at = self.clock() + timedelta(seconds=self.ttl_seconds)
            pipe.multi()
            pipe.hset(key, META_FIELD, json.dumps(draft.meta()))
            if new_state == DraftState.COMMITTING:
                # Kept until the commit settles or is recovered
                pipe.persist(key)
                pipe.sadd(COMMITTING_KEY, session_id)
            else:
                pipe.expire(key, self.ttl_seconds)
                pipe.srem(COMMITTING_KEY, session_id)
            return draft

        draft = self.client.transaction(apply, key, value_from_callable=True)
        logger.info(
            f"Draft state -> {new_state.value}",
            extra={"session_id": session_id, "state": new_state.value}
        )
        return draft

    # ------------------------------------------------------------------
    # Items and sections
    # ------------------------------------------------------------------

    def stage_item(self, session_id: str, item: LineSnapshot) -> Draft:
        """Stage or replace one line.

        Re-staging an item keeps its original position. The first staged
        entry moves the draft from INITIATED to STAGING.

        Raises:
            NotFoundError: If the draft is gone or expired
            ConflictError: If the draft no longer accepts changes
        """
        self.get_session(session_id)
        field = ITEM_PREFIX + item.item_id

        def apply(pipe, draft: Draft, position: int):
            item.position = position
            item.staged_at = item.staged_at or self.clock()
            draft.items[item.item_id] = item
            pipe.hset(DRAFT_KEY.format(session_id), field, json.dumps(item.to_dict()))

        return self._mutate(session_id, apply, lookup=lambda draft: draft.items.get(item.item_id))

    def unstage_item(self, session_id: str, item_id: str) -> Draft:
        """Remove a line. Removing an absent line is a no-op."""
        self.get_session(session_id)

        def apply(pipe, draft: Draft, position: int):
            draft.items.pop(item_id, None)
            pipe.hdel(DRAFT_KEY.format(session_id), ITEM_PREFIX + item_id)

        return self._mutate(session_id, apply)

    def stage_section(self, session_id: str, name: str, fields: Dict[str, Any]) -> Draft:
        """Stage or replace the fields of one registration section."""
        self.get_session(session_id)

        def apply(pipe, draft: Draft, position: int):
            section = SectionSnapshot(name=name, fields=dict(fields), position=position, staged_at=self.clock())
            draft.sections[name] = section
            pipe.hset(DRAFT_KEY.format(session_id), SECTION_PREFIX + name, json.dumps(section.to_dict()))

        return self._mutate(session_id, apply, lookup=lambda draft: draft.sections.get(name))

    def unstage_section(self, session_id: str, name: str) -> Draft:
        """Remove a registration section. Removing an absent section is a no-op."""
        self.get_session(session_id)

        def apply(pipe, draft: Draft, position: int):
            draft.sections.pop(name, None)
            pipe.hdel(DRAFT_KEY.format(session_id), SECTION_PREFIX + name)

        return self._mutate(session_id, apply)

    def _mutate(self, session_id: str, apply, lookup=None) -> Draft:
        """Run one draft mutation under WATCH, refreshing the sliding TTL.

        ``lookup`` is given for additions only; it finds an existing entry
        whose position is kept. Removals never promote the draft state.
        """
        key = DRAFT_KEY.format(session_id)

        def transaction(pipe) -> Draft:
            raw = pipe.hgetall(key)
            draft = self._parse(session_id, raw)
            if draft.state not in MUTABLE_STATES:
                raise ConflictError(
                    f"Draft is {draft.state.value} and no longer accepts changes",
                    reason="state",
                    session_id=session_id,
                )

            next_seq = int(raw.get(SEQ_FIELD, 0))
            previous = lookup(draft) if lookup else None
            if previous is not None:
                position = previous.position
            elif lookup is not None:
                next_seq += 1
                position = next_seq
            else:
                position = 0

            if lookup is not None and draft.state == DraftState.INITIATED:
                validate_transition(draft.state, DraftState.STAGING)
                draft.state = DraftState.STAGING
            draft.expires_at = self.clock() + timedelta(seconds=self.ttl_seconds)

            pipe.multi()
            apply(pipe, draft, position)
            pipe.hset(key, mapping={META_FIELD: json.dumps(draft.meta()), SEQ_FIELD: next_seq})
            pipe.expire(key, self.ttl_seconds)
            return draft

        return self.client.transaction(transaction, key, value_from_callable=True)

    # ------------------------------------------------------------------
    # Commit lock
    # ------------------------------------------------------------------

    def try_acquire_commit_lock(self, session_id: str, ttl_seconds: Optional[int] = None) -> Optional[str]:
        """Atomically take the commit lock.

        Args:
            ttl_seconds: Lock lifetime; defaults to ``lock_ttl_seconds``

        Returns:
            Holder token on success, None if another commit holds it
        """
        token = str(uuid.uuid4())
        acquired = self.client.set(
            LOCK_KEY.format(session_id), token, nx=True, ex=ttl_seconds or self.lock_ttl_seconds
        )
        return token if acquired else None

    def refresh_commit_lock(self, session_id: str, token: str, ttl_seconds: Optional[int] = None) -> bool:
        """Extend the lock lifetime if ``token`` still holds it.

        Returns:
            False if the lock lapsed or was taken over
        """
        key = LOCK_KEY.format(session_id)

        def refresh(pipe) -> bool:
            if pipe.get(key) != token:
                return False
            pipe.multi()
            pipe.expire(key, ttl_seconds or self.lock_ttl_seconds)
            return True

        return self.client.transaction(refresh, key, value_from_callable=True)

    def release_commit_lock(self, session_id: str, token: str) -> bool:
        """Release the lock only if it is still held by ``token``."""
        key = LOCK_KEY.format(session_id)

        def release(pipe) -> bool:
            if pipe.get(key) != token:
                return False
            pipe.multi()
            pipe.delete(key)
            return True

        released = self.client.transaction(release, key, value_from_callable=True)
        if not released:
            logger.warning(
                "Commit lock expired or taken over before release",
                extra={"session_id": session_id}
            )
        return released

    def list_committing(self) -> List[str]:
        """Ids of drafts left in COMMITTING, whether still running or abandoned."""
        return sorted(self.client.smembers(COMMITTING_KEY))

    def forget_committing(self, session_id: str) -> None:
        self.client.srem(COMMITTING_KEY, session_id)

    # ------------------------------------------------------------------
    # Commit result cache
    # ------------------------------------------------------------------

    def save_commit_result(self, session_id: str, result: Dict[str, Any]) -> None:
        self.client.setex(RESULT_KEY.format(session_id), self.result_ttl_seconds, json.dumps(result))

    def get_commit_result(self, session_id: str) -> Optional[Dict[str, Any]]:
        raw = self.client.get(RESULT_KEY.format(session_id))
        return json.loads(raw) if raw else None

    # ------------------------------------------------------------------
    # Orphan quarantine
    # ------------------------------------------------------------------

    def quarantine_orphan(
        self,
        record_id: str,
        record_type: str,
        session_id: str,
        reason: str,
    ) -> Dict[str, Any]:
        """Park a record whose compensating delete failed."""
        entry = {
            "record_id": record_id,
            "record_type": record_type,
            "session_id": session_id,
            "reason": reason,
            "attempts": 0,
            "needs_manual": False,
            "quarantined_at": self.clock().isoformat(),
        }
        self.client.hset(ORPHANS_KEY, record_id, json.dumps(entry))
        orphan_records_pending.set(self.client.hlen(ORPHANS_KEY))
        return entry

    def list_orphans(self) -> List[Dict[str, Any]]:
        entries = [json.loads(raw) for raw in self.client.hvals(ORPHANS_KEY)]
        return sorted(entries, key=lambda e: e["quarantined_at"])

    def get_orphan(self, record_id: str) -> Optional[Dict[str, Any]]:
        raw = self.client.hget(ORPHANS_KEY, record_id)
        return json.loads(raw) if raw else None

    def update_orphan(self, record_id: str, **changes) -> Optional[Dict[str, Any]]:
        entry = self.get_orphan(record_id)
        if entry is None:
            return None
        entry.update(changes)
        self.client.hset(ORPHANS_KEY, record_id, json.dumps(entry))
        return entry

    def remove_orphan(self, record_id: str) -> None:
        self.client.hdel(ORPHANS_KEY, record_id)
        orphan_records_pending.set(self.client.hlen(ORPHANS_KEY))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _parse(self, session_id: str, raw: Dict[str, str]) -> Draft:
        if not raw or META_FIELD not in raw:
            raise NotFoundError(f"Draft {session_id} not found", session_id=session_id)

        items = []
        sections = []
        for name, value in raw.items():
            if name.startswith(ITEM_PREFIX):
                items.append(LineSnapshot.from_dict(json.loads(value)))
            elif name.startswith(SECTION_PREFIX):
                sections.append(SectionSnapshot.from_dict(json.loads(value)))

        return Draft.from_meta(json.loads(raw[META_FIELD]), items, sections)

    def _is_lapsed(self, draft: Draft) -> bool:
        # A draft mid-commit is never abandoned underneath the orchestrator
        return draft.is_expired(self.clock()) and can_transition(draft.state, DraftState.EXPIRED)

    def _expire(self, draft: Draft) -> None:
        """Abandon a lapsed draft and report it as missing."""
        previous = draft.state
        draft.state = DraftState.EXPIRED
        self.clear_session(draft.id)
        drafts_expired_total.inc()
        logger.info(
            f"Draft expired in state {previous.value}",
            extra={"session_id": draft.id, "actor_id": draft.owner_id}
        )
        if self.publisher is not None:
            self.publisher.publish("draft.expired", {
                "session_id": draft.id,
                "owner_id": draft.owner_id,
                "previous_state": previous.value,
            })
        raise NotFoundError(f"Draft {draft.id} has expired", session_id=draft.id)
