"""Commit orchestrator.

Turns a staged draft into durable records with saga-style recovery. The
durable backend offers no transactions, so atomicity is approximated:
records are written one at a time and, on the first failure, every record
written by this attempt is removed again in reverse order.

Commit algorithm:
    1. replay a cached result for an already committed draft
    2. load and authorize the draft
    3. take the commit lock (concurrent commits are rejected, not queued)
    4. validate every business rule
    5. READY -> COMMITTING
    6. re-check frozen prices against the catalog
    7. write records sequentially, retrying transient failures
    8. on failure: compensate, quarantine orphans, -> FAILED or CONFLICT
    9. on success: -> COMMITTED, cache result, clear the draft
   10. release the lock

The lock is refreshed before every backend call and outlives one write's full
retry budget, so a draft found in COMMITTING by a new lock holder belongs to
an attempt that died. Its records are looked up by idempotency key,
compensated, and the draft moves to FAILED before the new attempt starts.
recover_interrupted() does the same for abandoned drafts nobody retries.
"""

import logging
import math
import time
from typing import Callable, Dict, List, Optional, Tuple

from config import Settings, get_settings
from catalog.ports import ProductLookupPort
from events.publisher import EventPublisher
from observability.metrics import (
    commits_total,
    commit_duration_seconds,
    compensations_total,
    orphan_records_total,
)
from observability.request_id import get_operation_id
from repositories.ports import DurableRecord, DurableRepositoryPort
from repositories.retry import call_with_retry
from staging.actor import Actor, authorize
from staging.draft import Draft
from staging.errors import (
    ConflictError,
    DraftValidationError,
    NotFoundError,
    OrphanRecordWarning,
    StagingError,
    ValidationError,
)
from staging.session_store import RedisSessionStore
from staging.status import DraftState
from validation.engine import BusinessRuleValidator
from .results import CommitResult

logger = logging.getLogger(__name__)

# States a commit may start from. INITIATED drafts are empty and fail validation.
COMMITTABLE_STATES = (DraftState.INITIATED, DraftState.STAGING, DraftState.READY, DraftState.FAILED)


class CommitOrchestrator:
    """Commits drafts from the session store into a durable repository.

    Args:
        store: Draft session store
        repository: Durable backend the records are written to
        catalog: Current price truth for the stale-snapshot check
        validator: Business rules; defaults to the full rule set over ``repository``
        publisher: Event publisher; defaults to the Celery-backed publisher
        settings: Retry and access defaults; defaults to application settings
        sleep: Backoff sleep function (injectable for tests)
    """

    def __init__(
        self,
        store: RedisSessionStore,
        repository: DurableRepositoryPort,
        catalog: ProductLookupPort,
        validator: Optional[BusinessRuleValidator] = None,
        publisher: Optional[EventPublisher] = None,
        settings: Optional[Settings] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.store = store
        self.repository = repository
        self.catalog = catalog
        self.validator = validator or BusinessRuleValidator(repository=repository)
        self.publisher = publisher or EventPublisher()
        self.settings = settings or get_settings()
        self.sleep = sleep or time.sleep


    @property
    def lock_ttl_seconds(self) -> int:
        """Commit lock lifetime: the configured minimum or one write's full retry budget."""
        s = self.settings
        backoff = sum(s.BACKEND_RETRY_BASE_DELAY * 2 ** i for i in range(s.BACKEND_MAX_ATTEMPTS - 1))
        budget = s.BACKEND_MAX_ATTEMPTS * s.BACKEND_TIMEOUT_SECONDS + backoff
        return max(s.COMMIT_LOCK_TTL_SECONDS, math.ceil(budget))

    def commit(self, actor: Actor, session_id: str) -> CommitResult:
        """Commit a draft.

        Returns:
            CommitResult for every attempt that reached COMMITTING, and the
            cached result when the draft was already committed

        Raises:
            NotFoundError: Draft absent, expired, or not visible to ``actor``
            ConflictError: Another commit holds the lock (reason="lock") or
                the draft is in a state that cannot be committed (reason="state")
            DraftValidationError: Business rules failed; draft state unchanged
        """
        cached = self.store.get_commit_result(session_id)
        if cached:
            result = CommitResult.from_dict(cached)
            authorize(actor, result.owner_id, session_id)
            commits_total.labels(kind="ANY", status="REPLAYED").inc()
            logger.info(
                "Draft already committed, returning cached result",
                extra={"session_id": session_id, "actor_id": actor.id}
            )
            return result

        draft = self.store.get_session(session_id)
        authorize(actor, draft.owner_id, session_id)

        token = self.store.try_acquire_commit_lock(session_id, ttl_seconds=self.lock_ttl_seconds)
        if token is None:
            raise ConflictError(
                "Another commit of this draft is in progress",
                reason="lock",
                session_id=session_id,
            )

        try:
            return self._commit_locked(actor, session_id, token)
        finally:
            self.store.release_commit_lock(session_id, token)

    def recover_interrupted(self) -> Dict[str, int]:
        """Roll back every abandoned COMMITTING draft.

        Drafts whose lock is still held are in progress and left alone.

        Returns:
            Dict with counts of recovered and in-progress drafts
        """
        stats = {"recovered": 0, "in_progress": 0}

        for session_id in self.store.list_committing():
            token = self.store.try_acquire_commit_lock(session_id, ttl_seconds=self.lock_ttl_seconds)
            if token is None:
                stats["in_progress"] += 1
                continue

            try:
                try:
                    draft = self.store.get_session(session_id)
                except NotFoundError:
                    self.store.forget_committing(session_id)
                    continue

                if draft.state == DraftState.COMMITTING:
                    self._recover(draft, token, actor_id=None)
                    stats["recovered"] += 1
                else:
                    self.store.forget_committing(session_id)
            finally:
                self.store.release_commit_lock(session_id, token)

        if stats["recovered"]:
            logger.warning(f"Recovered {stats['recovered']} interrupted commit(s)")
        return stats

    def _commit_locked(self, actor: Actor, session_id: str, token: str) -> CommitResult:
        # Reload under the lock; the draft may have moved since the first read
        draft = self.store.get_session(session_id)
        kind = draft.kind.value

        if draft.state == DraftState.COMMITTING:
            # The lock is ours, so whoever moved the draft here is gone
            self._recover(draft, token, actor_id=actor.id)
            draft = self.store.get_session(session_id)

        if draft.state not in COMMITTABLE_STATES:
            commits_total.labels(kind=kind, status="REJECTED").inc()
            raise ConflictError(
                f"Draft in state {draft.state.value} cannot be committed",
                reason="state",
                session_id=session_id,
            )

        report = self.validator.validate(draft)
        errors = list(report.errors)
        if not errors and draft.state == DraftState.INITIATED:
            errors.append(ValidationError("Draft is empty", field="items", session_id=session_id))
        if errors:
            commits_total.labels(kind=kind, status="REJECTED").inc()
            raise DraftValidationError(errors, session_id=session_id)

        if draft.state != DraftState.READY:
            self.store.set_state(session_id, DraftState.READY)
        draft = self.store.set_state(session_id, DraftState.COMMITTING)

        self.publisher.publish("commit.started", {
            "session_id": session_id,
            "actor_id": actor.id,
            "kind": kind,
            "total": str(draft.total),
        })
        started = time.monotonic()

        written: List[Tuple[str, str]] = []
        try:
            self._check_snapshots(draft)
            for record in self._build_records(draft):
                self._keep_lock(session_id, token)
                record_id = call_with_retry(
                    lambda: self.repository.create(record),
                    max_attempts=self.settings.BACKEND_MAX_ATTEMPTS,
                    base_delay=self.settings.BACKEND_RETRY_BASE_DELAY,
                    operation_name="create",
                    sleep=self.sleep,
                )
                written.append((record_id, record.record_type))
        except StagingError as failure:
            result = self._roll_back(actor, draft, written, failure, token)
            commit_duration_seconds.labels(kind=kind).observe(time.monotonic() - started)
            return result
        except Exception:
            logger.error(
                "Unexpected error during commit, rolling back",
                extra={"session_id": session_id},
                exc_info=True
            )
            self._compensate(draft, written, token)
            self.store.set_state(session_id, DraftState.FAILED)
            commits_total.labels(kind=kind, status=DraftState.FAILED.value).inc()
            raise

        result = CommitResult(
            status=DraftState.COMMITTED,
            session_id=session_id,
            owner_id=draft.owner_id,
            committed_ids=[record_id for record_id, _ in written],
            total=draft.total,
            operation_id=get_operation_id(),
        )
        self._release_quarantined(session_id, result.committed_ids)
        self.store.set_state(session_id, DraftState.COMMITTED)
        self.store.save_commit_result(session_id, result.to_dict())
        self.store.clear_session(session_id)

        commits_total.labels(kind=kind, status=DraftState.COMMITTED.value).inc()
        commit_duration_seconds.labels(kind=kind).observe(time.monotonic() - started)
        logger.info(
            f"Committed {len(written)} record(s)",
            extra={"session_id": session_id, "actor_id": actor.id}
        )
        self.publisher.publish("commit.succeeded", {
            "session_id": session_id,
            "actor_id": actor.id,
            "committed_ids": result.committed_ids,
            "total": str(result.total),
        })
        return result

    def _keep_lock(self, session_id: str, token: str) -> None:
        """Extend the commit lock before a backend call.

        Raises:
            ConflictError: The lock lapsed and another holder may be working on the draft
        """
        if not self.store.refresh_commit_lock(session_id, token, ttl_seconds=self.lock_ttl_seconds):
            raise ConflictError(
                "Commit lock lost during commit",
                reason="lock",
                session_id=session_id,
            )

    def _release_quarantined(self, session_id: str, committed_ids: List[str]) -> None:
        """Drop quarantine entries for records this commit reused.

        A record left behind by an earlier failed attempt of the same draft is
        picked up again through its idempotency key and must not be deleted by
        the reconciler afterwards.
        """
        for entry in self.store.list_orphans():
            if entry["session_id"] == session_id and entry["record_id"] in committed_ids:
                self.store.remove_orphan(entry["record_id"])
                logger.info(
                    "Quarantined record reused by commit",
                    extra={"session_id": session_id, "record_id": entry["record_id"]}
                )

    def _recover(self, draft: Draft, token: str, actor_id: Optional[str]) -> List[str]:
        """Compensate the records of an interrupted attempt and move the draft to FAILED.

        Returns:
            Ids of records that could not be deleted (now quarantined)
        """
        found: List[Tuple[str, str]] = []
        for record in self._build_records(draft):
            self._keep_lock(draft.id, token)
            existing = call_with_retry(
                lambda: self.repository.find_by_idempotency_key(record.record_type, record.idempotency_key),
                max_attempts=self.settings.BACKEND_MAX_ATTEMPTS,
                base_delay=self.settings.BACKEND_RETRY_BASE_DELAY,
                operation_name="find",
                sleep=self.sleep,
            )
            if existing is not None:
                found.append((existing.id, record.record_type))

        orphans = self._compensate(draft, found, token)
        self.store.set_state(draft.id, DraftState.FAILED)

        commits_total.labels(kind=draft.kind.value, status="INTERRUPTED").inc()
        logger.warning(
            f"Recovered interrupted commit: {len(found) - len(orphans)} of {len(found)} record(s) removed",
            extra={"session_id": draft.id, "actor_id": actor_id}
        )
        self.publisher.publish("commit.interrupted", {
            "session_id": draft.id,
            "actor_id": actor_id,
            "compensated": len(found) - len(orphans),
            "orphans": orphans,
        })
        return orphans

    def _check_snapshots(self, draft: Draft) -> None:
        """Fail with a stale_price conflict if any frozen line no longer matches.

        Raises:
            ConflictError: Before any write, listing every stale line
        """
        stale = []
        for line in draft.ordered_items():
            quote = self.catalog.get_quote(line.ref_id)
            if quote is None or not quote.active:
                stale.append(f"{line.item_id} (no longer available)")
            elif quote.unit_price != line.unit_price or quote.tax_rate != line.tax_rate:
                stale.append(
                    f"{line.item_id} (staged {line.unit_price} @ {line.tax_rate}%, "
                    f"now {quote.unit_price} @ {quote.tax_rate}%)"
                )

        if stale:
            raise ConflictError(
                "Prices changed since staging: " + ", ".join(stale),
                reason="stale_price",
                session_id=draft.id,
            )

    def _build_records(self, draft: Draft) -> List[DurableRecord]:
        """Registration sections in entity creation order, then lines in staged order."""
        privilege = self.settings.DEFAULT_RECORD_PRIVILEGE
        access_modifier = self.settings.DEFAULT_ACCESS_MODIFIER
        records = []

        for section in draft.ordered_sections():
            records.append(DurableRecord(
                record_type=f"membership_{section.name}",
                idempotency_key=f"{draft.id}:{section.name}",
                session_id=draft.id,
                owner_id=draft.owner_id,
                payload=dict(section.fields),
                privilege=privilege,
                access_modifier=access_modifier,
            ))

        for line in draft.ordered_items():
            records.append(DurableRecord(
                record_type="order_product",
                idempotency_key=f"{draft.id}:{line.item_id}",
                session_id=draft.id,
                owner_id=draft.owner_id,
                payload={
                    "product_id": line.ref_id,
                    "product_name": line.name,
                    "quantity": line.quantity,
                    "unit_price": str(line.unit_price),
                    "tax_rate": str(line.tax_rate),
                    "subtotal": str(line.subtotal),
                    "tax_amount": str(line.tax_amount),
                    "total": str(line.total),
                    "position": line.position,
                },
                privilege=privilege,
                access_modifier=access_modifier,
            ))

        return records

    def _roll_back(
        self,
        actor: Actor,
        draft: Draft,
        written: List[Tuple[str, str]],
        failure: StagingError,
        token: str,
    ) -> CommitResult:
        orphans = self._compensate(draft, written, token)
        # Losing the lock leaves the draft retryable
        conflicted = isinstance(failure, ConflictError) and failure.reason != "lock"
        final_state = DraftState.CONFLICT if conflicted else DraftState.FAILED
        self.store.set_state(draft.id, final_state)

        failure.session_id = failure.session_id or draft.id
        commits_total.labels(kind=draft.kind.value, status=final_state.value).inc()
        logger.warning(
            f"Commit ended {final_state.value} after {len(written)} write(s): {failure.message}",
            extra={"session_id": draft.id, "actor_id": actor.id}
        )
        self.publisher.publish(f"commit.{final_state.value.lower()}", {
            "session_id": draft.id,
            "actor_id": actor.id,
            "error": failure.to_dict(),
            "compensated": len(written) - len(orphans),
            "orphans": orphans,
        })

        return CommitResult(
            status=final_state,
            session_id=draft.id,
            owner_id=draft.owner_id,
            committed_ids=[],
            total=draft.total,
            error=failure.to_dict(),
            orphans=orphans,
            operation_id=get_operation_id(),
        )

    def _compensate(self, draft: Draft, written: List[Tuple[str, str]], token: str) -> List[str]:
        """Delete every written record, newest first.

        Deletes go ahead even if the lock cannot be extended; the records
        belong to this attempt either way.

        Returns:
            Ids of records that could not be deleted (now quarantined)
        """
        orphans = []
        for record_id, record_type in reversed(written):
            self.store.refresh_commit_lock(draft.id, token, ttl_seconds=self.lock_ttl_seconds)
            try:
                call_with_retry(
                    lambda: self.repository.delete(record_id),
                    max_attempts=self.settings.BACKEND_MAX_ATTEMPTS,
                    base_delay=self.settings.BACKEND_RETRY_BASE_DELAY,
                    operation_name="delete",
                    sleep=self.sleep,
                )
                compensations_total.labels(outcome="deleted").inc()
            except StagingError as e:
                warning = OrphanRecordWarning(record_id, record_type, draft.id, e.message)
                logger.error(
                    str(warning),
                    extra={"session_id": draft.id, "record_id": record_id}
                )
                compensations_total.labels(outcome="failed").inc()
                orphan_records_total.inc()
                self.store.quarantine_orphan(record_id, record_type, draft.id, e.message)
                self.publisher.publish("orphan.quarantined", {
                    "session_id": draft.id,
                    "record_id": record_id,
                    "record_type": record_type,
                    "reason": e.message,
                })
                orphans.append(record_id)
        return orphans
