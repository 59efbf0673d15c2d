"""Unit tests for RedisSessionStore (fakeredis)"""

from decimal import Decimal

import pytest

from staging.draft import DraftKind, LineSnapshot
from staging.errors import ConflictError, NotFoundError
from staging.session_store import DRAFT_KEY, LOCK_KEY
from staging.status import DraftState, StateTransitionError


def snapshot(item_id, price="10.00", quantity=1, tax="0") -> LineSnapshot:
    return LineSnapshot(
        item_id=item_id,
        ref_id=item_id,
        quantity=quantity,
        unit_price=Decimal(price),
        tax_rate=Decimal(tax),
    )


class TestSessionLifecycle:

    def test_create_session_is_initiated_and_empty(self, store, clock):
        session_id = store.create_session("member-1")
        draft = store.get_session(session_id)

        assert draft.state == DraftState.INITIATED
        assert draft.kind == DraftKind.CART
        assert draft.owner_id == "member-1"
        assert draft.is_empty()
        assert draft.created_at == clock.now
        assert (draft.expires_at - draft.created_at).total_seconds() == 3600

    def test_redis_key_carries_ttl(self, store, redis_client):
        session_id = store.create_session("member-1")
        ttl = redis_client.ttl(DRAFT_KEY.format(session_id))
        assert 0 < ttl <= 3600

    def test_unknown_session_not_found(self, store):
        with pytest.raises(NotFoundError):
            store.get_session("does-not-exist")

    def test_clear_session(self, store):
        session_id = store.create_session("member-1")
        store.clear_session(session_id)
        with pytest.raises(NotFoundError):
            store.get_session(session_id)

    def test_membership_kind_persisted(self, store):
        session_id = store.create_session("member-1", DraftKind.MEMBERSHIP)
        assert store.get_session(session_id).kind == DraftKind.MEMBERSHIP


class TestStaging:

    def test_first_item_moves_draft_to_staging(self, store):
        session_id = store.create_session("member-1")
        draft = store.stage_item(session_id, snapshot("A"))

        assert draft.state == DraftState.STAGING
        assert list(draft.items) == ["A"]
        assert store.get_session(session_id).state == DraftState.STAGING

    def test_positions_follow_staging_order(self, store):
        session_id = store.create_session("member-1")
        store.stage_item(session_id, snapshot("B"))
        store.stage_item(session_id, snapshot("A"))

        draft = store.get_session(session_id)
        assert [line.item_id for line in draft.ordered_items()] == ["B", "A"]

    def test_restage_replaces_snapshot_and_keeps_position(self, store):
        session_id = store.create_session("member-1")
        store.stage_item(session_id, snapshot("A", quantity=1))
        store.stage_item(session_id, snapshot("B"))
        store.stage_item(session_id, snapshot("A", quantity=5))

        draft = store.get_session(session_id)
        assert len(draft.items) == 2
        assert draft.items["A"].quantity == 5
        assert [line.item_id for line in draft.ordered_items()] == ["A", "B"]

    def test_restage_is_idempotent(self, store):
        session_id = store.create_session("member-1")
        once = store.stage_item(session_id, snapshot("A", quantity=2))
        twice = store.stage_item(session_id, snapshot("A", quantity=2))

        assert once.total == twice.total == Decimal("20.00")
        assert list(twice.items) == ["A"]

    def test_unstage_absent_item_is_noop(self, store):
        session_id = store.create_session("member-1")
        store.stage_item(session_id, snapshot("A"))

        draft = store.unstage_item(session_id, "missing")
        assert list(draft.items) == ["A"]

    def test_unstage_does_not_promote_initiated(self, store):
        session_id = store.create_session("member-1")
        draft = store.unstage_item(session_id, "A")
        assert draft.state == DraftState.INITIATED

    def test_unstage_twice_same_as_once(self, store):
        session_id = store.create_session("member-1")
        store.stage_item(session_id, snapshot("A"))
        store.stage_item(session_id, snapshot("B"))

        store.unstage_item(session_id, "A")
        draft = store.unstage_item(session_id, "A")
        assert list(draft.items) == ["B"]

    def test_sections_staged_and_replaced(self, store):
        session_id = store.create_session("member-1", DraftKind.MEMBERSHIP)
        store.stage_section(session_id, "category", {"membership_year": "2026"})
        draft = store.stage_section(session_id, "category", {"membership_year": "2027"})

        assert draft.section_fields("category") == {"membership_year": "2027"}
        assert store.get_session(session_id).section_fields("category") == {"membership_year": "2027"}

        draft = store.unstage_section(session_id, "category")
        assert draft.sections == {}

    @pytest.mark.parametrize("state", [DraftState.READY, DraftState.COMMITTING])
    def test_locked_states_reject_changes(self, store, state):
        session_id = store.create_session("member-1")
        store.stage_item(session_id, snapshot("A"))
        store.set_state(session_id, DraftState.READY)
        if state == DraftState.COMMITTING:
            store.set_state(session_id, DraftState.COMMITTING)

        with pytest.raises(ConflictError) as exc_info:
            store.stage_item(session_id, snapshot("B"))
        assert exc_info.value.reason == "state"

        with pytest.raises(ConflictError):
            store.unstage_item(session_id, "A")


class TestStateChanges:

    def test_invalid_transition_rejected(self, store):
        session_id = store.create_session("member-1")
        with pytest.raises(StateTransitionError):
            store.set_state(session_id, DraftState.COMMITTED)
        assert store.get_session(session_id).state == DraftState.INITIATED

    def test_set_state_on_missing_draft(self, store):
        with pytest.raises(NotFoundError):
            store.set_state("missing", DraftState.READY)


class TestExpiry:

    def test_mutation_slides_expiry(self, store, clock):
        session_id = store.create_session("member-1")
        clock.advance(3000)
        store.stage_item(session_id, snapshot("A"))
        clock.advance(3000)

        draft = store.get_session(session_id)
        assert draft.state == DraftState.STAGING

    def test_lapsed_draft_expires(self, store, clock, dispatch):
        session_id = store.create_session("member-1")
        store.stage_item(session_id, snapshot("A"))
        clock.advance(3600)

        with pytest.raises(NotFoundError):
            store.get_session(session_id)
        # Gone for good, not just hidden
        with pytest.raises(NotFoundError):
            store.stage_item(session_id, snapshot("B"))

        assert "draft.expired" in dispatch.names()
        payload = dict(dispatch.events)["draft.expired"]
        assert payload["previous_state"] == "STAGING"
        assert payload["session_id"] == session_id

    def test_committing_draft_never_expires(self, store, clock):
        session_id = store.create_session("member-1")
        store.stage_item(session_id, snapshot("A"))
        store.set_state(session_id, DraftState.READY)
        store.set_state(session_id, DraftState.COMMITTING)
        clock.advance(7200)

        assert store.get_session(session_id).state == DraftState.COMMITTING

    def test_committing_drafts_are_indexed_and_never_evicted(self, store, redis_client):
        session_id = store.create_session("member-1")
        store.stage_item(session_id, snapshot("A"))
        store.set_state(session_id, DraftState.READY)
        store.set_state(session_id, DraftState.COMMITTING)

        assert store.list_committing() == [session_id]
        assert redis_client.ttl(DRAFT_KEY.format(session_id)) == -1

        store.set_state(session_id, DraftState.FAILED)
        assert store.list_committing() == []
        assert 0 < redis_client.ttl(DRAFT_KEY.format(session_id)) <= 3600


class TestCommitLock:

    def test_lock_is_exclusive(self, store):
        token = store.try_acquire_commit_lock("s-1")
        assert token is not None
        assert store.try_acquire_commit_lock("s-1") is None

    def test_release_with_token(self, store, redis_client):
        token = store.try_acquire_commit_lock("s-1")
        assert store.release_commit_lock("s-1", token) is True
        assert redis_client.get(LOCK_KEY.format("s-1")) is None
        assert store.try_acquire_commit_lock("s-1") is not None

    def test_release_with_foreign_token_keeps_lock(self, store):
        store.try_acquire_commit_lock("s-1")
        assert store.release_commit_lock("s-1", "someone-else") is False
        assert store.try_acquire_commit_lock("s-1") is None

    def test_lock_has_ttl(self, store, redis_client):
        store.try_acquire_commit_lock("s-1")
        assert 0 < redis_client.ttl(LOCK_KEY.format("s-1")) <= 30

    def test_lock_ttl_override(self, store, redis_client):
        store.try_acquire_commit_lock("s-1", ttl_seconds=120)
        assert 30 < redis_client.ttl(LOCK_KEY.format("s-1")) <= 120

    def test_refresh_extends_own_lock(self, store, redis_client):
        token = store.try_acquire_commit_lock("s-1")
        assert store.refresh_commit_lock("s-1", token, ttl_seconds=300) is True
        assert 30 < redis_client.ttl(LOCK_KEY.format("s-1")) <= 300

    def test_refresh_fails_once_lock_is_gone_or_taken(self, store, redis_client):
        token = store.try_acquire_commit_lock("s-1")
        redis_client.delete(LOCK_KEY.format("s-1"))
        assert store.refresh_commit_lock("s-1", token) is False

        store.try_acquire_commit_lock("s-1")
        assert store.refresh_commit_lock("s-1", token) is False


class TestResultsAndOrphans:

    def test_commit_result_round_trip(self, store):
        assert store.get_commit_result("s-1") is None
        store.save_commit_result("s-1", {"status": "COMMITTED", "committed_ids": ["r1"]})
        assert store.get_commit_result("s-1") == {"status": "COMMITTED", "committed_ids": ["r1"]}

    def test_orphan_quarantine(self, store):
        entry = store.quarantine_orphan("rec-1", "order_product", "s-1", "timeout")
        assert entry["attempts"] == 0
        assert entry["needs_manual"] is False

        updated = store.update_orphan("rec-1", attempts=2)
        assert updated["attempts"] == 2
        assert store.get_orphan("rec-1") == updated
        assert [e["record_id"] for e in store.list_orphans()] == ["rec-1"]

        store.remove_orphan("rec-1")
        assert store.list_orphans() == []
        assert store.update_orphan("rec-1", attempts=3) is None
        assert store.get_orphan("rec-1") is None
