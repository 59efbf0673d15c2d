"""Stage manager: the operations a caller uses to build a draft.

Stage operations only ever touch the session store. Nothing reaches the
durable backend until commit.
"""

import logging
from typing import Any, Dict, Optional

from catalog.ports import ProductLookupPort
from events.publisher import EventPublisher
from observability.metrics import drafts_created_total, items_staged_total
from validation.engine import BusinessRuleValidator
from validation.models import ValidationReport
from .actor import Actor, authorize
from .draft import Draft, DraftKind, LineSnapshot, REGISTRATION_SECTIONS
from .errors import ValidationError
from .session_store import RedisSessionStore

logger = logging.getLogger(__name__)


class StageManager:
    """Creates drafts and stages or unstages their items and sections."""

    def __init__(
        self,
        store: RedisSessionStore,
        catalog: ProductLookupPort,
        validator: Optional[BusinessRuleValidator] = None,
        publisher: Optional[EventPublisher] = None,
    ):
        self.store = store
        self.catalog = catalog
        self.validator = validator or BusinessRuleValidator()
        self.publisher = publisher or EventPublisher()

    def create(self, actor: Actor, kind: DraftKind = DraftKind.CART) -> Draft:
        """Open an empty draft owned by ``actor``."""
        session_id = self.store.create_session(actor.id, kind)
        drafts_created_total.labels(kind=kind.value).inc()
        self.publisher.publish("draft.created", {
            "session_id": session_id,
            "actor_id": actor.id,
            "kind": kind.value,
        })
        return self.store.get_session(session_id)

    def get(self, actor: Actor, session_id: str) -> Draft:
        """Load a draft visible to ``actor``.

        Raises:
            NotFoundError: If absent, expired, or owned by someone else
        """
        draft = self.store.get_session(session_id)
        authorize(actor, draft.owner_id, session_id)
        return draft

    def add(
        self,
        actor: Actor,
        ref_id: str,
        quantity: int,
        session_id: Optional[str] = None,
        kind: DraftKind = DraftKind.CART,
        item_id: Optional[str] = None,
    ) -> Draft:
        """Stage a product line, pricing it from the catalog.

        Without ``session_id`` a new draft of ``kind`` is created first.
        Staging the same item again replaces its snapshot.

        Raises:
            ValidationError: Bad quantity, unknown or inactive product
            NotFoundError: Draft absent, expired or not visible
            ConflictError: Draft no longer accepts changes
        """
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError(
                f"Quantity must be a positive integer (got {quantity!r})",
                field="quantity",
                session_id=session_id,
            )
        if not ref_id or not str(ref_id).strip():
            raise ValidationError("ref_id is required", field="ref_id", session_id=session_id)

        quote = self.catalog.get_quote(ref_id)
        if quote is None:
            raise ValidationError(f"Product {ref_id} not found", field="ref_id", session_id=session_id)
        if not quote.active:
            raise ValidationError(f"Product {ref_id} is inactive", field="ref_id", session_id=session_id)

        if session_id is None:
            session_id = self.create(actor, kind).id
        else:
            self.get(actor, session_id)

        line = LineSnapshot(
            item_id=item_id or ref_id,
            ref_id=ref_id,
            quantity=quantity,
            unit_price=quote.unit_price,
            tax_rate=quote.tax_rate,
            name=quote.name,
        )
        draft = self.store.stage_item(session_id, line)

        items_staged_total.labels(operation="add").inc()
        logger.info(
            f"Staged {quantity} x {ref_id}",
            extra={"session_id": session_id, "actor_id": actor.id}
        )
        self.publisher.publish("draft.item_staged", {
            "session_id": session_id,
            "actor_id": actor.id,
            "item_id": line.item_id,
            "ref_id": ref_id,
            "quantity": quantity,
            "unit_price": str(line.unit_price),
            "total": str(draft.total),
        })
        return draft

    def remove(self, actor: Actor, session_id: str, item_id: str) -> Draft:
        """Unstage a line. Removing an item that is not staged is a no-op."""
        self.get(actor, session_id)
        draft = self.store.unstage_item(session_id, item_id)

        items_staged_total.labels(operation="remove").inc()
        self.publisher.publish("draft.item_unstaged", {
            "session_id": session_id,
            "actor_id": actor.id,
            "item_id": item_id,
            "total": str(draft.total),
        })
        return draft

    def set_section(
        self,
        actor: Actor,
        session_id: Optional[str],
        section: str,
        fields: Dict[str, Any],
    ) -> Draft:
        """Stage the fields of a registration section.

        Without ``session_id`` a new MEMBERSHIP draft is created first.
        """
        if section not in REGISTRATION_SECTIONS:
            raise ValidationError(
                f"Unknown registration section: {section}",
                field="section",
                session_id=session_id,
            )
        if not isinstance(fields, dict):
            raise ValidationError("Section fields must be an object", field=f"sections.{section}")

        if session_id is None:
            draft = self.create(actor, DraftKind.MEMBERSHIP)
        else:
            draft = self.get(actor, session_id)
        if draft.kind != DraftKind.MEMBERSHIP:
            raise ValidationError(
                "Registration sections can only be staged on a MEMBERSHIP draft",
                field="section",
                session_id=draft.id,
            )

        draft = self.store.stage_section(draft.id, section, fields)

        items_staged_total.labels(operation="section_set").inc()
        self.publisher.publish("draft.section_staged", {
            "session_id": draft.id,
            "actor_id": actor.id,
            "section": section,
        })
        return draft

    def remove_section(self, actor: Actor, session_id: str, section: str) -> Draft:
        """Unstage a registration section. Absent sections are a no-op."""
        self.get(actor, session_id)
        draft = self.store.unstage_section(session_id, section)

        items_staged_total.labels(operation="section_remove").inc()
        self.publisher.publish("draft.section_unstaged", {
            "session_id": session_id,
            "actor_id": actor.id,
            "section": section,
        })
        return draft

    def check(self, actor: Actor, session_id: str) -> ValidationReport:
        """Dry-run the business rules without changing the draft."""
        draft = self.get(actor, session_id)
        return self.validator.validate(draft)
