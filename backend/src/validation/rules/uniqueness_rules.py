"""Uniqueness rules that consult the durable store.

These run last so the store is read as late as possible before commit.
Backend failures are not caught here: an unreachable store must block the
commit rather than let a duplicate through.
"""

import logging

from staging.draft import Draft, DraftKind
from staging.errors import ValidationError
from ..models import RuleResult, ValidationContext, collect

logger = logging.getLogger(__name__)


def validate_category_uniqueness(draft: Draft, context: ValidationContext) -> RuleResult:
    """One membership category per owner per membership year."""
    if draft.kind != DraftKind.MEMBERSHIP or context.repository is None:
        return collect([])

    year = draft.section_fields("category").get("membership_year")
    if year in (None, ""):
        return collect([])

    own_prefix = f"{draft.id}:"
    existing = [
        record for record in context.repository.find("membership_category", draft.owner_id)
        if str(record.payload.get("membership_year")) == str(year)
        and not (record.idempotency_key or "").startswith(own_prefix)
    ]
    if not existing:
        return collect([])

    logger.info(
        f"Owner already holds a membership category for {year}",
        extra={"session_id": draft.id, "record_id": existing[0].id}
    )
    return collect([ValidationError(
        f"A membership category already exists for year {year}",
        field="sections.category.membership_year",
        session_id=draft.id,
    )])
