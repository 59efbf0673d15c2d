"""Cross-entity rules driven by the membership category"""

from staging.draft import Draft, DraftKind
from staging.errors import ValidationError
from ..models import RuleResult, ValidationContext, collect


# Categories whose members must also register employment and practice details
CATEGORIES_REQUIRING_PRACTICE = ("FULL", "ASSOCIATE")


def validate_category_requirements(draft: Draft, context: ValidationContext) -> RuleResult:
    if draft.kind != DraftKind.MEMBERSHIP:
        return collect([])

    category = draft.section_fields("category").get("membership_category")
    if category not in CATEGORIES_REQUIRING_PRACTICE:
        return collect([])

    errors = []
    for section_name in ("employment", "practices"):
        if section_name not in draft.sections:
            errors.append(ValidationError(
                f"{section_name} section is required for {category} members",
                field=f"sections.{section_name}",
                session_id=draft.id,
            ))
    return collect(errors)
