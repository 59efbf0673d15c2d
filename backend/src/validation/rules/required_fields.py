"""Required-field rules for membership registrations"""

from staging.draft import Draft, DraftKind
from staging.errors import ValidationError
from ..models import RuleResult, ValidationContext, collect


# Fields each registration section must carry when it is staged
SECTION_REQUIRED_FIELDS = {
    "category": ("membership_category", "membership_year"),
    "employment": ("employment_status", "role_descriptor"),
    "practices": ("clients_age",),
    "preferences": ("membership_declaration",),
}


def is_blank(value) -> bool:
    """None, empty/whitespace strings and empty collections count as missing."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def validate_required_fields(draft: Draft, context: ValidationContext) -> RuleResult:
    """Check that a registration has its category and every required field.

    The membership declaration must be explicitly accepted (True), not just
    present.
    """
    if draft.kind != DraftKind.MEMBERSHIP:
        return collect([])

    errors = []

    if "category" not in draft.sections:
        errors.append(ValidationError(
            "Membership category section is required",
            field="sections.category",
            session_id=draft.id,
        ))

    for section in draft.ordered_sections():
        for name in SECTION_REQUIRED_FIELDS.get(section.name, ()):
            if is_blank(section.fields.get(name)):
                errors.append(ValidationError(
                    f"{name} is required",
                    field=f"sections.{section.name}.{name}",
                    session_id=draft.id,
                ))

    preferences = draft.sections.get("preferences")
    if preferences and not is_blank(preferences.fields.get("membership_declaration")):
        if preferences.fields.get("membership_declaration") is not True:
            errors.append(ValidationError(
                "Membership declaration must be accepted",
                field="sections.preferences.membership_declaration",
                session_id=draft.id,
            ))

    return collect(errors)
