"""Conditional "other" text fields.

When a choice field selects the OTHER sentinel, its companion free-text
field ``<choice>_other`` becomes mandatory. Choices may be single values or
multi-select lists.
"""

from staging.draft import Draft
from staging.errors import ValidationError
from ..models import RuleResult, ValidationContext, collect
from .required_fields import is_blank


OTHER = "OTHER"

# section -> choice fields with an "_other" companion
CONDITIONAL_OTHER_FIELDS = {
    "employment": ("role_descriptor", "position_funding", "employment_benefits"),
    "practices": ("practice_settings", "practice_services"),
}


def selects_other(value) -> bool:
    if isinstance(value, (list, tuple, set)):
        return OTHER in value
    return value == OTHER


def validate_conditional_other_fields(draft: Draft, context: ValidationContext) -> RuleResult:
    errors = []

    for section_name, choice_fields in CONDITIONAL_OTHER_FIELDS.items():
        fields = draft.section_fields(section_name)
        for choice in choice_fields:
            companion = f"{choice}_other"
            if selects_other(fields.get(choice)) and is_blank(fields.get(companion)):
                errors.append(ValidationError(
                    f"{companion} is required when {choice} includes {OTHER}",
                    field=f"sections.{section_name}.{companion}",
                    session_id=draft.id,
                ))

    return collect(errors)
