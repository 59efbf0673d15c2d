"""Account / affiliate exclusivity"""

from staging.draft import Draft, DraftKind
from staging.errors import ValidationError
from ..models import RuleResult, ValidationContext, collect
from .required_fields import is_blank


def validate_account_affiliate_exclusivity(draft: Draft, context: ValidationContext) -> RuleResult:
    """A registration belongs to exactly one of an account or an affiliate.

    The category section must reference exactly one. Any other section that
    references either must also reference exactly one.
    """
    if draft.kind != DraftKind.MEMBERSHIP:
        return collect([])

    errors = []
    for section in draft.ordered_sections():
        has_account = not is_blank(section.fields.get("account_id"))
        has_affiliate = not is_blank(section.fields.get("affiliate_id"))

        if has_account and has_affiliate:
            errors.append(ValidationError(
                "account_id and affiliate_id are mutually exclusive",
                field=f"sections.{section.name}.affiliate_id",
                session_id=draft.id,
            ))
        elif section.name == "category" and not has_account and not has_affiliate:
            errors.append(ValidationError(
                "Either account_id or affiliate_id is required",
                field="sections.category.account_id",
                session_id=draft.id,
            ))

    return collect(errors)
