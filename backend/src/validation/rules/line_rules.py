"""Line-level validation rules"""

from staging.draft import Draft, DraftKind
from staging.errors import ValidationError
from ..models import RuleResult, ValidationContext, collect


def validate_cart_lines(draft: Draft, context: ValidationContext) -> RuleResult:
    """Validate the staged lines of a draft.

    Rules implemented:
    - a CART draft must contain at least one line
    - every line quantity must be a positive integer
    - frozen unit price and tax rate must not be negative
    """
    errors = []

    if draft.kind == DraftKind.CART and not draft.items:
        errors.append(ValidationError(
            "Cart must contain at least one item",
            field="items",
            session_id=draft.id,
        ))

    for line in draft.ordered_items():
        if line.quantity <= 0:
            errors.append(ValidationError(
                f"Quantity must be a positive integer (got {line.quantity})",
                field=f"items.{line.item_id}.quantity",
                session_id=draft.id,
            ))
        if line.unit_price < 0:
            errors.append(ValidationError(
                "Unit price cannot be negative",
                field=f"items.{line.item_id}.unit_price",
                session_id=draft.id,
            ))
        if line.tax_rate < 0:
            errors.append(ValidationError(
                "Tax rate cannot be negative",
                field=f"items.{line.item_id}.tax_rate",
                session_id=draft.id,
            ))

    return collect(errors)
