"""Business rule functions.

Each rule has the signature ``(draft, context) -> Ok | Err``.
"""

from .line_rules import validate_cart_lines
from .required_fields import validate_required_fields
from .conditional_rules import validate_conditional_other_fields
from .exclusivity_rules import validate_account_affiliate_exclusivity
from .category_rules import validate_category_requirements
from .uniqueness_rules import validate_category_uniqueness

__all__ = [
    "validate_cart_lines",
    "validate_required_fields",
    "validate_conditional_other_fields",
    "validate_account_affiliate_exclusivity",
    "validate_category_requirements",
    "validate_category_uniqueness",
]
