"""BusinessRuleValidator - runs every business rule against a whole draft"""

import logging
from typing import Callable, List, Optional, Tuple

from staging.draft import Draft
from staging.errors import BackendError
from .models import Err, RuleResult, ValidationContext, ValidationReport
from .rules import (
    validate_cart_lines,
    validate_required_fields,
    validate_conditional_other_fields,
    validate_account_affiliate_exclusivity,
    validate_category_requirements,
    validate_category_uniqueness,
)

logger = logging.getLogger(__name__)

Rule = Callable[[Draft, ValidationContext], RuleResult]

# Store-dependent rules come last
DEFAULT_RULES: List[Tuple[str, Rule]] = [
    ("cart_lines", validate_cart_lines),
    ("required_fields", validate_required_fields),
    ("conditional_other", validate_conditional_other_fields),
    ("account_affiliate_exclusivity", validate_account_affiliate_exclusivity),
    ("category_requirements", validate_category_requirements),
    ("category_uniqueness", validate_category_uniqueness),
]


class BusinessRuleValidator:
    """Composes rule functions into a single ValidationReport.

    Every rule runs, so the report lists all violations at once. A
    BackendError raised by a store-dependent rule propagates: the draft is
    never reported ready when a rule could not be evaluated.
    """

    def __init__(self, repository=None, rules: Optional[List[Tuple[str, Rule]]] = None):
        self.repository = repository
        self.rules = rules if rules is not None else DEFAULT_RULES

    def validate(self, draft: Draft) -> ValidationReport:
        context = ValidationContext(session_id=draft.id, repository=self.repository)
        errors = []

        for rule_name, rule_func in self.rules:
            try:
                result = rule_func(draft, context)
            except BackendError as e:
                logger.error(
                    f"Validation rule '{rule_name}' could not reach the durable store: {e}",
                    extra={"session_id": draft.id}
                )
                raise

            if isinstance(result, Err):
                errors.extend(result.errors)
                logger.debug(
                    f"Validation rule '{rule_name}' found {len(result.errors)} errors",
                    extra={"session_id": draft.id}
                )

        report = ValidationReport(ready=not errors, errors=errors)
        logger.info(
            f"Validation completed: {len(errors)} errors",
            extra={"session_id": draft.id}
        )
        return report
