"""Business rule validation for drafts"""

from .engine import BusinessRuleValidator, DEFAULT_RULES
from .models import Ok, Err, ValidationContext, ValidationReport

__all__ = [
    "BusinessRuleValidator",
    "DEFAULT_RULES",
    "Ok",
    "Err",
    "ValidationContext",
    "ValidationReport",
]
