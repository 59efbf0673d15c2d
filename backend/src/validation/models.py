"""Validation result types.

Rules return a tagged result instead of raising: ``Ok()`` when the draft
passes, ``Err([...])`` carrying every violation the rule found.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List, Union

from staging.errors import ValidationError


@dataclass(frozen=True)
class Ok:
    """Rule passed."""
    ok = True


@dataclass(frozen=True)
class Err:
    """Rule failed with one or more field-tagged errors."""
    errors: List[ValidationError]
    ok = False


RuleResult = Union[Ok, Err]


def collect(errors: List[ValidationError]) -> RuleResult:
    """Ok when ``errors`` is empty, else Err."""
    return Err(errors) if errors else Ok()


@dataclass
class ValidationReport:
    """Outcome of validating a whole draft.

    ready is True only when no rule reported an error.
    """
    ready: bool
    errors: List[ValidationError] = field(default_factory=list)
    checked_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> dict[str, Any]:
        return {
            "ready": self.ready,
            "errors": [{"field": e.field, "message": e.message} for e in self.errors],
            "checked_at": self.checked_at,
        }


@dataclass
class ValidationContext:
    """Context passed to every rule.

    Attributes:
        repository: Durable store for uniqueness checks (None skips them)
        session_id: Draft being validated; its own committed records are
            ignored by uniqueness checks so a retried commit stays valid
    """
    session_id: str
    repository: Any = None
