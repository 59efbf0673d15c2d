"""Draft domain objects.

A draft is the mutable, session-scoped working copy of a checkout cart or a
membership registration. It lives only in Redis until it is committed.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, List, Optional

from .status import DraftState


CENT = Decimal("0.01")

# Registration entities in creation order. The category must exist before
# the entities that hang off it.
REGISTRATION_SECTIONS = ("category", "employment", "practices", "preferences")


def money(value) -> Decimal:
    """Round to cents, half up."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


class DraftKind(str, Enum):
    """What a draft is assembling."""
    CART = "CART"
    MEMBERSHIP = "MEMBERSHIP"


@dataclass
class LineSnapshot:
    """A staged line with price and tax frozen at staging time.

    Attributes:
        item_id: Line identity inside the draft (defaults to ref_id)
        ref_id: Referenced catalog product
        quantity: Positive integer quantity
        unit_price: Unit price at staging time
        tax_rate: Tax rate in percent at staging time (13 = 13%)
        position: Staging order, assigned by the session store
        staged_at: When the line was (last) staged
        name: Product name at staging time, for display only
    """
    item_id: str
    ref_id: str
    quantity: int
    unit_price: Decimal
    tax_rate: Decimal
    position: int = 0
    staged_at: Optional[datetime] = None
    name: str = ""

    @property
    def subtotal(self) -> Decimal:
        return money(self.unit_price * self.quantity)

    @property
    def tax_amount(self) -> Decimal:
        return money(self.subtotal * self.tax_rate / 100)

    @property
    def total(self) -> Decimal:
        return self.subtotal + self.tax_amount

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item_id": self.item_id,
            "ref_id": self.ref_id,
            "quantity": self.quantity,
            "unit_price": str(self.unit_price),
            "tax_rate": str(self.tax_rate),
            "subtotal": str(self.subtotal),
            "tax_amount": str(self.tax_amount),
            "total": str(self.total),
            "position": self.position,
            "staged_at": self.staged_at.isoformat() if self.staged_at else None,
            "name": self.name,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LineSnapshot":
        staged_at = data.get("staged_at")
        return cls(
            item_id=data["item_id"],
            ref_id=data["ref_id"],
            quantity=int(data["quantity"]),
            unit_price=Decimal(data["unit_price"]),
            tax_rate=Decimal(data["tax_rate"]),
            position=int(data.get("position", 0)),
            staged_at=datetime.fromisoformat(staged_at) if staged_at else None,
            name=data.get("name", ""),
        )


@dataclass
class SectionSnapshot:
    """Field values of one registration entity (category, employment, ...)."""
    name: str
    fields: Dict[str, Any]
    position: int = 0
    staged_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "fields": dict(self.fields),
            "position": self.position,
            "staged_at": self.staged_at.isoformat() if self.staged_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SectionSnapshot":
        staged_at = data.get("staged_at")
        return cls(
            name=data["name"],
            fields=dict(data.get("fields") or {}),
            position=int(data.get("position", 0)),
            staged_at=datetime.fromisoformat(staged_at) if staged_at else None,
        )


@dataclass
class Draft:
    """Session-scoped draft.

    Items and sections are kept in staging order. Totals are derived from
    the frozen line snapshots and never from the live catalog.
    """
    id: str
    owner_id: str
    kind: DraftKind
    state: DraftState
    created_at: datetime
    expires_at: datetime
    items: Dict[str, LineSnapshot] = field(default_factory=dict)
    sections: Dict[str, SectionSnapshot] = field(default_factory=dict)

    @property
    def subtotal(self) -> Decimal:
        return sum((line.subtotal for line in self.items.values()), Decimal("0.00"))

    @property
    def tax_total(self) -> Decimal:
        return sum((line.tax_amount for line in self.items.values()), Decimal("0.00"))

    @property
    def total(self) -> Decimal:
        return self.subtotal + self.tax_total

    def ordered_items(self) -> List[LineSnapshot]:
        return sorted(self.items.values(), key=lambda line: line.position)

    def ordered_sections(self) -> List[SectionSnapshot]:
        """Sections in entity creation order, unknown names last by staging order."""
        def rank(section: SectionSnapshot):
            if section.name in REGISTRATION_SECTIONS:
                return (REGISTRATION_SECTIONS.index(section.name), section.position)
            return (len(REGISTRATION_SECTIONS), section.position)

        return sorted(self.sections.values(), key=rank)

    def section_fields(self, name: str) -> Dict[str, Any]:
        """Fields of a section, or an empty dict when it was never staged."""
        section = self.sections.get(name)
        return section.fields if section else {}

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def is_empty(self) -> bool:
        return not self.items and not self.sections

    def meta(self) -> Dict[str, Any]:
        """Header fields persisted alongside the items."""
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "kind": self.kind.value,
            "state": self.state.value,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.meta()
        data.update({
            "items": [line.to_dict() for line in self.ordered_items()],
            "sections": [section.to_dict() for section in self.ordered_sections()],
            "subtotal": str(self.subtotal),
            "tax_total": str(self.tax_total),
            "total": str(self.total),
        })
        return data

    @classmethod
    def from_meta(
        cls,
        meta: Dict[str, Any],
        items: Optional[List[LineSnapshot]] = None,
        sections: Optional[List[SectionSnapshot]] = None,
    ) -> "Draft":
        items = sorted(items or [], key=lambda line: line.position)
        sections = sorted(sections or [], key=lambda s: s.position)
        return cls(
            id=meta["id"],
            owner_id=meta["owner_id"],
            kind=DraftKind(meta["kind"]),
            state=DraftState(meta["state"]),
            created_at=datetime.fromisoformat(meta["created_at"]),
            expires_at=datetime.fromisoformat(meta["expires_at"]),
            items={line.item_id: line for line in items},
            sections={s.name: s for s in sections},
        )
