"""
ProductLookupPort - Port interface for current price and tax truth

The stage manager prices a line from this port when it is staged, and the
commit orchestrator asks it again right before writing to detect stale
snapshots. Implementations are read-only.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional


@dataclass(frozen=True)
class ProductQuote:
    """
    Current commercial terms of one product.

    Attributes:
        ref_id: Product identifier referenced by staged lines
        name: Display name
        unit_price: Current unit price
        tax_rate: Current tax rate in percent
        active: Whether the product may still be sold
    """
    ref_id: str
    name: str
    unit_price: Decimal
    tax_rate: Decimal
    active: bool = True


class ProductLookupPort(ABC):
    """Abstract catalog lookup."""

    @abstractmethod
    def get_quote(self, ref_id: str) -> Optional[ProductQuote]:
        """
        Look up a product by id.

        Returns:
            ProductQuote, or None if the product does not exist. Inactive
            products are returned with active=False so callers can tell a
            retired product from an unknown one.
        """
        pass
