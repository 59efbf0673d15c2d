"""SQL implementation of the product lookup over the product table"""

import logging
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy.orm import Session

from models.product import Product
from .ports import ProductLookupPort, ProductQuote

logger = logging.getLogger(__name__)


class SqlProductLookup(ProductLookupPort):
    """Reads prices from the product table, one short session per lookup."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def get_quote(self, ref_id: str) -> Optional[ProductQuote]:
        session = self.session_factory()
        try:
            product = session.get(Product, ref_id)
            if product is None:
                logger.debug(f"Product {ref_id} not found in catalog")
                return None
            return ProductQuote(
                ref_id=product.id,
                name=product.name,
                unit_price=Decimal(product.unit_price),
                tax_rate=Decimal(product.tax_rate if product.tax_rate is not None else 0),
                active=bool(product.active),
            )
        finally:
            session.close()
