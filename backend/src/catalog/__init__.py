"""Read-only product catalog used for price and tax lookups"""

from .ports import ProductLookupPort, ProductQuote
from .sql_lookup import SqlProductLookup

__all__ = [
    "ProductLookupPort",
    "ProductQuote",
    "SqlProductLookup",
]
