"""Pydantic schemas for the draft staging API"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt

from .draft import DraftKind


# ============================================================================
# Requests
# ============================================================================

class DraftCreate(BaseModel):
    """Schema for POST /drafts"""
    kind: DraftKind = DraftKind.CART

    model_config = ConfigDict(extra='forbid')


class ItemStage(BaseModel):
    """Schema for staging a line (POST /drafts/items, POST /drafts/{id}/items)"""
    ref_id: str = Field(..., min_length=1, description="Catalog product id")
    quantity: StrictInt = Field(..., description="Positive integer quantity")
    item_id: Optional[str] = Field(None, description="Line id, defaults to ref_id")
    kind: DraftKind = Field(DraftKind.CART, description="Kind of draft to create when none is given")

    model_config = ConfigDict(extra='forbid')


class SectionStage(BaseModel):
    """Schema for PUT /drafts/{id}/sections/{section}"""
    fields: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra='forbid')


# ============================================================================
# Responses
# ============================================================================

class LineResponse(BaseModel):
    item_id: str
    ref_id: str
    name: str = ""
    quantity: int
    unit_price: Decimal
    tax_rate: Decimal
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal
    position: int
    staged_at: Optional[str] = None


class SectionResponse(BaseModel):
    name: str
    fields: Dict[str, Any]
    position: int
    staged_at: Optional[str] = None


class DraftResponse(BaseModel):
    """A draft with its running totals"""
    id: str
    owner_id: str
    kind: DraftKind
    state: str
    created_at: str
    expires_at: str
    items: List[LineResponse] = Field(default_factory=list)
    sections: List[SectionResponse] = Field(default_factory=list)
    subtotal: Decimal
    tax_total: Decimal
    total: Decimal


class FieldError(BaseModel):
    field: str
    message: str


class ReadyCheckResponse(BaseModel):
    """Result of POST /drafts/{id}/ready-check"""
    ready: bool
    errors: List[FieldError] = Field(default_factory=list)
    checked_at: str


class CommitResponse(BaseModel):
    """Result of POST /drafts/{id}/commit"""
    status: str
    session_id: str
    committed_ids: List[str] = Field(default_factory=list)
    total: Decimal
    error: Optional[Dict[str, Any]] = None
    orphans: List[str] = Field(default_factory=list)
    operation_id: Optional[str] = None
