"""Listing models."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, field_validator


class ListingStatus(str, Enum):
    """Listing lifecycle status values."""
    DRAFT = "draft"
    ACTIVE = "active"
    SOLD = "sold"
    ARCHIVED = "archived"


class SourceType(str, Enum):
    """Known sourcing channels (the column itself is free text)."""
    THRIFT_STORE = "thrift_store"
    ESTATE_SALE = "estate_sale"
    GARAGE_SALE = "garage_sale"
    FLEA_MARKET = "flea_market"
    ONLINE = "online"
    WHOLESALE = "wholesale"
    OTHER = "other"


class Measurements(BaseModel):
    """Physical measurements; units are embedded in the strings."""
    length: Optional[str] = None
    width: Optional[str] = None
    height: Optional[str] = None
    weight: Optional[str] = None


class Listing(BaseModel):
    """One inventory item / marketplace draft."""
    id: str = Field(..., description="Listing ID")
    user_id: str = Field(..., description="Owning tenant ID")

    # Descriptive
    title: str = Field(..., min_length=1, description="Listing title")
    description: Optional[str] = None
    category: Optional[str] = None
    condition: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    keywords: list[str] = Field(default_factory=list, description="Search keywords")
    photos: list[str] = Field(default_factory=list, description="Photo URLs")
    price_research: Optional[str] = None
    performance_notes: Optional[str] = None

    # Commercial
    price: float = Field(default=0, ge=0, description="Listing price")
    purchase_price: Optional[float] = None
    purchase_date: Optional[str] = None
    shipping_cost: Optional[float] = None
    cost_basis: Optional[float] = None
    fees_paid: Optional[float] = None
    net_profit: Optional[float] = None
    profit_margin: Optional[float] = Field(None, description="Profit margin (percent)")

    # Lifecycle
    status: ListingStatus = Field(default=ListingStatus.DRAFT, description="draft, active, sold or archived")
    listed_date: Optional[str] = None
    sold_date: Optional[str] = None
    sold_price: Optional[float] = None
    days_to_sell: Optional[int] = None

    # Consignment (only meaningful when is_consignment is true)
    is_consignment: Optional[bool] = None
    consignment_percentage: Optional[float] = None
    consignor_name: Optional[str] = None
    consignor_contact: Optional[str] = None

    # Sourcing
    source_type: Optional[str] = None
    source_location: Optional[str] = None

    measurements: Measurements = Field(default_factory=Measurements)

    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def default_status(cls, value):
        """Null or unknown status from the backend reads as draft."""
        if isinstance(value, ListingStatus):
            return value
        if isinstance(value, str) and value.lower() in {s.value for s in ListingStatus}:
            return value.lower()
        return ListingStatus.DRAFT
