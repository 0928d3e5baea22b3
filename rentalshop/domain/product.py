"""
Product Domain Model

Represents a rentable/sellable product and its per-outlet stock.

Author: TM3
Date: 2026-03-02
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

PRICING_TYPES = ("FIXED", "HOURLY", "DAILY")


class OutletStock(BaseModel):
    """
    Stock of one product at one outlet

    available is always stock - renting; renting counts units
    currently picked up by customers.
    """
    outlet_id: int
    stock: int = Field(0, ge=0)
    renting: int = Field(0, ge=0)
    available: int = 0


class Product(BaseModel):
    """
    Product domain model - represents a product in a merchant catalog

    Fields:
        id: Internal product ID (primary key)
        merchant_id: Owning merchant
        category_id: Category (every product has one, see default category)
        name: Product name
        description: Product description (optional)
        barcode: Barcode / SKU (optional)

        # Pricing
        rent_price: Rental price per pricing unit
        sale_price: Selling price (optional)
        cost_price: Purchase/cost price (optional)
        deposit: Security deposit per unit
        pricing_type: FIXED, HOURLY or DAILY

        # Inventory
        outlet_stock: Stock rows per outlet

        # Metadata
        images: Image URLs
        is_active: Whether product is active in catalog
    """

    id: int = Field(..., description="Internal product ID")
    merchant_id: int = Field(..., description="Merchant ID")
    category_id: Optional[int] = Field(None, description="Category ID")
    name: str = Field(..., description="Product name")
    description: Optional[str] = Field(None, description="Product description")
    barcode: Optional[str] = Field(None, description="Barcode or SKU")

    rent_price: Decimal = Field(Decimal('0'), description="Rental price", ge=0)
    sale_price: Optional[Decimal] = Field(None, description="Sale price", ge=0)
    cost_price: Optional[Decimal] = Field(None, description="Cost price", ge=0)
    deposit: Decimal = Field(Decimal('0'), description="Deposit per unit", ge=0)
    pricing_type: str = Field("FIXED", description="FIXED, HOURLY or DAILY")

    images: List[str] = Field(default_factory=list, description="Image URLs")
    outlet_stock: List[OutletStock] = Field(default_factory=list, description="Stock per outlet")

    is_active: bool = Field(True, description="Whether product is active")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: Optional[datetime] = Field(None, description="Last update timestamp")

    model_config = ConfigDict(from_attributes=True)

    @property
    def total_stock(self) -> int:
        return sum(s.stock for s in self.outlet_stock)

    @property
    def total_available(self) -> int:
        return sum(s.available for s in self.outlet_stock)

    def stock_at(self, outlet_id: int) -> Optional[OutletStock]:
        for row in self.outlet_stock:
            if row.outlet_id == outlet_id:
                return row
        return None

    def to_dict(self) -> dict:
        """
        Convert to dictionary with computed fields

        Decimal values are converted to float for JSON compatibility
        """
        data = self.model_dump()
        data['total_stock'] = self.total_stock
        data['total_available'] = self.total_available

        for field in ['rent_price', 'sale_price', 'cost_price', 'deposit']:
            if data.get(field) is not None:
                data[field] = float(data[field])

        return data


class ProductCreate(BaseModel):
    """Schema for creating a new product"""
    category_id: Optional[int] = None
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    barcode: Optional[str] = None
    rent_price: Decimal = Field(Decimal('0'), ge=0)
    sale_price: Optional[Decimal] = Field(None, ge=0)
    cost_price: Optional[Decimal] = Field(None, ge=0)
    deposit: Decimal = Field(Decimal('0'), ge=0)
    pricing_type: str = "FIXED"
    images: List[str] = Field(default_factory=list)
    outlet_id: Optional[int] = None
    stock: int = Field(0, ge=0)


class ProductUpdate(BaseModel):
    """Schema for updating an existing product"""
    category_id: Optional[int] = None
    name: Optional[str] = None
    description: Optional[str] = None
    barcode: Optional[str] = None
    rent_price: Optional[Decimal] = Field(None, ge=0)
    sale_price: Optional[Decimal] = Field(None, ge=0)
    cost_price: Optional[Decimal] = Field(None, ge=0)
    deposit: Optional[Decimal] = Field(None, ge=0)
    pricing_type: Optional[str] = None
    images: Optional[List[str]] = None
    is_active: Optional[bool] = None


class StockAdjustment(BaseModel):
    outlet_id: int
    stock_delta: int = 0
    renting_delta: int = 0
