"""
Order Domain Models

Rental and sale orders with their line items, plus the status
transition table used by the order service.

Author: TM3
Date: 2026-03-02
"""
from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

ORDER_TYPES = ("RENT", "SALE")
ORDER_STATUSES = ("RESERVED", "PICKUPED", "RETURNED", "COMPLETED", "CANCELLED")

# Allowed status transitions (terminal statuses have no entry)
ORDER_STATUS_TRANSITIONS = {
    "RESERVED": ("PICKUPED", "COMPLETED", "CANCELLED"),
    "PICKUPED": ("RETURNED", "COMPLETED", "CANCELLED"),
}


class OrderItem(BaseModel):
    """
    Order Item domain model - a line item in an order

    Fields:
        id: Internal order item ID
        order_id: Parent order ID
        product_id: Product catalog ID
        product_name: Product name (from JOIN, optional)
        quantity: Units ordered
        unit_price: Price per unit (for the whole rental duration)
        total_price: quantity * unit_price unless overridden
        deposit: Deposit for this line
    """

    id: int = Field(..., description="Order item ID")
    order_id: int = Field(..., description="Parent order ID")
    product_id: Optional[int] = Field(None, description="Product catalog ID")
    product_name: Optional[str] = Field(None, description="Product name")
    quantity: int = Field(..., description="Quantity ordered", ge=1)
    unit_price: Decimal = Field(..., description="Price per unit", ge=0)
    total_price: Decimal = Field(..., description="Line total", ge=0)
    deposit: Decimal = Field(Decimal('0'), description="Line deposit", ge=0)
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    def to_dict(self) -> dict:
        """Convert to dictionary with Decimal to float conversion"""
        data = self.model_dump()
        for field in ['unit_price', 'total_price', 'deposit']:
            if data.get(field) is not None:
                data[field] = float(data[field])
        return data


class Order(BaseModel):
    """
    Order domain model

    Fields:
        id: Internal order ID
        order_number: Human facing number (see OrderNumberGenerator)
        order_type: RENT or SALE
        status: One of ORDER_STATUSES
        outlet_id: Outlet the order belongs to
        merchant_id: Merchant of the outlet (from JOIN)
        customer_id: Customer (optional, walk-in orders have none)
        customer_name / customer_phone: Snapshot at order time
        total_amount / deposit_amount / damage_fee: Money fields
        pickup_planned_at / return_planned_at: Planned rental window
        picked_up_at / returned_at: Actual times
        items: Line items (loaded on demand)
    """

    id: int = Field(..., description="Order ID")
    order_number: str = Field(..., description="Order number")
    order_type: str = Field("RENT", description="RENT or SALE")
    status: str = Field("RESERVED", description="Order status")
    outlet_id: int = Field(..., description="Outlet ID")
    merchant_id: Optional[int] = Field(None, description="Merchant ID")
    customer_id: Optional[int] = Field(None, description="Customer ID")
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None

    total_amount: Decimal = Field(Decimal('0'), ge=0)
    deposit_amount: Decimal = Field(Decimal('0'), ge=0)
    damage_fee: Decimal = Field(Decimal('0'), ge=0)

    pickup_planned_at: Optional[datetime] = None
    return_planned_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    returned_at: Optional[datetime] = None

    notes: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    items: List[OrderItem] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_overdue(self) -> bool:
        if self.status != "PICKUPED" or not self.return_planned_at:
            return False
        now = datetime.now(self.return_planned_at.tzinfo)
        return now > self.return_planned_at

    @property
    def allowed_transitions(self) -> tuple:
        return ORDER_STATUS_TRANSITIONS.get(self.status, ())

    def to_dict(self) -> dict:
        data = self.model_dump()
        data['items'] = [item.to_dict() for item in self.items]
        data['is_overdue'] = self.is_overdue
        data['allowed_transitions'] = list(self.allowed_transitions)

        for field in ['total_amount', 'deposit_amount', 'damage_fee']:
            if data.get(field) is not None:
                data[field] = float(data[field])

        return data


class OrderItemCreate(BaseModel):
    product_id: int
    quantity: int = Field(1, ge=1)
    unit_price: Optional[Decimal] = Field(None, ge=0)
    total_price: Optional[Decimal] = Field(None, ge=0)
    deposit: Decimal = Field(Decimal('0'), ge=0)
    notes: Optional[str] = None


class OrderCreate(BaseModel):
    """Schema for creating a new order"""
    order_type: str = "RENT"
    outlet_id: int
    customer_id: Optional[int] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    total_amount: Optional[Decimal] = Field(None, ge=0)
    deposit_amount: Decimal = Field(Decimal('0'), ge=0)
    pickup_planned_at: Optional[datetime] = None
    return_planned_at: Optional[datetime] = None
    notes: Optional[str] = None
    items: List[OrderItemCreate] = Field(..., min_length=1)

    @model_validator(mode="after")
    def check_type_and_window(self):
        self.order_type = self.order_type.upper()
        if self.order_type not in ORDER_TYPES:
            raise ValueError(f"order_type must be one of {', '.join(ORDER_TYPES)}")
        if (self.pickup_planned_at and self.return_planned_at
                and self.return_planned_at <= self.pickup_planned_at):
            raise ValueError("return_planned_at must be after pickup_planned_at")
        return self


class OrderUpdate(BaseModel):
    """Editable fields; status changes go through OrderStatusUpdate"""
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    deposit_amount: Optional[Decimal] = Field(None, ge=0)
    damage_fee: Optional[Decimal] = Field(None, ge=0)
    pickup_planned_at: Optional[datetime] = None
    return_planned_at: Optional[datetime] = None
    notes: Optional[str] = None


class OrderStatusUpdate(BaseModel):
    status: str
    damage_fee: Optional[Decimal] = Field(None, ge=0)
    notes: Optional[str] = None
