"""
Billing Domain Models

Plans, merchant subscriptions and payments.

Author: TM3
Date: 2026-03-04
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from datetime import datetime
from decimal import Decimal

SUBSCRIPTION_STATUSES = ("TRIAL", "ACTIVE", "PAST_DUE", "CANCELLED", "PAUSED", "EXPIRED")
BILLING_INTERVALS = ("monthly", "quarterly", "sixMonths", "yearly")
PAYMENT_STATUSES = ("PENDING", "COMPLETED", "FAILED", "REFUNDED", "CANCELLED")
PAYMENT_METHODS = ("STRIPE", "TRANSFER", "MANUAL", "CASH", "CHECK", "PAYPAL")
PAYMENT_TYPES = ("ORDER_PAYMENT", "SUBSCRIPTION_PAYMENT", "PLAN_CHANGE", "PLAN_EXTENSION")

UNLIMITED = -1


class Plan(BaseModel):
    """
    Subscription plan

    Limits use -1 for unlimited.
    """

    id: int
    name: str
    description: Optional[str] = None
    base_price: Decimal = Field(Decimal('0'), ge=0)
    currency: str = "USD"
    trial_days: int = Field(0, ge=0)
    max_outlets: int = UNLIMITED
    max_users: int = UNLIMITED
    max_products: int = UNLIMITED
    max_customers: int = UNLIMITED
    max_orders: int = UNLIMITED
    is_active: bool = True
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    def limit_for(self, entity: str) -> int:
        return getattr(self, f"max_{entity}", UNLIMITED)

    def to_dict(self) -> dict:
        data = self.model_dump()
        data['base_price'] = float(data['base_price'])
        return data


class PlanCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    base_price: Decimal = Field(Decimal('0'), ge=0)
    currency: str = "USD"
    trial_days: int = Field(0, ge=0)
    max_outlets: int = Field(UNLIMITED, ge=-1)
    max_users: int = Field(UNLIMITED, ge=-1)
    max_products: int = Field(UNLIMITED, ge=-1)
    max_customers: int = Field(UNLIMITED, ge=-1)
    max_orders: int = Field(UNLIMITED, ge=-1)


class PlanUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    base_price: Optional[Decimal] = Field(None, ge=0)
    trial_days: Optional[int] = Field(None, ge=0)
    max_outlets: Optional[int] = Field(None, ge=-1)
    max_users: Optional[int] = Field(None, ge=-1)
    max_products: Optional[int] = Field(None, ge=-1)
    max_customers: Optional[int] = Field(None, ge=-1)
    max_orders: Optional[int] = Field(None, ge=-1)
    is_active: Optional[bool] = None


class Subscription(BaseModel):
    """A merchant's plan instance and its current billing period"""

    id: int
    merchant_id: int
    plan_id: int
    plan_name: Optional[str] = None
    status: str = "TRIAL"
    billing_interval: str = "monthly"
    amount: Decimal = Field(Decimal('0'), ge=0)
    current_period_start: datetime
    current_period_end: datetime
    trial_end: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    def to_dict(self) -> dict:
        data = self.model_dump()
        data['amount'] = float(data['amount'])
        return data


class SubscriptionCreate(BaseModel):
    merchant_id: int
    plan_id: int
    billing_interval: str = "monthly"


class PlanChange(BaseModel):
    plan_id: int
    billing_interval: Optional[str] = None


class SubscriptionExtend(BaseModel):
    method: str = "MANUAL"
    reference: Optional[str] = None
    billing_interval: Optional[str] = None


class SubscriptionCancel(BaseModel):
    reason: Optional[str] = None


class Payment(BaseModel):
    """Payment for an order or for a subscription"""

    id: int
    merchant_id: Optional[int] = None
    order_id: Optional[int] = None
    subscription_id: Optional[int] = None
    amount: Decimal
    currency: str = "USD"
    method: str = "MANUAL"
    type: str = "ORDER_PAYMENT"
    status: str = "PENDING"
    reference: Optional[str] = None
    description: Optional[str] = None
    processed_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    def to_dict(self) -> dict:
        data = self.model_dump()
        data['amount'] = float(data['amount'])
        return data


class PaymentCreate(BaseModel):
    order_id: Optional[int] = None
    subscription_id: Optional[int] = None
    amount: Decimal
    currency: str = "USD"
    method: str = "MANUAL"
    type: str = "ORDER_PAYMENT"
    status: str = "PENDING"
    reference: Optional[str] = None
    description: Optional[str] = None


class PaymentStatusUpdate(BaseModel):
    status: str
    reference: Optional[str] = None
