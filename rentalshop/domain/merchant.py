"""
Merchant Domain Models

Tenants (merchants), their branches (outlets) and the users working there.

Author: TM3
Date: 2026-03-02
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from datetime import datetime

MERCHANT_STATUSES = ("ACTIVE", "INACTIVE", "TRIAL", "EXPIRED")
USER_ROLES = ("ADMIN", "MERCHANT", "OUTLET_ADMIN", "OUTLET_STAFF")


class Merchant(BaseModel):
    """
    Merchant domain model - a tenant business account

    Fields:
        id: Merchant ID (primary key)
        name: Business name
        email: Contact email
        phone: Contact phone
        address: Business address
        business_type: Free-form business category (CLOTHING, EQUIPMENT, ...)
        status: One of MERCHANT_STATUSES
        plan_id: Current plan (optional, no plan means no limits)
        is_active: Soft-delete flag
    """

    id: int = Field(..., description="Merchant ID")
    name: str = Field(..., description="Business name")
    email: Optional[str] = Field(None, description="Contact email")
    phone: Optional[str] = Field(None, description="Contact phone")
    address: Optional[str] = Field(None, description="Business address")
    business_type: Optional[str] = Field(None, description="Business category")
    status: str = Field("TRIAL", description="Merchant status")
    plan_id: Optional[int] = Field(None, description="Current plan ID")
    is_active: bool = Field(True, description="Whether merchant is active")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: Optional[datetime] = Field(None, description="Last update timestamp")

    model_config = ConfigDict(from_attributes=True)

    def to_dict(self) -> dict:
        return self.model_dump()


class MerchantCreate(BaseModel):
    """Schema for creating a merchant"""
    name: str = Field(..., min_length=1)
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    business_type: Optional[str] = None
    status: str = "TRIAL"
    plan_id: Optional[int] = None


class MerchantUpdate(BaseModel):
    """Schema for updating a merchant"""
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    business_type: Optional[str] = None
    status: Optional[str] = None
    plan_id: Optional[int] = None
    is_active: Optional[bool] = None


class Outlet(BaseModel):
    """Outlet domain model - a physical branch of a merchant"""

    id: int
    merchant_id: int
    name: str
    address: Optional[str] = None
    phone: Optional[str] = None
    is_default: bool = False
    is_active: bool = True
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def code(self) -> str:
        """Zero-padded outlet code used in order numbers"""
        return str(self.id).zfill(3)

    def to_dict(self) -> dict:
        return self.model_dump()


class OutletCreate(BaseModel):
    name: str = Field(..., min_length=1)
    address: Optional[str] = None
    phone: Optional[str] = None
    is_default: bool = False


class OutletUpdate(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    is_default: Optional[bool] = None
    is_active: Optional[bool] = None


class User(BaseModel):
    """Platform user; ADMIN users have no merchant"""

    id: int
    email: str
    name: Optional[str] = None
    role: str = "OUTLET_STAFF"
    merchant_id: Optional[int] = None
    outlet_id: Optional[int] = None
    is_active: bool = True
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    def to_dict(self) -> dict:
        return self.model_dump()


class UserCreate(BaseModel):
    email: str
    password: str = Field(..., min_length=6)
    name: Optional[str] = None
    role: str = "OUTLET_STAFF"
    outlet_id: Optional[int] = None


class UserUpdate(BaseModel):
    name: Optional[str] = None
    role: Optional[str] = None
    outlet_id: Optional[int] = None
    is_active: Optional[bool] = None
