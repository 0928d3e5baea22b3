"""
Customer Domain Model
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from datetime import datetime, date

ID_TYPES = ("passport", "drivers_license", "national_id", "other")


class Customer(BaseModel):
    """Customer of a merchant; phone is the natural key used by imports and sync"""

    id: int
    merchant_id: int
    first_name: str
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    date_of_birth: Optional[date] = None
    id_number: Optional[str] = None
    id_type: Optional[str] = None
    notes: Optional[str] = None
    is_active: bool = True
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def full_name(self) -> str:
        return " ".join(part for part in [self.first_name, self.last_name] if part)

    def to_dict(self) -> dict:
        data = self.model_dump()
        data['full_name'] = self.full_name
        return data


class CustomerCreate(BaseModel):
    """Schema for creating a customer"""
    first_name: str = Field(..., min_length=1)
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    date_of_birth: Optional[date] = None
    id_number: Optional[str] = None
    id_type: Optional[str] = None
    notes: Optional[str] = None
    is_active: bool = True


class CustomerUpdate(BaseModel):
    """Schema for updating a customer"""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    date_of_birth: Optional[date] = None
    id_number: Optional[str] = None
    id_type: Optional[str] = None
    notes: Optional[str] = None
    is_active: Optional[bool] = None
