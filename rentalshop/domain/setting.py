"""
Settings and notification models
"""
from pydantic import BaseModel, ConfigDict
from typing import Optional, Any
from datetime import datetime


class Setting(BaseModel):
    """Key/value setting; merchant_id None marks a system-wide default"""
    id: int
    merchant_id: Optional[int] = None
    key: str
    value: Any = None
    description: Optional[str] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class SettingUpsert(BaseModel):
    value: Any
    description: Optional[str] = None


class Notification(BaseModel):
    id: int
    merchant_id: Optional[int] = None
    user_id: Optional[int] = None
    title: str
    message: str
    type: str = "INFO"
    is_read: bool = False
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class NotificationCreate(BaseModel):
    merchant_id: Optional[int] = None
    user_id: Optional[int] = None
    title: str
    message: str
    type: str = "INFO"
