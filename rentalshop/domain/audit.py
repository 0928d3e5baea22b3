"""
Audit log model
"""
from pydantic import BaseModel, ConfigDict
from typing import Optional, Any, Dict
from datetime import datetime

AUDIT_ACTIONS = ("CREATE", "UPDATE", "DELETE", "IMPORT", "SYNC")


class AuditLog(BaseModel):
    id: int
    entity_type: str
    entity_id: Optional[str] = None
    action: str
    user_id: Optional[str] = None
    merchant_id: Optional[int] = None
    description: Optional[str] = None
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
