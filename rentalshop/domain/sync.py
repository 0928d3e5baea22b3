"""
Sync session models for the legacy POS import
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, Dict, Any, List
from datetime import datetime

SYNC_SESSION_STATUSES = ("IN_PROGRESS", "COMPLETED", "PARTIALLY_COMPLETED", "FAILED", "ROLLED_BACK")

# Sync order; orders map their items through the products synced before them
SYNC_ENTITIES = ("customers", "products", "orders")

RESUMABLE_STATUSES = ("FAILED", "PARTIALLY_COMPLETED")


class SyncSession(BaseModel):
    """
    One execution of the legacy sync for a merchant

    stats holds {entity: {total, created, failed}} once the run finishes.
    config keeps the legacy endpoint used; the token is never stored.
    """
    id: int
    merchant_id: int
    source: str = "legacy"
    status: str = "IN_PROGRESS"
    entities: List[str] = Field(default_factory=lambda: list(SYNC_ENTITIES))
    config: Dict[str, Any] = Field(default_factory=dict)
    stats: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    started_at: datetime
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class SyncRecord(BaseModel):
    """Maps a legacy id to the record created for it during a session"""
    id: int
    session_id: int
    entity_type: str
    entity_id: int
    old_id: Optional[str] = None
    created_at: datetime


class LegacySyncOptions(BaseModel):
    """Request body shared by the sync endpoints, every field optional"""
    endpoint: Optional[str] = Field(None, description="Legacy API URL, defaults to LEGACY_API_URL")
    token: Optional[str] = Field(None, description="Legacy API token, defaults to LEGACY_API_TOKEN")
    entities: Optional[List[str]] = Field(None, description="Subset of customers, products, orders")


class LegacyExportRequest(LegacySyncOptions):
    preview: bool = Field(False, description="Only the first records of each entity")
    download: bool = Field(False, description="Return a JSON file attachment")
