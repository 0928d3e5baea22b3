"""
System API Endpoints
Data integrity checks, backup verification and audit logs

Author: TM3
Date: 2026-03-11
"""
from fastapi import APIRouter, HTTPException, Query, Depends
from typing import Optional
import logging

from rentalshop.core.auth import TokenUser, require_admin, require_role, resolve_merchant_scope
from rentalshop.core.errors import RentalShopError
from rentalshop.repositories.audit_repository import AuditRepository
from rentalshop.services.backup_service import BackupService
from rentalshop.services.integrity_service import IntegrityService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/integrity")
async def check_integrity(user: TokenUser = Depends(require_admin)):
    """
    Run every data integrity check

    overall is critical when a failed check is critical, degraded when
    any check failed, healthy otherwise.
    """
    try:
        report = IntegrityService().run_checks()
        logger.info(f"Integrity check by {user.email}: {report['overall']}")
        return {"status": "success", "data": report}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Integrity check failed: {e}")
        raise HTTPException(status_code=500, detail=f"Error running integrity checks: {str(e)}")


@router.get("/backups")
async def list_backups(user: TokenUser = Depends(require_admin)):
    try:
        backups = BackupService().list_backups()
        return {"status": "success", "count": len(backups), "data": backups}

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error listing backups: {str(e)}")


@router.post("/backups/{backup_id}/verify")
async def verify_backup(backup_id: str, user: TokenUser = Depends(require_admin)):
    try:
        verification = BackupService().verify_backup(backup_id)
        return {"status": "success", "data": verification.to_dict()}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error verifying backup: {str(e)}")


@router.get("/audit-logs")
async def get_audit_logs(
    merchant_id: Optional[int] = Query(None, description="Merchant (admins may omit to list all)"),
    entity_type: Optional[str] = Query(None, description="e.g. Order, Product, Customer"),
    entity_id: Optional[str] = Query(None, description="Filter by entity ID"),
    action: Optional[str] = Query(None, description="CREATE, UPDATE, DELETE, IMPORT or SYNC"),
    limit: int = Query(50, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    user: TokenUser = Depends(require_role("MERCHANT"))
):
    try:
        scope = resolve_merchant_scope(user, merchant_id, required=False)
        logs, total = AuditRepository().find_all(
            merchant_id=scope,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action.upper() if action else None,
            limit=limit,
            offset=offset
        )

        return {
            "status": "success",
            "total": total,
            "limit": limit,
            "offset": offset,
            "count": len(logs),
            "data": [log.model_dump() for log in logs]
        }

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching audit logs: {str(e)}")
