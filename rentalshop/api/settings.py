"""
Settings API Endpoints

Merchant settings override system settings (merchant_id NULL) with
the same key. System settings are writable by ADMIN only.
"""
from fastapi import APIRouter, HTTPException, Query, Depends
from typing import Optional
import logging

from rentalshop.core.auth import TokenUser, get_current_user, require_role, resolve_merchant_scope
from rentalshop.core.errors import RentalShopError, NotFoundError
from rentalshop.domain.setting import SettingUpsert
from rentalshop.repositories.setting_repository import SettingRepository

logger = logging.getLogger(__name__)
router = APIRouter()


def _target_merchant(user: TokenUser, merchant_id: Optional[int], system: bool) -> Optional[int]:
    """Merchant whose settings are written, or None for system settings"""
    if system:
        if not user.is_admin:
            raise HTTPException(status_code=403, detail="Only admins can change system settings")
        return None
    return resolve_merchant_scope(user, merchant_id)


@router.get("/")
async def get_settings(
    merchant_id: Optional[int] = Query(None, description="Merchant (admins omit it for system settings)"),
    user: TokenUser = Depends(get_current_user)
):
    """Effective settings: system defaults overridden by the merchant's own"""
    try:
        scope = resolve_merchant_scope(user, merchant_id, required=False)
        settings = SettingRepository().find_effective(scope)
        return {
            "status": "success",
            "count": len(settings),
            "data": {s.key: s.value for s in settings}
        }

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching settings: {str(e)}")


@router.get("/{key}")
async def get_setting(
    key: str,
    merchant_id: Optional[int] = Query(None, description="Merchant (admins omit it for system settings)"),
    user: TokenUser = Depends(get_current_user)
):
    try:
        scope = resolve_merchant_scope(user, merchant_id, required=False)
        setting = SettingRepository().find(scope, key)
        if setting is None:
            raise NotFoundError(f"Setting '{key}' not found")
        return {"status": "success", "data": setting.model_dump()}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching setting: {str(e)}")


@router.put("/{key}")
async def upsert_setting(
    key: str,
    data: SettingUpsert,
    merchant_id: Optional[int] = Query(None, description="Merchant (required for admins unless system)"),
    system: bool = Query(False, description="Write the system-wide default"),
    user: TokenUser = Depends(require_role("MERCHANT"))
):
    try:
        target = _target_merchant(user, merchant_id, system)
        setting = SettingRepository().upsert(target, key, data.value, data.description)
        logger.info(f"Setting '{key}' updated for {'system' if target is None else f'merchant {target}'}")
        return {"status": "success", "data": setting.model_dump()}

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error saving setting: {str(e)}")


@router.delete("/{key}")
async def delete_setting(
    key: str,
    merchant_id: Optional[int] = Query(None, description="Merchant (required for admins unless system)"),
    system: bool = Query(False, description="Delete the system-wide default"),
    user: TokenUser = Depends(require_role("MERCHANT"))
):
    try:
        target = _target_merchant(user, merchant_id, system)
        if not SettingRepository().delete(target, key):
            raise NotFoundError(f"Setting '{key}' not found")
        return {"status": "success", "message": f"Setting '{key}' deleted"}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error deleting setting: {str(e)}")
