"""
Outlets API Endpoints
Branches of a merchant
"""
from fastapi import APIRouter, HTTPException, Query, Depends
from typing import Optional
import logging

from rentalshop.core.auth import TokenUser, get_current_user, require_role, resolve_merchant_scope
from rentalshop.core.errors import RentalShopError, NotFoundError, ErrorCode
from rentalshop.domain.merchant import OutletCreate, OutletUpdate
from rentalshop.repositories.merchant_repository import OutletRepository
from rentalshop.services.plan_limit_service import PlanLimitService
from rentalshop.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)
router = APIRouter()


def _get_outlet(outlet_id: int, user: TokenUser):
    outlet = OutletRepository().find_by_id(outlet_id)
    if outlet is None or (not user.is_admin and outlet.merchant_id != user.merchant_id):
        raise NotFoundError(f"Outlet {outlet_id} not found", code=ErrorCode.OUTLET_NOT_FOUND)
    return outlet


@router.get("/")
async def get_outlets(
    merchant_id: Optional[int] = Query(None, description="Merchant (required for admins)"),
    is_active: Optional[bool] = Query(None, description="Filter by active status"),
    user: TokenUser = Depends(get_current_user)
):
    try:
        scope = resolve_merchant_scope(user, merchant_id)
        outlets = OutletRepository().find_by_merchant(scope, is_active=is_active)

        return {
            "status": "success",
            "total": len(outlets),
            "count": len(outlets),
            "data": [outlet.to_dict() for outlet in outlets]
        }

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching outlets: {str(e)}")


@router.get("/{outlet_id}")
async def get_outlet(outlet_id: int, user: TokenUser = Depends(get_current_user)):
    try:
        return {"status": "success", "data": _get_outlet(outlet_id, user).to_dict()}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching outlet: {str(e)}")


@router.post("/", status_code=201)
async def create_outlet(
    data: OutletCreate,
    merchant_id: Optional[int] = Query(None, description="Merchant (required for admins)"),
    user: TokenUser = Depends(require_role("MERCHANT"))
):
    try:
        scope = resolve_merchant_scope(user, merchant_id)
        SubscriptionService().ensure_can_perform(scope, "create")
        PlanLimitService().enforce(scope, "outlets")

        outlet = OutletRepository().create(scope, data)
        logger.info(f"Outlet {outlet.id} created for merchant {scope}")
        return {"status": "success", "data": outlet.to_dict()}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error creating outlet: {str(e)}")


@router.put("/{outlet_id}")
async def update_outlet(outlet_id: int, data: OutletUpdate,
                        user: TokenUser = Depends(require_role("OUTLET_ADMIN"))):
    try:
        outlet = _get_outlet(outlet_id, user)
        if user.role == "OUTLET_ADMIN" and user.outlet_id != outlet.id:
            raise HTTPException(status_code=403, detail="Access denied to this outlet")
        SubscriptionService().ensure_can_perform(outlet.merchant_id, "update")

        updated = OutletRepository().update(outlet_id, data)
        return {"status": "success", "data": updated.to_dict()}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error updating outlet: {str(e)}")
