"""
Merchants API Endpoints
Tenant accounts and their plan usage

Author: TM3
Date: 2026-03-08
"""
from fastapi import APIRouter, HTTPException, Query, Depends
from typing import Optional
import logging

from rentalshop.core.auth import TokenUser, get_current_user, require_admin, require_role, resolve_merchant_scope
from rentalshop.core.errors import RentalShopError, NotFoundError, ValidationError, ErrorCode
from rentalshop.domain.merchant import MerchantCreate, MerchantUpdate, MERCHANT_STATUSES
from rentalshop.repositories.merchant_repository import MerchantRepository
from rentalshop.services.plan_limit_service import PlanLimitService

logger = logging.getLogger(__name__)
router = APIRouter()


def _get_merchant(repo: MerchantRepository, merchant_id: int):
    merchant = repo.find_by_id(merchant_id)
    if merchant is None:
        raise NotFoundError(f"Merchant {merchant_id} not found", code=ErrorCode.MERCHANT_NOT_FOUND)
    return merchant


@router.get("/")
async def get_merchants(
    status: Optional[str] = Query(None, description="Filter by merchant status"),
    is_active: Optional[bool] = Query(None, description="Filter by active status"),
    search: Optional[str] = Query(None, description="Search by name, email or phone"),
    limit: int = Query(50, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    user: TokenUser = Depends(require_admin)
):
    """List merchants (ADMIN only)"""
    try:
        repo = MerchantRepository()
        merchants, total = repo.find_all(
            status=status,
            is_active=is_active,
            search=search,
            limit=limit,
            offset=offset
        )

        return {
            "status": "success",
            "total": total,
            "limit": limit,
            "offset": offset,
            "count": len(merchants),
            "data": [merchant.to_dict() for merchant in merchants]
        }

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching merchants: {str(e)}")


@router.get("/{merchant_id}")
async def get_merchant(merchant_id: int, user: TokenUser = Depends(get_current_user)):
    try:
        resolve_merchant_scope(user, merchant_id)
        merchant = _get_merchant(MerchantRepository(), merchant_id)
        return {"status": "success", "data": merchant.to_dict()}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching merchant: {str(e)}")


@router.post("/", status_code=201)
async def create_merchant(data: MerchantCreate, user: TokenUser = Depends(require_admin)):
    try:
        if data.status not in MERCHANT_STATUSES:
            raise ValidationError(f"Invalid merchant status '{data.status}'")

        merchant = MerchantRepository().create(data)
        logger.info(f"Merchant {merchant.id} created by {user.email}")
        return {"status": "success", "data": merchant.to_dict()}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error creating merchant: {str(e)}")


@router.put("/{merchant_id}")
async def update_merchant(merchant_id: int, data: MerchantUpdate,
                          user: TokenUser = Depends(require_role("MERCHANT"))):
    """Merchants may edit their own profile; plan and status changes are ADMIN only"""
    try:
        resolve_merchant_scope(user, merchant_id)
        if not user.is_admin:
            if data.plan_id is not None or data.status is not None or data.is_active is not None:
                raise HTTPException(status_code=403, detail="Only admins can change plan or status")
        if data.status is not None and data.status not in MERCHANT_STATUSES:
            raise ValidationError(f"Invalid merchant status '{data.status}'")

        repo = MerchantRepository()
        _get_merchant(repo, merchant_id)
        merchant = repo.update(merchant_id, data)
        return {"status": "success", "data": merchant.to_dict()}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error updating merchant: {str(e)}")


@router.delete("/{merchant_id}")
async def deactivate_merchant(merchant_id: int, user: TokenUser = Depends(require_admin)):
    try:
        repo = MerchantRepository()
        _get_merchant(repo, merchant_id)
        repo.deactivate(merchant_id)
        logger.info(f"Merchant {merchant_id} deactivated by {user.email}")
        return {"status": "success", "message": f"Merchant {merchant_id} deactivated"}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error deactivating merchant: {str(e)}")


@router.get("/{merchant_id}/plan-usage")
async def get_plan_usage(merchant_id: int, user: TokenUser = Depends(get_current_user)):
    """Current counts vs plan limits for outlets, users, products, customers and orders"""
    try:
        resolve_merchant_scope(user, merchant_id)
        _get_merchant(MerchantRepository(), merchant_id)
        return {"status": "success", "data": PlanLimitService().get_usage(merchant_id)}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching plan usage: {str(e)}")
