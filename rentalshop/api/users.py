"""
Users API Endpoints
Staff accounts of a merchant
"""
from fastapi import APIRouter, HTTPException, Query, Depends
from typing import Optional
import logging

from rentalshop.core.auth import (
    TokenUser, ROLE_HIERARCHY, get_current_user, require_role, resolve_merchant_scope, hash_password
)
from rentalshop.core.errors import RentalShopError, NotFoundError, ValidationError, ConflictError, ErrorCode
from rentalshop.domain.merchant import UserCreate, UserUpdate, USER_ROLES
from rentalshop.repositories.user_repository import UserRepository
from rentalshop.repositories.merchant_repository import OutletRepository
from rentalshop.services.plan_limit_service import PlanLimitService
from rentalshop.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)
router = APIRouter()


def _check_role_assignment(user: TokenUser, role: str) -> None:
    """Users can only hand out roles below their own (admins can hand out any)"""
    if role not in USER_ROLES:
        raise ValidationError(f"Invalid role '{role}'. Expected one of: {', '.join(USER_ROLES)}")
    if user.is_admin:
        return
    if ROLE_HIERARCHY[role] >= ROLE_HIERARCHY.get(user.role, 0):
        raise HTTPException(status_code=403, detail=f"Cannot assign role {role}")


def _check_outlet(outlet_id: Optional[int], merchant_id: Optional[int]) -> None:
    if outlet_id is None:
        return
    outlet = OutletRepository().find_by_id(outlet_id)
    if outlet is None or outlet.merchant_id != merchant_id:
        raise NotFoundError(f"Outlet {outlet_id} not found", code=ErrorCode.OUTLET_NOT_FOUND)


def _get_user(user_id: int, user: TokenUser):
    found = UserRepository().find_by_id(user_id)
    if found is None or (not user.is_admin and found.merchant_id != user.merchant_id):
        raise NotFoundError(f"User {user_id} not found")
    return found


@router.get("/")
async def get_users(
    merchant_id: Optional[int] = Query(None, description="Merchant (admins may omit to list all)"),
    outlet_id: Optional[int] = Query(None, description="Filter by outlet"),
    role: Optional[str] = Query(None, description="Filter by role"),
    limit: int = Query(50, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    user: TokenUser = Depends(require_role("OUTLET_ADMIN"))
):
    try:
        scope = resolve_merchant_scope(user, merchant_id, required=False)
        users, total = UserRepository().find_all(
            merchant_id=scope,
            outlet_id=outlet_id,
            role=role.upper() if role else None,
            limit=limit,
            offset=offset
        )

        return {
            "status": "success",
            "total": total,
            "limit": limit,
            "offset": offset,
            "count": len(users),
            "data": [u.to_dict() for u in users]
        }

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching users: {str(e)}")


@router.get("/{user_id}")
async def get_user(user_id: int, user: TokenUser = Depends(get_current_user)):
    try:
        return {"status": "success", "data": _get_user(user_id, user).to_dict()}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching user: {str(e)}")


@router.post("/", status_code=201)
async def create_user(
    data: UserCreate,
    merchant_id: Optional[int] = Query(None, description="Merchant (admins creating admins omit it)"),
    user: TokenUser = Depends(require_role("OUTLET_ADMIN"))
):
    try:
        role = data.role.upper()
        _check_role_assignment(user, role)
        scope = None if role == "ADMIN" else resolve_merchant_scope(user, merchant_id)
        _check_outlet(data.outlet_id, scope)

        repo = UserRepository()
        if repo.find_by_email(data.email):
            raise ConflictError(f"A user with email {data.email} already exists")

        if scope is not None:
            SubscriptionService().ensure_can_perform(scope, "create")
            PlanLimitService().enforce(scope, "users")

        created = repo.create(
            email=data.email,
            password_hash=hash_password(data.password),
            name=data.name,
            role=role,
            merchant_id=scope,
            outlet_id=data.outlet_id
        )
        logger.info(f"User {created.id} ({role}) created by {user.email}")
        return {"status": "success", "data": created.to_dict()}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error creating user: {str(e)}")


@router.put("/{user_id}")
async def update_user(user_id: int, data: UserUpdate,
                      user: TokenUser = Depends(require_role("OUTLET_ADMIN"))):
    try:
        existing = _get_user(user_id, user)
        if data.role is not None:
            data.role = data.role.upper()
            _check_role_assignment(user, data.role)
        _check_outlet(data.outlet_id, existing.merchant_id)

        updated = UserRepository().update(user_id, data)
        return {"status": "success", "data": updated.to_dict()}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error updating user: {str(e)}")
